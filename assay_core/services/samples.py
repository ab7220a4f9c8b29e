# assay_core/services/samples.py
"""
Sample registry.

All status changes go through this module or the report issuer.
Never update Sample.status directly in views or serializers.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from assay_core.exceptions import Conflict, UpstreamError
from assay_core.filters import SampleFilter
from assay_core.identity import Actor
from assay_core.labels import to_token
from assay_core.tracking import KIND_TEXT, normalize_tracking_input
from assay_core.models import Sample, SampleStatus, TimelineEvent
from assay_core.policy import (
    STAFF_ROLES,
    ensure_can_access,
    ensure_can_modify,
    is_privileged,
    require_actor,
    require_role,
    scope_queryset,
)
from assay_core.services.audit import record_activity
from assay_core.services.codes import (
    MAX_CODE_ATTEMPTS,
    MAX_SEQUENCE,
    format_sample_code,
    looks_like_sample_code,
    next_sequence,
    year_stem,
)
from assay_core.workflows import (
    CANCELLABLE_STATES,
    normalize_state,
    validate_transition,
)

logger = logging.getLogger(__name__)


RECEIVED_NOTE = "Sample received and logged into system"
CANCELLED_NOTE = "Sample cancelled"

SITE_MIN_LENGTH = 2
SITE_MAX_LENGTH = 200
NOTES_MAX_LENGTH = 1000

STAFF_FIELDS = ("grade", "analyst")


# ===============================================================
# Queries
# ===============================================================

def sample_queryset():
    return (
        Sample.objects.select_related("client", "client__profile", "analyst", "report")
        .prefetch_related("timeline", "documents")
    )


def lookup_sample(id_or_code, queryset=None) -> Sample:
    qs = queryset if queryset is not None else sample_queryset()
    raw = str(id_or_code or "").strip()

    if looks_like_sample_code(raw):
        found = qs.filter(code=raw.upper()).first()
    elif raw.isdigit():
        found = qs.filter(pk=int(raw)).first()
    else:
        found = None

    if found is None:
        raise NotFound("Sample not found.")
    return found


def _locked(sample_id) -> Sample:
    return lookup_sample(sample_id, Sample.objects.select_for_update())


# ===============================================================
# Field cleaning
# ===============================================================

def clean_token(kind: str, value, field: str) -> str:
    token = to_token(kind, value)
    if token is None:
        raise ValidationError({field: [f"'{value}' is not a valid {kind}."]})
    return token


def clean_decimal(value, field: str, places: int) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError({field: ["A valid number is required."]})
    if not number.is_finite() or number <= 0:
        raise ValidationError({field: ["Must be greater than zero."]})
    return number.quantize(Decimal(1).scaleb(-places))


def _clean_priority(value) -> int:
    try:
        priority = int(value)
    except (TypeError, ValueError):
        raise ValidationError({"priority": ["A valid integer is required."]})
    if priority < 1 or priority > 3:
        raise ValidationError({"priority": ["Priority must be between 1 and 3."]})
    return priority


def _clean_site(value) -> str:
    site = str(value or "").strip()
    if not (SITE_MIN_LENGTH <= len(site) <= SITE_MAX_LENGTH):
        raise ValidationError(
            {"site": [f"Site must be {SITE_MIN_LENGTH}-{SITE_MAX_LENGTH} characters."]}
        )
    return site


def clean_notes(value) -> str:
    notes = str(value or "")
    if len(notes) > NOTES_MAX_LENGTH:
        raise ValidationError({"notes": [f"Notes are limited to {NOTES_MAX_LENGTH} characters."]})
    return notes


def _clean_due_date(value) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise ValidationError({"due_date": ["A valid datetime is required."]})
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    if value <= timezone.now():
        raise ValidationError({"due_date": ["Due date must be in the future."]})
    return value


def _clean_analyst(value):
    if value is None:
        return None
    User = get_user_model()
    pk = getattr(value, "pk", value)
    analyst = User.objects.select_related("profile").filter(pk=pk, is_active=True).first()
    if analyst is None:
        raise ValidationError({"analyst": ["Unknown or inactive user."]})
    role = "ADMIN" if analyst.is_superuser else getattr(getattr(analyst, "profile", None), "role", "")
    if role not in STAFF_ROLES:
        raise ValidationError({"analyst": ["Assigned user must be laboratory staff."]})
    return analyst


def clean_sample_fields(data: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
    """
    Validates and normalizes writable sample fields. Absent keys stay absent
    when ``partial`` is True.
    """
    cleaned: Dict[str, Any] = {}

    required = ("mineral", "site", "unit", "mass")
    if not partial:
        missing = [f for f in required if data.get(f) in (None, "")]
        if missing:
            raise ValidationError({f: ["This field is required."] for f in missing})

    if "mineral" in data:
        cleaned["mineral"] = clean_token("mineral", data["mineral"], "mineral")
    if "unit" in data:
        cleaned["unit"] = clean_token("unit", data["unit"], "unit")
    if "site" in data:
        cleaned["site"] = _clean_site(data["site"])
    if "mass" in data:
        cleaned["mass"] = clean_decimal(data["mass"], "mass", 2)
    if "notes" in data:
        cleaned["notes"] = clean_notes(data["notes"])
    if "priority" in data and data["priority"] is not None:
        cleaned["priority"] = _clean_priority(data["priority"])
    elif not partial:
        cleaned["priority"] = 1
    if "due_date" in data:
        cleaned["due_date"] = _clean_due_date(data["due_date"])
    if "grade" in data:
        cleaned["grade"] = (
            None if data["grade"] is None else clean_decimal(data["grade"], "grade", 4)
        )
    if "analyst" in data:
        cleaned["analyst"] = _clean_analyst(data["analyst"])

    return cleaned


# ===============================================================
# Status helpers
# ===============================================================

def append_timeline_event(
    sample: Sample,
    *,
    status: str,
    notes: str = "",
    user_id: Optional[int] = None,
) -> Optional[TimelineEvent]:
    """
    Side-effect timeline write. Runs in a savepoint; a failure is logged
    and does not fail the caller's mutation.
    """
    try:
        with transaction.atomic():
            return TimelineEvent.objects.create(
                sample=sample,
                status=status,
                notes=notes or "",
                user_id=user_id,
            )
    except DatabaseError:
        logger.warning(
            "Timeline event %s for sample %s was not recorded",
            status,
            sample.code,
            exc_info=True,
        )
        return None


def apply_status(sample: Sample, target: str, now: Optional[datetime] = None) -> list:
    """
    Sets status and keeps completed_at in step with REPORTED.
    Returns the changed field names.
    """
    now = now or timezone.now()
    sample.status = target
    if target == SampleStatus.REPORTED:
        sample.completed_at = now
    else:
        sample.completed_at = None
    return ["status", "completed_at"]


def _check_transition(sample: Sample, target: str, *, actor: Actor, override: bool) -> None:
    if override and not is_privileged(actor):
        raise PermissionDenied("Only administrators and supervisors may override the workflow.")
    try:
        validate_transition(sample.status, target, override=override)
    except ValueError as e:
        raise ValidationError({"status": [str(e)]})


def _clean_status(value) -> str:
    target = to_token("status", value) or normalize_state(value)
    if target not in SampleStatus.values:
        raise ValidationError({"status": [f"'{value}' is not a valid status."]})
    return target


# ===============================================================
# Registry operations
# ===============================================================

def create_sample(*, actor: Optional[Actor], data: Dict[str, Any]) -> Sample:
    """
    Registers a sample owned by the actor with a freshly allocated code.
    """
    actor = require_actor(actor)
    fields = clean_sample_fields(data, partial=False)
    fields.pop("grade", None)
    fields.pop("analyst", None)

    stem = year_stem()
    now = timezone.now()

    with transaction.atomic():
        sample = None
        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            sequence = next_sequence(stem)
            if sequence > MAX_SEQUENCE:
                raise Conflict(f"No sample codes left for {stem} this year.")
            candidate = Sample(
                code=format_sample_code(stem, sequence),
                sequence=sequence,
                client_id=actor.user_id,
                status=SampleStatus.RECEIVED,
                received_at=now,
                **fields,
            )
            try:
                with transaction.atomic():
                    candidate.save(force_insert=True)
            except IntegrityError:
                logger.warning(
                    "Sample code %s already taken (attempt %s/%s)",
                    candidate.code,
                    attempt,
                    MAX_CODE_ATTEMPTS,
                )
                continue
            sample = candidate
            break

        if sample is None:
            raise UpstreamError("Could not allocate a unique sample code.")

        TimelineEvent.objects.create(
            sample=sample,
            status=SampleStatus.RECEIVED,
            notes=RECEIVED_NOTE,
        )

    logger.info("Sample %s created for user %s", sample.code, actor.user_id)
    record_activity(
        actor=actor,
        action="SAMPLE_CREATED",
        entity="sample",
        entity_id=sample.pk,
        details={"code": sample.code},
    )
    return sample


def get_sample(id_or_code, *, actor: Optional[Actor]) -> Sample:
    require_actor(actor)
    sample = lookup_sample(id_or_code)
    ensure_can_access(actor, sample.client_id)
    return sample


def search_samples(*, actor: Optional[Actor], filters: Optional[Dict[str, Any]] = None):
    require_actor(actor)
    qs = scope_queryset(sample_queryset(), actor, "client")
    fs = SampleFilter(filters or {}, queryset=qs)
    if not fs.is_valid():
        raise ValidationError(fs.errors)
    return fs.qs


def update_sample(
    sample_id,
    patch: Dict[str, Any],
    *,
    actor: Optional[Actor],
    override: bool = False,
) -> Sample:
    """
    Partial update. Absent fields are untouched.

    A status change is checked against the transition graph (any jump when
    ``override`` is set by an administrator or supervisor) and writes
    exactly one timeline event.
    """
    actor = require_actor(actor)
    patch = dict(patch or {})

    for immutable in ("code", "client", "client_id", "sequence", "completed_at"):
        if immutable in patch:
            raise ValidationError({immutable: ["This field cannot be changed."]})

    with transaction.atomic():
        sample = _locked(sample_id)
        ensure_can_modify(actor, sample.client_id)

        staff_keys = [k for k in STAFF_FIELDS + ("status",) if k in patch]
        if staff_keys and actor.role not in STAFF_ROLES:
            raise PermissionDenied("Only laboratory staff may change status, grade or analyst.")

        if sample.status in (SampleStatus.REPORTED, SampleStatus.CANCELLED) and not is_privileged(actor):
            raise Conflict(f"Sample {sample.code} is {sample.status} and can no longer be edited.")
        if sample.status == SampleStatus.REPORTED and "grade" in patch:
            raise Conflict(f"Sample {sample.code} is reported; its grade is fixed by the issued report.")

        status_note = patch.pop("status_note", "") or ""
        target = _clean_status(patch.pop("status")) if patch.get("status") else None

        cleaned = clean_sample_fields(patch, partial=True)
        changed = []
        for field, value in cleaned.items():
            setattr(sample, field, value)
            changed.append(field)

        status_changed = target is not None and target != sample.status
        if status_changed:
            _check_transition(sample, target, actor=actor, override=override)
            if target == SampleStatus.REPORTED and sample.grade is None:
                raise ValidationError({"grade": ["Grade must be known before a sample is reported."]})
            previous = sample.status
            changed += apply_status(sample, target)

        if changed:
            changed.append("updated_at")
            sample.save(update_fields=sorted(set(changed)))

        if status_changed:
            append_timeline_event(
                sample,
                status=target,
                notes=status_note or f"Status changed to {target}",
                user_id=actor.user_id,
            )
            logger.info("Sample %s status %s -> %s by user %s", sample.code, previous, target, actor.user_id)

    if changed:
        record_activity(
            actor=actor,
            action="SAMPLE_UPDATED",
            entity="sample",
            entity_id=sample.pk,
            details={"code": sample.code, "fields": sorted(set(changed) - {"updated_at"})},
        )
    return lookup_sample(sample.pk)


def cancel_sample(sample_id, *, actor: Optional[Actor]) -> Sample:
    """
    Soft cancel. Allowed only before analysis starts; the row is kept.
    """
    actor = require_actor(actor)

    with transaction.atomic():
        sample = _locked(sample_id)
        ensure_can_modify(actor, sample.client_id)

        if sample.status == SampleStatus.CANCELLED:
            raise Conflict(f"Sample {sample.code} is already cancelled.")
        if sample.status not in CANCELLABLE_STATES:
            raise Conflict("Cannot cancel sample being analyzed or reported.")

        apply_status(sample, SampleStatus.CANCELLED)
        sample.save(update_fields=["status", "completed_at", "updated_at"])
        append_timeline_event(
            sample,
            status=SampleStatus.CANCELLED,
            notes=CANCELLED_NOTE,
            user_id=actor.user_id,
        )

    logger.info("Sample %s cancelled by user %s", sample.code, actor.user_id)
    record_activity(
        actor=actor,
        action="SAMPLE_CANCELLED",
        entity="sample",
        entity_id=sample.pk,
        details={"code": sample.code},
    )
    return sample


def add_timeline_event(
    sample_id,
    *,
    status,
    notes: str = "",
    actor: Optional[Actor],
    override: bool = False,
) -> TimelineEvent:
    """
    Appends one event. If ``status`` differs from the current status the
    sample moves there, subject to the transition graph.
    """
    actor = require_role(actor, *STAFF_ROLES)
    target = _clean_status(status)
    notes = clean_notes(notes)

    with transaction.atomic():
        sample = _locked(sample_id)
        ensure_can_modify(actor, sample.client_id)

        if target != sample.status:
            _check_transition(sample, target, actor=actor, override=override)
            if target == SampleStatus.REPORTED and sample.grade is None:
                raise ValidationError({"grade": ["Grade must be known before a sample is reported."]})
            previous = sample.status
            apply_status(sample, target)
            sample.save(update_fields=["status", "completed_at", "updated_at"])
            logger.info("Sample %s status %s -> %s by user %s", sample.code, previous, target, actor.user_id)

        event = TimelineEvent.objects.create(
            sample=sample,
            status=target,
            notes=notes,
            user_id=actor.user_id,
        )

    return event


def timeline_for(sample_id, *, actor: Optional[Actor]) -> Iterable[TimelineEvent]:
    sample = get_sample(sample_id, actor=actor)
    return sample.timeline.select_related("user").order_by("timestamp", "id")


# ===============================================================
# Public tracking
# ===============================================================

TRACKING_LIMIT = 10


def track_samples(raw: str, limit: int = TRACKING_LIMIT):
    """
    Public lookup by short code, digit fragment or site name. Callers must
    render the result without client data.
    """
    query = normalize_tracking_input(raw)
    if not query.key:
        raise ValidationError({"code": ["A tracking code or site name is required."]})

    qs = Sample.objects.select_related("report").prefetch_related("timeline")
    if query.kind == KIND_TEXT:
        qs = qs.filter(Q(site__icontains=query.key) | Q(code__iexact=query.key))
    else:
        qs = qs.filter(code__contains=query.key)

    found = list(qs.order_by("-received_at", "-id")[:limit])
    if not found:
        raise NotFound("No sample matches this tracking code.")
    return query, found
