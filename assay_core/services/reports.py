# assay_core/services/reports.py
"""
Report issuer.

A report is issued exactly once per sample. Issuance, the sample moving to
REPORTED and the timeline entry commit together or not at all.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from assay_core.exceptions import Conflict
from assay_core.filters import ReportFilter
from assay_core.identity import Actor
from assay_core.models import Report, Sample, SampleStatus
from assay_core.policy import (
    PRIVILEGED_ROLES,
    STAFF_ROLES,
    ensure_can_access,
    require_actor,
    require_role,
    scope_queryset,
)
from assay_core.services.audit import record_activity
from assay_core.services.codes import report_code_for
from assay_core.services.dashboard import percentage
from assay_core.services.samples import (
    clean_decimal,
    clean_notes,
    clean_token,
    lookup_sample,
    append_timeline_event,
    apply_status,
)
from assay_core.services.verification import (
    compute_report_hash,
    normalize_hash,
    qr_for_report,
    truncate_to_millis,
)
from assay_core.workflows import REPORTABLE_STATES

logger = logging.getLogger(__name__)


NOT_FOUND_MESSAGE = "Report not found"
TAMPERED_MESSAGE = "Report hash verification failed - document may have been tampered with"
VERIFIED_MESSAGE = "Report is authentic and verified"


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    message: str
    report: Optional[Report] = None


def report_queryset():
    return Report.objects.select_related(
        "sample",
        "sample__client",
        "sample__client__profile",
        "issued_by",
        "issued_by__profile",
    )


def _validity_window(issued_at):
    days = int(getattr(settings, "REPORT_VALIDITY_DAYS", 0) or 0)
    if days <= 0:
        return None
    return issued_at + timedelta(days=days)


# ===============================================================
# Issuance
# ===============================================================

def create_report(
    *,
    actor: Optional[Actor],
    sample_id,
    grade,
    unit,
    notes: str = "",
    certified: bool = False,
) -> Report:
    actor = require_role(actor, *STAFF_ROLES)
    grade = clean_decimal(grade, "grade", 4)
    unit = clean_token("unit", unit, "unit")
    notes = clean_notes(notes)

    with transaction.atomic():
        sample = lookup_sample(sample_id, Sample.objects.select_for_update())

        if Report.objects.filter(sample_id=sample.pk).exists():
            raise Conflict(f"A report already exists for sample {sample.code}.")
        if sample.status not in REPORTABLE_STATES:
            raise ValidationError({"sample": ["Sample is not ready for reporting."]})

        issued_at = truncate_to_millis(timezone.now())
        report_code = report_code_for(sample.code)
        report_hash = compute_report_hash(
            report_code=report_code,
            sample_id=sample.pk,
            grade=grade,
            unit=unit,
            issued_at=issued_at,
        )

        report = Report(
            sample=sample,
            report_code=report_code,
            grade=grade,
            unit=unit,
            certified=bool(certified),
            hash=report_hash,
            qr_code=qr_for_report(report_code, report_hash),
            notes=notes,
            issued_by_id=actor.user_id,
            issued_at=issued_at,
            valid_until=_validity_window(issued_at),
        )
        try:
            with transaction.atomic():
                report.save(force_insert=True)
        except IntegrityError:
            raise Conflict(f"A report already exists for sample {sample.code}.")

        sample.grade = grade
        sample.unit = unit
        apply_status(sample, SampleStatus.REPORTED, now=issued_at)
        sample.save(update_fields=["grade", "unit", "status", "completed_at", "updated_at"])

        append_timeline_event(
            sample,
            status=SampleStatus.REPORTED,
            notes=f"Report {report_code} generated",
            user_id=actor.user_id,
        )

    logger.info("Report %s issued for sample %s by user %s", report.report_code, sample.code, actor.user_id)
    record_activity(
        actor=actor,
        action="REPORT_ISSUED",
        entity="report",
        entity_id=report.pk,
        details={"code": report.report_code, "sample": sample.code},
    )
    return report


# ===============================================================
# Reads
# ===============================================================

def get_report(report_id, *, actor: Optional[Actor]) -> Report:
    require_actor(actor)
    report = report_queryset().filter(pk=report_id).first() if str(report_id).isdigit() else None
    if report is None:
        raise NotFound("Report not found.")
    ensure_can_access(actor, report.sample.client_id)
    return report


def get_report_by_code(code, *, actor: Optional[Actor]) -> Report:
    """
    Anonymous callers get the report too; callers must then render the
    client-redacted view.
    """
    report = report_queryset().filter(report_code=str(code or "").strip().upper()).first()
    if report is None:
        raise NotFound("Report not found.")
    if actor is not None:
        ensure_can_access(actor, report.sample.client_id)
    return report


def verify_report(code, provided_hash: Optional[str] = None) -> VerificationResult:
    """
    Without a hash only existence is checked. A supplied hash, even an
    empty one, must match.
    """
    report = report_queryset().filter(report_code=str(code or "").strip().upper()).first()
    if report is None:
        return VerificationResult(valid=False, message=NOT_FOUND_MESSAGE)

    if provided_hash is not None and normalize_hash(provided_hash) != report.hash:
        logger.warning("Hash mismatch on verification of %s", report.report_code)
        return VerificationResult(valid=False, message=TAMPERED_MESSAGE)

    return VerificationResult(valid=True, message=VERIFIED_MESSAGE, report=report)


def search_reports(*, actor: Optional[Actor], filters: Optional[Dict[str, Any]] = None):
    require_actor(actor)
    qs = scope_queryset(report_queryset(), actor, "sample__client")
    fs = ReportFilter(filters or {}, queryset=qs)
    if not fs.is_valid():
        raise ValidationError(fs.errors)
    return fs.qs


def report_stats(*, actor: Optional[Actor], now=None) -> Dict[str, int]:
    require_actor(actor)
    now = now or timezone.now()
    qs = scope_queryset(Report.objects.all(), actor, "sample__client")

    total = qs.count()
    certified = qs.filter(certified=True).count()
    recent = qs.filter(issued_at__gte=now - timedelta(days=30)).count()

    return {
        "total_reports": total,
        "certified_reports": certified,
        "recent_reports": recent,
        "certification_rate": percentage(certified, total),
    }


# ===============================================================
# Certification
# ===============================================================

def update_certification(report_id, certified: bool, *, actor: Optional[Actor]) -> Report:
    """
    Only the certified flag changes; the hash is never recomputed.
    """
    actor = require_role(actor, *PRIVILEGED_ROLES)

    with transaction.atomic():
        report = Report.objects.select_for_update().filter(pk=report_id).first() if str(report_id).isdigit() else None
        if report is None:
            raise NotFound("Report not found.")
        report.certified = bool(certified)
        report.save(update_fields=["certified", "updated_at"])

    logger.info("Report %s certified=%s by user %s", report.report_code, report.certified, actor.user_id)
    record_activity(
        actor=actor,
        action="REPORT_CERTIFIED" if report.certified else "REPORT_UNCERTIFIED",
        entity="report",
        entity_id=report.pk,
        details={"code": report.report_code},
    )
    return report_queryset().get(pk=report.pk)
