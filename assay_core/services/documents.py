# assay_core/services/documents.py
from __future__ import annotations

import logging
import os
import re
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.files.storage import default_storage
from django.db import DatabaseError, transaction
from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from assay_core.exceptions import UpstreamError
from assay_core.identity import Actor
from assay_core.models import SampleDocument
from assay_core.policy import ensure_can_access, ensure_can_modify, require_actor, scope_queryset
from assay_core.services.audit import record_activity
from assay_core.services.samples import lookup_sample

logger = logging.getLogger(__name__)


_UNSAFE_RE = re.compile(r"[^A-Za-z0-9]")


def allowed_types():
    return [t.strip() for t in getattr(settings, "UPLOAD_ALLOWED_TYPES", []) if t.strip()]


def subdir_for(mime_type: str) -> str:
    if mime_type.startswith("image/"):
        return "images"
    if mime_type == "application/pdf":
        return "pdfs"
    return "documents"


def stored_name(original_name: str) -> str:
    base, ext = os.path.splitext(os.path.basename(original_name or "upload"))
    safe = _UNSAFE_RE.sub("_", base)[:80] or "file"
    safe_ext = _UNSAFE_RE.sub("", ext.lstrip("."))[:10].lower()
    suffix = f"{int(timezone.now().timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"
    return f"{safe}-{suffix}.{safe_ext}" if safe_ext else f"{safe}-{suffix}"


def document_url(document: SampleDocument) -> str:
    return f"/assay/files/{document.path}"


def _validate_upload(upload) -> str:
    if upload is None:
        raise ValidationError({"file": ["No file was submitted."]})

    mime_type = (getattr(upload, "content_type", "") or "").split(";")[0].strip().lower()
    if mime_type not in allowed_types():
        raise ValidationError(
            {"file": [f"Invalid file type. Allowed types: {', '.join(allowed_types())}"]}
        )

    limit = int(getattr(settings, "UPLOAD_MAX_FILE_SIZE", 0) or 0)
    if limit and upload.size > limit:
        raise ValidationError({"file": [f"File exceeds the {limit} byte limit."]})
    if not upload.size:
        raise ValidationError({"file": ["The submitted file is empty."]})
    return mime_type


def store_document(sample_id, upload, *, actor: Optional[Actor]) -> SampleDocument:
    require_actor(actor)
    sample = lookup_sample(sample_id)
    ensure_can_modify(actor, sample.client_id)
    mime_type = _validate_upload(upload)

    filename = stored_name(upload.name)
    target = f"samples/{sample.code}/{subdir_for(mime_type)}/{filename}"

    try:
        path = default_storage.save(target, upload)
    except OSError:
        logger.exception("Storing %s for sample %s failed", upload.name, sample.code)
        raise UpstreamError("File storage is unavailable.")

    try:
        with transaction.atomic():
            document = SampleDocument.objects.create(
                sample=sample,
                filename=os.path.basename(path),
                original_name=os.path.basename(upload.name or "")[:255],
                mime_type=mime_type,
                size=upload.size,
                path=path,
                uploaded_by_id=actor.user_id,
            )
    except DatabaseError:
        default_storage.delete(path)
        raise

    logger.info("Stored %s (%s bytes) for sample %s", path, upload.size, sample.code)
    record_activity(
        actor=actor,
        action="FILE_UPLOADED",
        entity="document",
        entity_id=document.pk,
        details={"sample": sample.code, "name": document.original_name},
    )
    return document


def list_documents(sample_id, *, actor: Optional[Actor]):
    require_actor(actor)
    sample = lookup_sample(sample_id)
    ensure_can_access(actor, sample.client_id)
    return sample.documents.order_by("-uploaded_at", "-id")


def get_document(document_id, *, actor: Optional[Actor]) -> SampleDocument:
    require_actor(actor)
    document = (
        SampleDocument.objects.select_related("sample").filter(pk=document_id).first()
        if str(document_id).isdigit()
        else None
    )
    if document is None:
        raise NotFound("File not found.")
    ensure_can_access(actor, document.sample.client_id)
    return document


def delete_document(document_id, *, actor: Optional[Actor]) -> None:
    """
    Removes the metadata row; the stored bytes go once the row is gone.
    """
    document = get_document(document_id, actor=actor)
    path = document.path

    with transaction.atomic():
        document.delete()
        transaction.on_commit(lambda: _remove_stored(path))

    logger.info("Deleted document %s by user %s", path, actor.user_id)
    record_activity(
        actor=actor,
        action="FILE_DELETED",
        entity="document",
        entity_id=document_id,
        details={"path": path},
    )


def _remove_stored(path: str) -> None:
    try:
        default_storage.delete(path)
    except OSError:
        logger.warning("Stored file %s could not be removed", path, exc_info=True)


def document_stats(*, actor: Optional[Actor], now=None) -> Dict[str, Any]:
    require_actor(actor)
    now = now or timezone.now()
    qs = scope_queryset(SampleDocument.objects.all(), actor, "sample__client")

    by_type = qs.order_by().values("mime_type").annotate(count=Count("id")).order_by("mime_type")
    return {
        "total_files": qs.count(),
        "total_size": qs.aggregate(total=Sum("size"))["total"] or 0,
        "recent_files": qs.filter(uploaded_at__gte=now - timedelta(days=7)).count(),
        "files_by_type": [{"type": row["mime_type"], "count": row["count"]} for row in by_type],
    }


def open_document(path: str):
    """
    Public file serving. Only paths registered as sample documents resolve.
    Returns (document, open file).
    """
    document = SampleDocument.objects.filter(path=str(path or "").lstrip("/")).first()
    if document is None or not default_storage.exists(document.path):
        raise NotFound("File not found.")
    return document, default_storage.open(document.path, "rb")
