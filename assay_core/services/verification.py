# assay_core/services/verification.py
"""
Tamper-evident fingerprint and QR artifact for issued reports.

The hash is the uppercase SHA-256 hex digest of a compact JSON document
with a fixed key order::

    {"reportCode":...,"sampleId":...,"grade":...,"unit":...,"issuedAt":...}

``sampleId`` is the sample primary key as a string, ``grade`` is a
4-decimal string and ``issuedAt`` is UTC ISO-8601 with milliseconds and a
trailing ``Z``. Changing any of these breaks verification of every report
already issued.
"""
from __future__ import annotations

import base64
import hashlib
import json
import logging
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from io import BytesIO
from urllib.parse import quote

import qrcode
from qrcode.exceptions import DataOverflowError
from django.conf import settings

logger = logging.getLogger(__name__)


GRADE_QUANTUM = Decimal("0.0001")


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_issued_at(value: datetime) -> str:
    utc = value.astimezone(dt_timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def format_grade(value) -> str:
    return str(Decimal(str(value)).quantize(GRADE_QUANTUM))


def canonical_payload(*, report_code: str, sample_id, grade, unit: str, issued_at: datetime) -> str:
    return json.dumps(
        {
            "reportCode": report_code,
            "sampleId": str(sample_id),
            "grade": format_grade(grade),
            "unit": str(unit),
            "issuedAt": format_issued_at(issued_at),
        },
        separators=(",", ":"),
    )


def compute_report_hash(*, report_code: str, sample_id, grade, unit: str, issued_at: datetime) -> str:
    payload = canonical_payload(
        report_code=report_code,
        sample_id=sample_id,
        grade=grade,
        unit=unit,
        issued_at=issued_at,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest().upper()


def hash_for_report(report) -> str:
    return compute_report_hash(
        report_code=report.report_code,
        sample_id=report.sample_id,
        grade=report.grade,
        unit=report.unit,
        issued_at=report.issued_at,
    )


def normalize_hash(value) -> str:
    return str(value or "").strip().upper()


def verification_url(report_code: str, report_hash: str) -> str:
    base = str(getattr(settings, "FRONTEND_URL", "") or "").rstrip("/")
    return f"{base}/verify/{quote(report_code)}?hash={report_hash}"


def render_qr_data_url(url: str) -> str:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=4,
    )
    qr.add_data(url)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def qr_for_report(report_code: str, report_hash: str) -> str:
    """
    Informational only. Rendering failures yield an empty payload.
    """
    url = verification_url(report_code, report_hash)
    try:
        return render_qr_data_url(url)
    except (DataOverflowError, OSError, ValueError):
        logger.warning("QR rendering failed for report %s", report_code, exc_info=True)
        return ""
