# assay_core/services/codes.py
"""
Human-readable sample codes: ``<PREFIX>-<yy><seq>``.

The sequence is derived from the highest stored sequence for the
prefix-year. Uniqueness is guaranteed by the unique constraint on
``Sample.code``; callers retry on IntegrityError instead of relying on
read-then-increment.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.db.models import Max
from django.utils import timezone

from assay_core.models import Sample


SAMPLE_CODE_RE = re.compile(r"^[A-Z]{2,3}-\d{4,6}$")
REPORT_CODE_RE = re.compile(r"^RPT-[A-Z]{2,3}-\d{4,6}$")

SEQUENCE_WIDTH = 4
# two year digits plus at most four sequence digits keep codes within SAMPLE_CODE_RE
MAX_SEQUENCE = 9999
MAX_CODE_ATTEMPTS = 5


def code_prefix() -> str:
    return str(getattr(settings, "SAMPLE_CODE_PREFIX", "RC") or "RC").strip().upper()


def year_stem(now: Optional[datetime] = None, prefix: Optional[str] = None) -> str:
    now = now or timezone.now()
    return f"{prefix or code_prefix()}-{now:%y}"


def format_sample_code(stem: str, sequence: int) -> str:
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise ValueError(f"Sequence {sequence} is outside 1..{MAX_SEQUENCE}")
    return f"{stem}{sequence:0{SEQUENCE_WIDTH}d}"


def next_sequence(stem: str) -> int:
    top = (
        Sample.objects.filter(code__startswith=stem)
        .aggregate(top=Max("sequence"))
        .get("top")
    )
    return (top or 0) + 1


def report_code_for(sample_code: str) -> str:
    return f"RPT-{sample_code}"


def looks_like_sample_code(value: str) -> bool:
    return bool(SAMPLE_CODE_RE.match(str(value or "").strip().upper()))
