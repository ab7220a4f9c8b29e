# assay_core/tracking.py
"""
Short tracking codes with a Luhn check digit.

A short code is a 7-digit number shown as ``NNNNNNN-D``. Input typed by a
client is normalized into a search key; the check digit is validated
whenever it is supplied.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from rest_framework.exceptions import ValidationError


SHORT_CODE_LENGTH = 7
FRAGMENT_MIN_DIGITS = 5

_SHORT_CODE_RE = re.compile(r"^(\d{7})(?:-(\d))?$")
_NON_DIGIT_RE = re.compile(r"\D+")

KIND_SHORT_CODE = "short_code"
KIND_FRAGMENT = "fragment"
KIND_TEXT = "text"


@dataclass(frozen=True)
class TrackingQuery:
    kind: str
    key: str


def digits_only(value: str) -> str:
    return _NON_DIGIT_RE.sub("", value or "")


def luhn_check_digit(digits: str) -> int:
    total = 0
    double = False
    for ch in reversed(digits_only(digits)):
        d = int(ch)
        if double:
            d *= 2
            if d > 9:
                d -= 9
        total += d
        double = not double
    return (10 - total % 10) % 10


def format_for_display(code: str) -> str:
    digits = digits_only(code)
    if len(digits) != SHORT_CODE_LENGTH:
        return code
    return f"{digits}-{luhn_check_digit(digits)}"


def normalize_tracking_input(raw: str) -> TrackingQuery:
    """
    Raises ValidationError when a supplied check digit does not match.
    """
    text = str(raw or "").strip()

    m = _SHORT_CODE_RE.fullmatch(text)
    if m:
        digits, provided = m.group(1), m.group(2)
        if provided is not None and int(provided) != luhn_check_digit(digits):
            raise ValidationError(
                {"code": ["Invalid tracking code: check digit does not match."]}
            )
        return TrackingQuery(KIND_SHORT_CODE, digits)

    digits = digits_only(text)
    if len(digits) >= FRAGMENT_MIN_DIGITS:
        return TrackingQuery(KIND_FRAGMENT, digits)

    return TrackingQuery(KIND_TEXT, text)
