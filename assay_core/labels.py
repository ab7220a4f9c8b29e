# assay_core/labels.py
from __future__ import annotations

from typing import Dict, Optional


# ===============================================================
# Display label <-> stored token
# ===============================================================

MINERAL_LABELS: Dict[str, str] = {
    "CU": "Cu",
    "CO": "Co",
    "LI": "Li",
    "AU": "Au",
    "SN": "Sn",
    "TA": "Ta",
    "W": "W",
    "ZN": "Zn",
    "PB": "Pb",
    "NI": "Ni",
}

UNIT_LABELS: Dict[str, str] = {
    "PERCENT": "%",
    "GRAMS_PER_TON": "g/t",
    "PPM": "ppm",
    "OUNCES_PER_TON": "oz/t",
}

STATUS_LABELS: Dict[str, str] = {
    "RECEIVED": "Received",
    "PREP": "Preparation",
    "ANALYZING": "In Analysis",
    "QA_QC": "QA/QC",
    "REPORTED": "Reported",
    "CANCELLED": "Cancelled",
}

ROLE_LABELS: Dict[str, str] = {
    "CLIENT": "Client",
    "ADMIN": "Administrator",
    "ANALYST": "Analyst",
    "SUPERVISOR": "Supervisor",
}

TABLES: Dict[str, Dict[str, str]] = {
    "mineral": MINERAL_LABELS,
    "unit": UNIT_LABELS,
    "status": STATUS_LABELS,
    "role": ROLE_LABELS,
}


def _table(kind: str) -> Dict[str, str]:
    try:
        return TABLES[kind]
    except KeyError:
        raise ValueError(f"Unknown label table: {kind}") from None


def to_label(kind: str, token: Optional[str]) -> str:
    if token is None:
        return ""
    return _table(kind).get(str(token), str(token))


def to_token(kind: str, value: Optional[str]) -> Optional[str]:
    """
    Accepts a token or a display label (case-insensitive) and returns the
    token. Returns None if the value matches neither.
    """
    if value is None:
        return None
    raw = str(value).strip()
    table = _table(kind)

    upper = raw.upper()
    if upper in table:
        return upper

    lowered = raw.lower()
    for token, label in table.items():
        if label.lower() == lowered:
            return token
    return None
