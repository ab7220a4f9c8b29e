# assay_core/workflows/__init__.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set


# ===============================================================
# Canonical sample lifecycle
# ===============================================================

SAMPLE_STATES: Set[str] = {
    "RECEIVED",
    "PREP",
    "ANALYZING",
    "QA_QC",
    "REPORTED",
    "CANCELLED",
}

SAMPLE_TRANSITIONS: Dict[str, Set[str]] = {
    "RECEIVED": {"PREP", "CANCELLED"},
    "PREP": {"ANALYZING", "CANCELLED"},
    "ANALYZING": {"QA_QC", "REPORTED"},
    "QA_QC": {"REPORTED"},
    "REPORTED": set(),
    "CANCELLED": set(),
}

TERMINAL_STATES: Set[str] = {
    state for state, nxt in SAMPLE_TRANSITIONS.items() if not nxt
}

# States from which a sample may still be withdrawn by its owner
CANCELLABLE_STATES: Set[str] = {"RECEIVED", "PREP"}

# States in which a report may be issued
REPORTABLE_STATES: Set[str] = {"ANALYZING", "QA_QC"}


def normalize_state(value: str) -> str:
    return str(value or "").strip().upper()


# ===============================================================
# Public workflow API
# ===============================================================

def validate_transition(
    current: Optional[str] = None,
    target: Optional[str] = None,
    *,
    override: bool = False,
) -> None:
    """
    Raises ValueError if current -> target is not a legal sample transition.

    With override=True any jump between known states is accepted, except
    out of a terminal state. Callers restrict override to privileged roles.
    """
    cur = normalize_state(current or "")
    tgt = normalize_state(target or "")

    if cur not in SAMPLE_STATES:
        raise ValueError(f"Unknown sample state: {cur}")
    if tgt not in SAMPLE_STATES:
        raise ValueError(f"Unknown sample state: {tgt}")
    if cur == tgt:
        raise ValueError(f"Sample is already {cur}")

    if cur in TERMINAL_STATES:
        raise ValueError(f"Sample is {cur} and its status can no longer change")
    if override:
        return

    if tgt not in SAMPLE_TRANSITIONS.get(cur, set()):
        raise ValueError(f"Invalid sample transition: {cur} -> {tgt}")


def allowed_next_states(current: str) -> List[str]:
    cur = normalize_state(current)
    if cur not in SAMPLE_STATES:
        raise ValueError(f"Unknown sample state: {cur}")
    return sorted(SAMPLE_TRANSITIONS[cur])


def is_terminal(state: str) -> bool:
    return normalize_state(state) in TERMINAL_STATES


def workflow_definition() -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for clients.
    """
    return {
        "kind": "sample",
        "states": sorted(SAMPLE_STATES),
        "initial": "RECEIVED",
        "terminal": sorted(TERMINAL_STATES),
        "cancellable": sorted(CANCELLABLE_STATES),
        "reportable": sorted(REPORTABLE_STATES),
        "transitions": {
            state: sorted(nxt) for state, nxt in SAMPLE_TRANSITIONS.items()
        },
    }


__all__ = [
    "SAMPLE_STATES",
    "SAMPLE_TRANSITIONS",
    "TERMINAL_STATES",
    "CANCELLABLE_STATES",
    "REPORTABLE_STATES",
    "normalize_state",
    "validate_transition",
    "allowed_next_states",
    "is_terminal",
    "workflow_definition",
]
