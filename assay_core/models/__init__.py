from .core import (
    AuditLog,
    Mineral,
    Report,
    Role,
    Sample,
    SampleDocument,
    SampleStatus,
    TimeStampedModel,
    Unit,
    UserProfile,
)
from .timeline_event import TimelineEvent

__all__ = [
    "AuditLog",
    "Mineral",
    "Report",
    "Role",
    "Sample",
    "SampleDocument",
    "SampleStatus",
    "TimeStampedModel",
    "TimelineEvent",
    "Unit",
    "UserProfile",
]
