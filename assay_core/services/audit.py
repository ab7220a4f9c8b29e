# assay_core/services/audit.py
from __future__ import annotations

import logging
from typing import Optional

from django.db import DatabaseError, transaction

from assay_core.identity import Actor
from assay_core.models import AuditLog

logger = logging.getLogger(__name__)


def record_activity(
    *,
    actor: Optional[Actor],
    action: str,
    entity: str = "",
    entity_id="",
    details: Optional[dict] = None,
) -> Optional[AuditLog]:
    """
    Best-effort activity feed entry. A failed write is logged and ignored.
    """
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                user_id=actor.user_id if actor else None,
                action=action,
                entity=entity,
                entity_id=str(entity_id or ""),
                details=details or {},
            )
    except DatabaseError:
        logger.warning("Activity %s on %s:%s not recorded", action, entity, entity_id, exc_info=True)
        return None
