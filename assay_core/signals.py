# assay_core/signals.py
from __future__ import annotations

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from assay_core.models import Report, Role, UserProfile

logger = logging.getLogger(__name__)

User = get_user_model()


# ===============================================================
# Profiles
# ===============================================================
@receiver(post_save, sender=User)
def ensure_user_profile(sender, instance, created: bool, **kwargs):
    """
    Every account gets a profile. Superusers created from the shell
    start as ADMIN.
    """
    if not created:
        return

    role = Role.ADMIN if instance.is_superuser else Role.CLIENT
    UserProfile.objects.get_or_create(
        user=instance,
        defaults={"role": role, "display_name": instance.get_username()[:100]},
    )


# ===============================================================
# Report issued (feature-flagged email)
# ===============================================================
@receiver(post_save, sender=Report)
def notify_on_report_issued(sender, instance: Report, created: bool, **kwargs):
    if not created:
        return
    if not getattr(settings, "ASSAY_EMAIL_NOTIFICATIONS", False):
        return

    from assay_core.tasks import notify_report_issued

    report_id = instance.pk
    transaction.on_commit(lambda: notify_report_issued.delay(report_id))
    logger.debug("Queued issuance notification for report %s", instance.report_code)
