# assay_core/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from assay_core.models import Report
from assay_core.services.dashboard import overdue_samples
from assay_core.services.verification import verification_url

logger = logging.getLogger(__name__)


@shared_task
def notify_report_issued(report_id: int) -> bool:
    """
    Emails the sample owner that their certificate is available.
    Returns False when there is nobody to notify.
    """
    report = (
        Report.objects.select_related("sample", "sample__client")
        .filter(pk=report_id)
        .first()
    )
    if report is None:
        logger.warning("Report %s vanished before notification", report_id)
        return False

    recipient = report.sample.client.email
    if not recipient:
        return False

    body = "\n".join(
        [
            "Your assay report has been issued.",
            "",
            f"Report: {report.report_code}",
            f"Sample: {report.sample.code}",
            f"Site: {report.sample.site}",
            f"Grade: {report.grade} {report.unit}",
            f"Issued: {report.issued_at:%Y-%m-%d %H:%M} UTC",
            "",
            f"Verify: {verification_url(report.report_code, report.hash)}",
        ]
    )

    sent = send_mail(
        subject=f"Assay report {report.report_code} issued",
        message=body,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
        recipient_list=[recipient],
        fail_silently=True,
    )
    logger.info("Issuance email for %s to %s sent=%s", report.report_code, recipient, bool(sent))
    return bool(sent)


@shared_task
def scan_overdue_samples() -> int:
    count = overdue_samples().count()
    if count:
        logger.warning("%s samples are past their due date", count)
    return count
