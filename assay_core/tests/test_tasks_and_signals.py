# assay_core/tests/test_tasks_and_signals.py

from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest
from django.core import mail
from django.core.management import call_command
from django.utils import timezone

from assay_core.identity import actor_for_user
from assay_core.models import SampleStatus
from assay_core.services.reports import create_report
from assay_core.tasks import notify_report_issued, scan_overdue_samples


pytestmark = pytest.mark.django_db


def _report(analyst_user, client_user, sample_factory):
    sample = sample_factory(client_user, status=SampleStatus.ANALYZING)
    return create_report(
        actor=actor_for_user(analyst_user),
        sample_id=sample.pk,
        grade=Decimal("1.75"),
        unit="PERCENT",
    )


def test_notify_report_issued_emails_owner(analyst_user, client_user, sample_factory):
    report = _report(analyst_user, client_user, sample_factory)

    assert notify_report_issued(report.pk) is True
    assert len(mail.outbox) == 1
    msg = mail.outbox[0]
    assert msg.to == [client_user.email]
    assert report.report_code in msg.subject
    assert report.hash in msg.body


def test_notify_missing_report(db):
    assert notify_report_issued(999999) is False
    assert mail.outbox == []


def test_issuance_signal_is_feature_flagged(
    settings, analyst_user, client_user, sample_factory, django_capture_on_commit_callbacks
):
    settings.ASSAY_EMAIL_NOTIFICATIONS = False
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        _report(analyst_user, client_user, sample_factory)
    assert callbacks == []

    settings.ASSAY_EMAIL_NOTIFICATIONS = True
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        _report(analyst_user, client_user, sample_factory)
    assert len(callbacks) == 1
    assert len(mail.outbox) == 1


def _overdue(sample_factory, owner, **kw):
    sample = sample_factory(owner, **kw)
    sample.due_date = timezone.now() - timedelta(days=3)
    sample.save(update_fields=["due_date"])
    return sample


def test_scan_overdue_samples(client_user, sample_factory):
    _overdue(sample_factory, client_user)
    _overdue(sample_factory, client_user, status=SampleStatus.REPORTED, grade=Decimal("1"))
    sample_factory(client_user)

    assert scan_overdue_samples() == 1


def test_check_overdue_samples_command(client_user, sample_factory):
    late = _overdue(sample_factory, client_user)
    out = StringIO()

    call_command("check_overdue_samples", stdout=out)

    text = out.getvalue()
    assert late.code in text
    assert "1 overdue samples" in text
