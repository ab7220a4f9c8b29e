# assay_core/tests/test_dashboard_stats.py

from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied

from assay_core.models import AuditLog, SampleStatus
from assay_core.services import dashboard as svc


# ------------------------------------------------------------------
# Pure helpers
# ------------------------------------------------------------------

@pytest.mark.parametrize(
    "part,total,expected",
    [(0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 200, 1), (1, 201, 0), (5, 5, 100)],
)
def test_percentage_rounds_half_up(part, total, expected):
    assert svc.percentage(part, total) == expected


def test_month_keys_cross_year_boundary():
    now = timezone.make_aware(datetime(2024, 2, 15, 12, 0))
    keys = svc.month_keys(now)
    assert len(keys) == 12
    assert keys[0] == "2023-03"
    assert keys[-1] == "2024-02"
    assert keys == sorted(keys)


def test_trend_start_is_first_of_oldest_month():
    now = timezone.make_aware(datetime(2024, 2, 15, 12, 0))
    start = timezone.localtime(svc.trend_start(now))
    assert (start.year, start.month, start.day, start.hour) == (2023, 3, 1, 0)


def _done(hours):
    received = timezone.now() - timedelta(days=30)
    return SimpleNamespace(received_at=received, completed_at=received + timedelta(hours=hours))


def test_average_processing_time():
    assert svc.average_processing_time([]) == "0h"
    assert svc.average_processing_time([_done(5), _done(8)]) == "7h"
    assert svc.average_processing_time([_done(23)]) == "23h"
    assert svc.average_processing_time([_done(24 * 3), _done(24 * 4)]) == "4d"


def test_monthly_growth():
    assert svc.monthly_growth([]) == 0
    assert svc.monthly_growth([{"samples": 0}, {"samples": 0}]) == 0
    assert svc.monthly_growth([{"samples": 0}, {"samples": 3}]) == 100
    assert svc.monthly_growth([{"samples": 4}, {"samples": 5}]) == 25.0
    assert svc.monthly_growth([{"samples": 3}, {"samples": 1}]) == -66.7


# ------------------------------------------------------------------
# Scoped rollups
# ------------------------------------------------------------------

@pytest.mark.django_db
def test_sample_stats_are_owner_scoped(client_user, other_client, supervisor_user, actor_of, sample_factory):
    sample_factory(client_user)
    sample_factory(client_user, status=SampleStatus.ANALYZING)
    sample_factory(client_user, status=SampleStatus.REPORTED, grade=Decimal("1.2"))
    sample_factory(other_client, mineral="AU", unit="GRAMS_PER_TON")

    mine = svc.sample_stats(actor=actor_of(client_user))
    assert mine["total_samples"] == 3
    assert mine["active_samples"] == 2
    assert mine["analyzing_samples"] == 1
    assert mine["completed_samples"] == 1
    by_status = {row["status"]: row for row in mine["samples_by_status"]}
    assert by_status["REPORTED"] == {"status": "REPORTED", "count": 1, "percentage": 33}

    everything = svc.sample_stats(actor=actor_of(supervisor_user))
    assert everything["total_samples"] == 4
    by_mineral = {row["mineral"]: row["count"] for row in everything["samples_by_mineral"]}
    assert by_mineral == {"AU": 1, "CU": 3}


@pytest.mark.django_db
def test_dashboard_stats_shape(client_user, actor_of, sample_factory):
    sample_factory(client_user)
    stats = svc.dashboard_stats(actor=actor_of(client_user))

    assert stats["total_samples"] == 1
    assert len(stats["monthly_trends"]) == 12
    assert stats["monthly_trends"][-1]["samples"] == 1
    assert stats["average_processing_time"] == "0h"
    # SAMPLE_CREATED is attributed to the owner
    assert [a["action"] for a in stats["recent_activities"]] == ["SAMPLE_CREATED"]


@pytest.mark.django_db
def test_recent_activities_hide_errors_and_other_users(client_user, other_client, actor_of, sample_factory):
    sample_factory(other_client)
    AuditLog.objects.create(action=AuditLog.ERROR_ACTION, entity="request", entity_id="500")

    assert svc.recent_activities(actor_of(client_user)) == []


# ------------------------------------------------------------------
# System stats
# ------------------------------------------------------------------

@pytest.mark.django_db
def test_system_stats_requires_privilege(analyst_user, actor_of):
    with pytest.raises(PermissionDenied):
        svc.system_stats(actor=actor_of(analyst_user))


@pytest.mark.django_db
def test_system_health_counts(supervisor_user, client_user, actor_of, sample_factory):
    overdue = sample_factory(client_user)
    overdue.due_date = timezone.now() - timedelta(days=2)
    overdue.save(update_fields=["due_date"])
    sample_factory(client_user, status=SampleStatus.ANALYZING)

    stats = svc.system_stats(actor=actor_of(supervisor_user))
    health = stats["system_health"]

    assert stats["total_samples"] == 2
    assert health["database"] == "healthy"
    assert health["pending_samples"] == 1
    assert health["overdue_samples"] == 1
    assert health["recent_errors"] == 0
    assert health["status"] == "healthy"

    roles = {row["role"]: row["count"] for row in stats["users_by_role"]}
    assert roles["SUPERVISOR"] == 1
    assert roles["CLIENT"] == 1
    assert roles["ANALYST"] == 0


@pytest.mark.django_db
def test_error_threshold_flags_warning(settings, supervisor_user, actor_of):
    settings.RECENT_ERROR_THRESHOLD = 2
    for _ in range(2):
        AuditLog.objects.create(action=AuditLog.ERROR_ACTION, entity="request", entity_id="500")

    health = svc.system_stats(actor=actor_of(supervisor_user))["system_health"]
    assert health["recent_errors"] == 2
    assert health["status"] == "warning"
