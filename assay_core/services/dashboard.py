# assay_core/services/dashboard.py
"""
Read-only rollups over the sample registry.

Every count is scoped with the same ownership rule as single reads:
administrators and supervisors see the whole laboratory, everyone else
only their own samples. Nothing here is cached.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, connection
from django.db.models import Count
from django.db.models.functions import TruncMonth
from django.utils import timezone

from assay_core.identity import Actor
from assay_core.models import AuditLog, Report, Role, Sample, SampleStatus
from assay_core.policy import (
    PRIVILEGED_ROLES,
    is_privileged,
    require_actor,
    require_role,
    scope_queryset,
)

logger = logging.getLogger(__name__)


TREND_MONTHS = 12
RECENT_ACTIVITY_LIMIT = 10
PENDING_STATES = (SampleStatus.RECEIVED, SampleStatus.PREP)


# ===============================================================
# Pure helpers
# ===============================================================

def round_half_up(value, places: int = 0) -> Decimal:
    quantum = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def percentage(part: int, total: int) -> int:
    if not total:
        return 0
    return int(round_half_up(Decimal(part) * 100 / Decimal(total)))


def month_keys(now: Optional[datetime] = None, months: int = TREND_MONTHS) -> List[str]:
    """
    ``YYYY-MM`` keys for the trailing ``months`` calendar months, oldest
    first, ending with the month of ``now``.
    """
    now = timezone.localtime(now or timezone.now())
    year, month = now.year, now.month
    keys: List[str] = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    keys.reverse()
    return keys


def trend_start(now: Optional[datetime] = None, months: int = TREND_MONTHS) -> datetime:
    now = timezone.localtime(now or timezone.now())
    first = month_keys(now, months)[0]
    year, month = (int(p) for p in first.split("-"))
    return now.replace(year=year, month=month, day=1, hour=0, minute=0, second=0, microsecond=0)


def average_processing_time(samples: Iterable[Any]) -> str:
    """
    Mean received -> completed duration as whole hours below a day,
    otherwise whole days. "0h" when nothing has completed.
    """
    durations = [
        (s.completed_at - s.received_at).total_seconds() / 3600
        for s in samples
        if getattr(s, "completed_at", None) and getattr(s, "received_at", None)
    ]
    if not durations:
        return "0h"

    hours = int(round_half_up(sum(durations) / len(durations)))
    if hours < 24:
        return f"{hours}h"
    return f"{int(round_half_up(Decimal(hours) / 24))}d"


def monthly_growth(trend: Sequence[Dict[str, Any]]) -> float:
    if len(trend) < 2:
        return 0
    current = trend[-1]["samples"]
    previous = trend[-2]["samples"]
    if previous == 0:
        return 100 if current > 0 else 0
    return float(round_half_up(Decimal(current - previous) * 100 / Decimal(previous), 1))


# ===============================================================
# Scoped rollups
# ===============================================================

def _grouped(qs, field: str, total: int) -> List[Dict[str, Any]]:
    rows = qs.order_by().values(field).annotate(count=Count("id")).order_by(field)
    return [
        {field: row[field], "count": row["count"], "percentage": percentage(row["count"], total)}
        for row in rows
    ]


def _monthly_counts(qs, field: str, start: datetime) -> Dict[str, int]:
    rows = (
        qs.filter(**{f"{field}__gte": start})
        .order_by()
        .annotate(month=TruncMonth(field))
        .values("month")
        .annotate(count=Count("id"))
    )
    out: Dict[str, int] = {}
    for row in rows:
        month = row["month"]
        if month is None:
            continue
        key = f"{timezone.localtime(month):%Y-%m}" if timezone.is_aware(month) else f"{month:%Y-%m}"
        out[key] = out.get(key, 0) + row["count"]
    return out


def monthly_trend(samples_qs, reports_qs, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    start = trend_start(now)
    sample_counts = _monthly_counts(samples_qs, "received_at", start)
    report_counts = _monthly_counts(reports_qs, "issued_at", start)
    return [
        {"month": key, "samples": sample_counts.get(key, 0), "reports": report_counts.get(key, 0)}
        for key in month_keys(now)
    ]


def recent_activities(actor: Actor, limit: int = RECENT_ACTIVITY_LIMIT) -> List[Dict[str, Any]]:
    qs = AuditLog.objects.select_related("user", "user__profile").exclude(
        action=AuditLog.ERROR_ACTION
    )
    if not is_privileged(actor):
        qs = qs.filter(user_id=actor.user_id)

    out = []
    for entry in qs.order_by("-created_at", "-id")[:limit]:
        user = entry.user
        profile = getattr(user, "profile", None) if user else None
        out.append(
            {
                "id": entry.pk,
                "action": entry.action,
                "entity": entry.entity,
                "entity_id": entry.entity_id,
                "timestamp": entry.created_at,
                "user": {
                    "name": getattr(profile, "display_name", "") if user else "",
                    "email": user.email if user else "",
                },
            }
        )
    return out


def sample_stats(*, actor: Optional[Actor]) -> Dict[str, Any]:
    actor = require_actor(actor)
    qs = scope_queryset(Sample.objects.all(), actor, "client")

    total = qs.count()
    return {
        "total_samples": total,
        "active_samples": qs.exclude(status=SampleStatus.REPORTED).count(),
        "analyzing_samples": qs.filter(status=SampleStatus.ANALYZING).count(),
        "completed_samples": qs.filter(status=SampleStatus.REPORTED).count(),
        "samples_by_status": _grouped(qs, "status", total),
        "samples_by_mineral": _grouped(qs, "mineral", total),
    }


def dashboard_stats(*, actor: Optional[Actor], now: Optional[datetime] = None) -> Dict[str, Any]:
    actor = require_actor(actor)
    now = now or timezone.now()

    samples = scope_queryset(Sample.objects.all(), actor, "client")
    reports = scope_queryset(Report.objects.all(), actor, "sample__client")

    stats = sample_stats(actor=actor)
    trend = monthly_trend(samples, reports, now)
    completed = samples.filter(
        status=SampleStatus.REPORTED,
        completed_at__isnull=False,
    ).only("received_at", "completed_at")

    stats.update(
        {
            "average_processing_time": average_processing_time(completed),
            "monthly_growth": monthly_growth(trend),
            "monthly_trends": trend,
            "recent_activities": recent_activities(actor),
        }
    )
    return stats


# ===============================================================
# System health (privileged)
# ===============================================================

def database_ok() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        return True
    except DatabaseError:
        logger.error("Database health check failed", exc_info=True)
        return False


def overdue_samples(now: Optional[datetime] = None):
    now = now or timezone.now()
    return Sample.objects.filter(due_date__lt=now).exclude(status=SampleStatus.REPORTED)


def recent_error_count(now: Optional[datetime] = None, hours: int = 24) -> int:
    now = now or timezone.now()
    return AuditLog.objects.filter(
        action=AuditLog.ERROR_ACTION,
        created_at__gte=now - timedelta(hours=hours),
    ).count()


def system_health(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or timezone.now()
    db_ok = database_ok()
    pending = Sample.objects.filter(status__in=PENDING_STATES).count() if db_ok else 0
    overdue = overdue_samples(now).count() if db_ok else 0
    errors = recent_error_count(now) if db_ok else 0

    healthy = (
        db_ok
        and overdue < getattr(settings, "OVERDUE_WARNING_THRESHOLD", 10)
        and errors < getattr(settings, "RECENT_ERROR_THRESHOLD", 5)
    )
    return {
        "database": "healthy" if db_ok else "error",
        "pending_samples": pending,
        "overdue_samples": overdue,
        "recent_errors": errors,
        "status": "healthy" if healthy else "warning",
    }


def users_by_role() -> List[Dict[str, Any]]:
    User = get_user_model()
    counts = {role: 0 for role in Role.values}
    rows = (
        User.objects.filter(profile__isnull=False)
        .values("profile__role")
        .annotate(count=Count("id"))
    )
    for row in rows:
        counts[row["profile__role"]] = row["count"]
    return [{"role": role, "count": count} for role, count in counts.items()]


def system_stats(*, actor: Optional[Actor], now: Optional[datetime] = None) -> Dict[str, Any]:
    require_role(actor, *PRIVILEGED_ROLES)
    User = get_user_model()
    return {
        "total_users": User.objects.count(),
        "active_users": User.objects.filter(is_active=True).count(),
        "total_samples": Sample.objects.count(),
        "total_reports": Report.objects.count(),
        "users_by_role": users_by_role(),
        "system_health": system_health(now),
    }
