# assay_core/tests/conftest.py

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, Callable

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from assay_core.identity import Actor, actor_for_user
from assay_core.models import Role, Sample, SampleStatus
from assay_core.services.samples import apply_status, create_sample

PASSWORD = "Quartz-Vein-2931"


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture
def make_user(db) -> Callable[..., Any]:
    """
    Creates an active user with a profile in the given role.
    """
    User = get_user_model()

    def _factory(role: str = Role.CLIENT, *, email: str | None = None, company: str = "") -> Any:
        email = email or f"{_rand(role.lower())}@example.com"
        user = User.objects.create_user(username=email, email=email, password=PASSWORD)
        profile = user.profile
        profile.role = role
        profile.display_name = email.split("@")[0]
        profile.company = company
        profile.save()
        return User.objects.select_related("profile").get(pk=user.pk)

    return _factory


@pytest.fixture
def admin_user(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def supervisor_user(make_user):
    return make_user(Role.SUPERVISOR)


@pytest.fixture
def analyst_user(make_user):
    return make_user(Role.ANALYST)


@pytest.fixture
def client_user(make_user):
    return make_user(Role.CLIENT, company="Katanga Copper SARL")


@pytest.fixture
def other_client(make_user):
    return make_user(Role.CLIENT, company="Kolwezi Cobalt Ltd")


def as_actor(user) -> Actor:
    return actor_for_user(user)


@pytest.fixture
def actor_of() -> Callable[[Any], Actor]:
    return as_actor


@pytest.fixture
def sample_factory(db) -> Callable[..., Sample]:
    """
    Registers a sample through the service and optionally forces its status.
    """

    def _factory(owner, *, status: str | None = None, grade: Decimal | None = None, **extra: Any) -> Sample:
        data = {
            "mineral": "CU",
            "site": extra.pop("site", "Kamoto Pit 3"),
            "unit": "PERCENT",
            "mass": Decimal("2.50"),
        }
        data.update(extra)
        sample = create_sample(actor=as_actor(owner), data=data)

        if status is not None or grade is not None:
            fields = []
            if grade is not None:
                sample.grade = grade
                fields.append("grade")
            if status is not None and status != SampleStatus.RECEIVED:
                fields += apply_status(sample, status)
            if fields:
                sample.save(update_fields=fields)
        return sample

    return _factory
