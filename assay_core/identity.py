# assay_core/identity.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import Role


@dataclass(frozen=True)
class Actor:
    """
    Resolved caller identity passed explicitly into every service call.
    """

    user_id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def role_for_user(user) -> str:
    if getattr(user, "is_superuser", False):
        return Role.ADMIN.value
    profile = getattr(user, "profile", None)
    if profile is None:
        return Role.CLIENT.value
    return profile.role


def actor_for_user(user) -> Optional[Actor]:
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    if not user.is_active:
        return None
    return Actor(
        user_id=user.pk,
        email=user.email or user.get_username(),
        role=role_for_user(user),
    )


def actor_from_request(request) -> Optional[Actor]:
    """
    Returns None for anonymous requests.
    """
    return actor_for_user(getattr(request, "user", None))
