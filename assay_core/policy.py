# assay_core/policy.py
from __future__ import annotations

from typing import Any, Dict, Optional

from rest_framework.exceptions import NotAuthenticated, PermissionDenied
from rest_framework.permissions import BasePermission

from .identity import Actor, actor_from_request
from .models import Role


# ------------------------------------------------------------------
# Role definitions
# ------------------------------------------------------------------
PRIVILEGED_ROLES = {Role.ADMIN.value, Role.SUPERVISOR.value}
STAFF_ROLES = {Role.ADMIN.value, Role.ANALYST.value, Role.SUPERVISOR.value}

CONFIDENTIAL = "Confidential"


# ------------------------------------------------------------------
# Decisions
# ------------------------------------------------------------------
def is_privileged(actor: Optional[Actor]) -> bool:
    return actor is not None and actor.role in PRIVILEGED_ROLES


def can_access(actor: Optional[Actor], owner_id) -> bool:
    """
    ADMIN and SUPERVISOR see everything; everyone else only what they own.
    Anonymous callers see nothing.
    """
    if actor is None:
        return False
    if is_privileged(actor):
        return True
    return owner_id is not None and str(owner_id) == str(actor.user_id)


def require_actor(actor: Optional[Actor]) -> Actor:
    if actor is None:
        raise NotAuthenticated()
    return actor


def ensure_can_access(actor: Optional[Actor], owner_id) -> None:
    require_actor(actor)
    if not can_access(actor, owner_id):
        raise PermissionDenied("You do not have access to this resource.")


def can_modify(actor: Optional[Actor], owner_id) -> bool:
    """
    Laboratory staff work on every sample; clients only on their own.
    """
    if actor is None:
        return False
    if actor.role in STAFF_ROLES:
        return True
    return owner_id is not None and str(owner_id) == str(actor.user_id)


def ensure_can_modify(actor: Optional[Actor], owner_id) -> None:
    require_actor(actor)
    if not can_modify(actor, owner_id):
        raise PermissionDenied("You do not have access to this resource.")


def require_role(actor: Optional[Actor], *roles: str) -> Actor:
    actor = require_actor(actor)
    if actor.role not in {str(r) for r in roles}:
        raise PermissionDenied("Your role does not permit this operation.")
    return actor


def scope_queryset(qs, actor: Optional[Actor], owner_field: str = "client"):
    if actor is None:
        return qs.none()
    if is_privileged(actor):
        return qs
    return qs.filter(**{f"{owner_field}_id": actor.user_id})


def public_client_view(user) -> Dict[str, Any]:
    """
    Client block shown on unauthenticated reads. Company is preserved.
    """
    profile = getattr(user, "profile", None) if user is not None else None
    company = getattr(profile, "company", "") or ""
    return {
        "id": "",
        "name": CONFIDENTIAL,
        "email": "",
        "company": company or CONFIDENTIAL,
    }


# ------------------------------------------------------------------
# DRF permission classes
# ------------------------------------------------------------------
class _RolePermission(BasePermission):
    allowed_roles: set = set()

    def has_permission(self, request, view):
        actor = actor_from_request(request)
        return actor is not None and actor.role in self.allowed_roles


class IsPrivileged(_RolePermission):
    message = "Administrator or supervisor role required."
    allowed_roles = PRIVILEGED_ROLES


class IsStaffRole(_RolePermission):
    message = "Laboratory staff role required."
    allowed_roles = STAFF_ROLES


class IsAdmin(_RolePermission):
    message = "Administrator role required."
    allowed_roles = {Role.ADMIN.value}
