# assay_core/services/accounts.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction
from django.db.models import Q
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken

from assay_core.exceptions import Conflict
from assay_core.identity import Actor
from assay_core.labels import to_token
from assay_core.models import Role, UserProfile
from assay_core.policy import PRIVILEGED_ROLES, require_actor, require_role
from assay_core.services.audit import record_activity

logger = logging.getLogger(__name__)

User = get_user_model()

PROFILE_FIELDS = ("display_name", "company", "phone")


# ===============================================================
# Helpers
# ===============================================================

def normalize_email(value) -> str:
    email = str(value or "").strip().lower()
    try:
        validate_email(email)
    except DjangoValidationError:
        raise ValidationError({"email": ["Enter a valid email address."]})
    return email


def _email_taken(email: str, exclude_pk=None) -> bool:
    qs = User.objects.filter(Q(email__iexact=email) | Q(username__iexact=email))
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    return qs.exists()


def _check_password(password: str, user=None) -> None:
    try:
        validate_password(password, user=user)
    except DjangoValidationError as e:
        raise ValidationError({"password": list(e.messages)})


def _clean_role(value) -> str:
    role = to_token("role", value)
    if role is None:
        raise ValidationError({"role": [f"'{value}' is not a valid role."]})
    return role


def _profile(user) -> UserProfile:
    # reuse the cached instance so serializers see the changes
    try:
        return user.profile
    except UserProfile.DoesNotExist:
        return UserProfile.objects.create(user=user)


def _apply_profile(profile: UserProfile, data: Dict[str, Any]) -> list:
    changed = []
    for field in PROFILE_FIELDS:
        if field in data and data[field] is not None:
            setattr(profile, field, str(data[field]).strip())
            changed.append(field)
    return changed


def revoke_refresh_tokens(user) -> int:
    """
    Blacklists every outstanding refresh token of the user.
    """
    count = 0
    for token in OutstandingToken.objects.filter(user=user):
        _, created = BlacklistedToken.objects.get_or_create(token=token)
        count += int(created)
    return count


def _get_user(user_id):
    user = User.objects.select_related("profile").filter(pk=user_id).first() if str(user_id).isdigit() else None
    if user is None:
        raise NotFound("User not found.")
    return user


# ===============================================================
# Self-service
# ===============================================================

@transaction.atomic
def register_user(
    *,
    email,
    password: str,
    display_name: str = "",
    company: str = "",
    phone: str = "",
    role: str = Role.CLIENT,
):
    email = normalize_email(email)
    if _email_taken(email):
        raise Conflict("A user with this email already exists.")

    _check_password(password, User(username=email, email=email))

    try:
        with transaction.atomic():
            user = User.objects.create_user(username=email, email=email, password=password)
    except IntegrityError:
        raise Conflict("A user with this email already exists.")

    profile = _profile(user)
    _apply_profile(profile, {"display_name": display_name, "company": company, "phone": phone})
    profile.role = role
    profile.save()

    logger.info("Registered user %s as %s", email, role)
    return user


def update_profile(*, actor: Optional[Actor], data: Dict[str, Any]):
    actor = require_actor(actor)
    user = _get_user(actor.user_id)
    profile = _profile(user)
    changed = _apply_profile(profile, data)
    if changed:
        profile.save(update_fields=changed + ["updated_at"])
        logger.info("User %s updated profile fields %s", actor.user_id, changed)
    return user


@transaction.atomic
def change_password(*, actor: Optional[Actor], current_password: str, new_password: str) -> None:
    actor = require_actor(actor)
    user = _get_user(actor.user_id)

    if not user.check_password(current_password or ""):
        raise ValidationError({"current_password": ["Current password is incorrect."]})
    _check_password(new_password, user)

    user.set_password(new_password)
    user.save(update_fields=["password"])
    revoked = revoke_refresh_tokens(user)
    logger.info("User %s changed password; %s refresh tokens revoked", actor.user_id, revoked)


def logout_everywhere(*, actor: Optional[Actor]) -> int:
    actor = require_actor(actor)
    user = _get_user(actor.user_id)
    revoked = revoke_refresh_tokens(user)
    logger.info("User %s signed out of all sessions; %s refresh tokens revoked", actor.user_id, revoked)
    record_activity(actor=actor, action="LOGOUT_ALL", entity="user", entity_id=actor.user_id)
    return revoked


# ===============================================================
# User management (reads: ADMIN, SUPERVISOR; writes: ADMIN)
# ===============================================================

def list_users(*, actor: Optional[Actor]):
    require_role(actor, *PRIVILEGED_ROLES)
    return User.objects.select_related("profile").order_by("-date_joined", "-id")


def get_user(user_id, *, actor: Optional[Actor]):
    require_role(actor, *PRIVILEGED_ROLES)
    return _get_user(user_id)


def create_user(*, actor: Optional[Actor], data: Dict[str, Any]):
    actor = require_role(actor, Role.ADMIN)
    role = _clean_role(data.get("role") or Role.CLIENT)
    user = register_user(
        email=data.get("email"),
        password=data.get("password") or "",
        display_name=data.get("display_name") or "",
        company=data.get("company") or "",
        phone=data.get("phone") or "",
        role=role,
    )
    record_activity(
        actor=actor,
        action="USER_CREATED",
        entity="user",
        entity_id=user.pk,
        details={"email": user.email, "role": role},
    )
    return user


@transaction.atomic
def update_user(user_id, *, actor: Optional[Actor], data: Dict[str, Any]):
    actor = require_role(actor, Role.ADMIN)
    user = _get_user(user_id)
    profile = _profile(user)

    user_fields = []
    if data.get("email"):
        email = normalize_email(data["email"])
        if email != user.email and _email_taken(email, exclude_pk=user.pk):
            raise Conflict("A user with this email already exists.")
        user.email = email
        user.username = email
        user_fields += ["email", "username"]

    if "is_active" in data and data["is_active"] is not None:
        if not data["is_active"] and user.pk == actor.user_id:
            raise PermissionDenied("You cannot deactivate your own account.")
        user.is_active = bool(data["is_active"])
        user_fields.append("is_active")

    profile_fields = _apply_profile(profile, data)
    if data.get("role"):
        profile.role = _clean_role(data["role"])
        profile_fields.append("role")
    if "is_verified" in data and data["is_verified"] is not None:
        profile.is_verified = bool(data["is_verified"])
        profile_fields.append("is_verified")

    if user_fields:
        user.save(update_fields=user_fields)
    if profile_fields:
        profile.save(update_fields=profile_fields + ["updated_at"])

    if "is_active" in user_fields and not user.is_active:
        revoke_refresh_tokens(user)

    logger.info("User %s updated by %s: %s", user.pk, actor.user_id, user_fields + profile_fields)
    record_activity(
        actor=actor,
        action="USER_UPDATED",
        entity="user",
        entity_id=user.pk,
        details={"fields": sorted(set(user_fields + profile_fields))},
    )
    return user


def deactivate_user(user_id, *, actor: Optional[Actor]):
    """
    Users are never hard-deleted.
    """
    return update_user(user_id, actor=actor, data={"is_active": False})