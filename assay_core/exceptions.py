# assay_core/exceptions.py
from __future__ import annotations

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


# ===============================================================
# Domain errors not covered by DRF
# ===============================================================
class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state of the resource."
    default_code = "conflict"


class UpstreamError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "A storage or external service failure occurred."
    default_code = "upstream_error"


def _django_validation_detail(exc: DjangoValidationError):
    if hasattr(exc, "error_dict"):
        return exc.message_dict
    return {"non_field_errors": exc.messages}


def _translate(exc):
    if isinstance(exc, DjangoValidationError):
        return ValidationError(_django_validation_detail(exc))
    if isinstance(exc, IntegrityError):
        return Conflict()
    if isinstance(exc, DatabaseError):
        return UpstreamError()
    return exc


def _record_error(request, exc, status_code: int) -> None:
    from .models import AuditLog

    user = getattr(request, "user", None)
    try:
        with transaction.atomic():
            AuditLog.objects.create(
                user=user if user is not None and user.is_authenticated else None,
                action=AuditLog.ERROR_ACTION,
                entity="request",
                entity_id=str(status_code),
                details={
                    "path": getattr(request, "path", ""),
                    "method": getattr(request, "method", ""),
                    "error": exc.__class__.__name__,
                },
            )
    except DatabaseError:
        logger.exception("Could not record error for %s", getattr(request, "path", ""))


def api_exception_handler(exc, context):
    """
    DRF handler that maps Django and database errors onto the API error
    kinds and records every 5xx for system health reporting.
    """
    original = exc
    exc = _translate(exc)
    response = exception_handler(exc, context)

    if response is None:
        return None

    if response.status_code >= 500:
        request = context.get("request")
        logger.error(
            "Server error on %s: %s",
            getattr(request, "path", "?"),
            original,
            exc_info=(type(original), original, original.__traceback__),
        )
        if request is not None:
            _record_error(request, original, response.status_code)

    return response
