"""API error envelope shared by every endpoint under ``/api/``.

Failures are rendered as::

    {"success": false, "detail": "<CODE>", "message": "<text>", "statusCode": <status>}

``error_response`` turns a service ``Err`` into that shape and
``api_exception_handler`` (wired through ``REST_FRAMEWORK["EXCEPTION_HANDLER"]``)
does the same for exceptions raised inside DRF views. Unexpected errors
become a generic 500; their message is only exposed when ``DEBUG`` is on.
"""

import logging
from typing import Optional

from django.conf import settings
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.orders.domain import Err, ErrorKind
from apps.orders.resilience import StorageUnavailable

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_OR_EXPIRED_OTP: status.HTTP_400_BAD_REQUEST,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.STORAGE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.NOTIFICATION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

MSG_STORAGE_UNAVAILABLE = "Database connection failed. Please check your database configuration."


def envelope(code: str, message: str, status_code: int) -> dict:
    return {"success": False, "detail": code, "message": message, "statusCode": status_code}


def error_response(err: Err, headers: Optional[dict] = None) -> Response:
    """Render a service ``Err`` with the status code its kind maps to.

    ``orderId`` is added to the envelope when the order outlived the failure.
    """
    status_code = STATUS_BY_KIND[err.kind]
    body = envelope(err.kind.value, err.message, status_code)
    if err.order_id:
        body["orderId"] = err.order_id
    return Response(body, status=status_code, headers=headers)


def validation_error(message: str) -> Response:
    return error_response(Err(ErrorKind.VALIDATION, message))


def _first_message(detail) -> str:
    """Flatten DRF error details to the first human readable message."""
    if isinstance(detail, dict):
        for value in detail.values():
            return _first_message(value)
        return "Invalid request"
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else "Invalid request"
    return str(detail)


def api_exception_handler(exc, context):
    """DRF exception handler producing the API error envelope.

    - ``StorageUnavailable`` maps to 503 ``DATABASE_CONNECTION_ERROR``.
    - DRF ``APIException`` subclasses keep their status code; throttling
      keeps its ``Retry-After`` header.
    - Anything else is logged and answered with a generic 500.
    """
    if isinstance(exc, StorageUnavailable):
        logger.error("storage unavailable", extra={"error": str(exc.last_error)})
        return error_response(Err(ErrorKind.STORAGE_UNAVAILABLE, MSG_STORAGE_UNAVAILABLE))

    response = exception_handler(exc, context)
    if response is not None:
        if isinstance(exc, exceptions.Throttled):
            code = ErrorKind.RATE_LIMITED.value
            message = "Too many requests, please try again later."
        elif isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed, exceptions.PermissionDenied)):
            code = ErrorKind.FORBIDDEN.value
            message = "Unauthorized"
        elif isinstance(exc, (exceptions.NotFound, Http404)):
            code = ErrorKind.NOT_FOUND.value
            message = "Not found"
        elif isinstance(exc, (exceptions.ValidationError, exceptions.ParseError, exceptions.UnsupportedMediaType)):
            code = ErrorKind.VALIDATION.value
            message = _first_message(response.data)
        else:
            code = getattr(exc, "default_code", "error").upper()
            message = _first_message(response.data)
        response.data = envelope(code, message, response.status_code)
        return response

    logger.exception("unhandled api error")
    message = str(exc) if settings.DEBUG else "Internal server error"
    return Response(envelope("INTERNAL_ERROR", message, 500), status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def pydantic_error(exc) -> Response:
    """400 envelope for a pydantic ``ValidationError``, naming the first bad field."""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()))
    msg = str(first.get("msg", "Invalid request"))
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return validation_error(f"{field}: {msg}" if field else msg)
