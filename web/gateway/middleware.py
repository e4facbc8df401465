"""Gateway middleware: request correlation and API payload limits.

``RequestIdMiddleware`` makes sure every incoming HTTP request carries a
request identifier. The identifier is read from the ``X-Request-Id`` header
when the client provides one, or generated server-side otherwise. It is
stored on the ``request`` object and in a context variable so log filters
and outbound HTTP adapters can reach it without passing it explicitly. The
response echoes it back in ``X-Request-ID``.

``ApiSizeLimitMiddleware`` rejects ``/api/`` requests whose declared body
is larger than ``settings.API_MAX_BYTES`` before Django reads the body.
Paths under a prefix of ``settings.API_MAX_BYTES_BY_PREFIX`` use that
prefix's limit instead.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")

DEFAULT_API_MAX_BYTES = 11 * 1024 * 1024


class RequestIdMiddleware(MiddlewareMixin):
    """Set and return a per-request identifier.

    Attributes:
        HEADER (str): Incoming header name in ``request.META`` casing.
        RESPONSE_HEADER (str): Header added to outgoing responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER)
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Attach the request id header, falling back to the ContextVar value."""
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


def _limit_for(path: str) -> int:
    limit = getattr(settings, "API_MAX_BYTES", DEFAULT_API_MAX_BYTES)
    for prefix, prefix_limit in getattr(settings, "API_MAX_BYTES_BY_PREFIX", {}).items():
        if path.startswith(prefix):
            limit = max(limit, prefix_limit)
    return limit


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Answer 413 for oversized ``/api/`` bodies using the API error envelope."""

    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        limit = _limit_for(request.path)
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > limit:
            return JsonResponse(
                {
                    "success": False,
                    "detail": "PAYLOAD_TOO_LARGE",
                    "message": f"Request body must not exceed {limit} bytes",
                    "statusCode": 413,
                },
                status=413,
            )
        return None
