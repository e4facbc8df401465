"""HTTP views for checkout and admin order review.

Views are kept small: they validate the request with a Pydantic DTO,
delegate to a service obtained from ``providers`` and render either the
success body or the error envelope for the returned ``Err``.

Idempotency: when an ``Idempotency-Key`` header is sent to the create
endpoint, the first request is processed and its response stored; retries
with the same payload replay that response with ``Idempotent-Replay: true``.
Reusing a key with a different payload, or while its first request is
still running, answers 409.
"""

from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from gateway.errors import envelope, error_response, pydantic_error, validation_error
from gateway.throttling import GeneralThrottle, OtpThrottle, UploadThrottle

from .domain import Actor, Upload
from .idempotency import IdempotencyConflict, IdempotencyInProgress, finalize, get_or_create_idempotent, release
from .providers import get_checkout_service, get_review_service
from .schemas import (
    ApproveOrderDTO,
    CreateOrderDTO,
    OrderListQuery,
    OrderReadDTO,
    RejectOrderDTO,
    ResendOtpDTO,
    VerifyEmailDTO,
)


def _actor(request) -> Actor:
    user = request.user
    ident = str(user.pk) if getattr(user, "pk", None) is not None else user.get_username()
    return Actor(id=ident, is_admin=bool(user.is_staff))


def _payload(request) -> dict:
    data = request.data
    if hasattr(data, "dict"):
        return data.dict()
    return data if isinstance(data, dict) else {}


class CheckoutCreateView(APIView):
    """Open an order for one bundle and email the verification OTP."""

    throttle_classes = [GeneralThrottle, OtpThrottle]

    def post(self, request):
        """Create a PENDING order.

        Returns:
            Response: One of the following responses.
            - 201 with {success, orderId, message} when the order is created.
            - 201 replayed from storage when the same idempotency key and
              payload are retried.
            - 409 ``IDEMPOTENCY_CONFLICT`` on key reuse with another payload.
            - 409 ``IDEMPOTENCY_IN_PROGRESS`` while the key's first request runs.
            - 400 for validation errors, 404 for an unknown or inactive bundle.
            - 500 ``NOTIFICATION_FAILED`` with the ``orderId`` when the order
              was stored but the OTP email could not be sent.
        """
        idem_key = request.headers.get("Idempotency-Key")
        payload = _payload(request)

        try:
            dto = CreateOrderDTO.model_validate(payload)
        except ValidationError as e:
            return pydantic_error(e)

        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, payload)
            except IdempotencyConflict:
                body = envelope("IDEMPOTENCY_CONFLICT", "Idempotency key reused with a different payload", 409)
                return Response(body, status=status.HTTP_409_CONFLICT)
            except IdempotencyInProgress:
                body = envelope("IDEMPOTENCY_IN_PROGRESS", "A request with this idempotency key is in progress", 409)
                return Response(body, status=status.HTTP_409_CONFLICT)
            if existing:
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        try:
            result = get_checkout_service().create_order(dto.bundle_id, dto.name, dto.email)
        except Exception:
            # rendered by api_exception_handler; the key stays usable
            if rec:
                release(rec)
            raise

        if not result.ok:
            resp = error_response(result)
            if rec:
                finalize(rec, resp.status_code, resp.data, order_id=result.order_id)
            return resp

        order = result.value
        body = {
            "success": True,
            "orderId": str(order.id),
            "message": "Order created. Please check your email for OTP verification.",
        }
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class ResendOtpView(APIView):
    throttle_classes = [GeneralThrottle, OtpThrottle]

    def post(self, request):
        try:
            dto = ResendOtpDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)

        result = get_checkout_service().resend_otp(dto.order_id)
        if not result.ok:
            return error_response(result)
        return Response({"success": True, "message": "OTP resent successfully"})


class VerifyEmailView(APIView):
    """Check the OTP and hand out the payment instructions."""

    throttle_classes = [GeneralThrottle, OtpThrottle]

    def post(self, request):
        try:
            dto = VerifyEmailDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)

        result = get_checkout_service().verify_email(dto.order_id, dto.otp)
        if not result.ok:
            return error_response(result)
        instructions = result.value
        return Response(
            {
                "success": True,
                "paymentQr": instructions.qr_url,
                "upiLink": instructions.upi_link,
                "message": "Email verified successfully",
            }
        )


class UploadPaymentView(APIView):
    """Accept the payment screenshot as multipart ``screenshot`` + ``orderId``."""

    throttle_classes = [GeneralThrottle, UploadThrottle]

    def post(self, request):
        order_id = request.data.get("orderId")
        if not order_id:
            return validation_error("Order ID is required")
        screenshot = request.FILES.get("screenshot")
        if screenshot is None:
            return validation_error("Screenshot is required")

        upload = Upload(
            data=screenshot.read(),
            filename=screenshot.name or "screenshot",
            content_type=screenshot.content_type or "",
        )
        result = get_checkout_service().upload_payment_proof(order_id, upload)
        if not result.ok:
            return error_response(result)
        return Response(
            {
                "success": True,
                "screenshotUrl": result.value,
                "message": "Payment screenshot uploaded successfully. Your order is under review.",
            }
        )


class AdminOrdersView(APIView):
    """Paginated order listing for administrators, newest first."""

    permission_classes = [IsAdminUser]
    throttle_classes = [GeneralThrottle]

    def get(self, request):
        try:
            query = OrderListQuery.model_validate(request.query_params.dict())
        except ValidationError as e:
            return pydantic_error(e)

        result = get_review_service().list_orders(_actor(request), query.to_filter())
        if not result.ok:
            return error_response(result)
        page = result.value
        return Response(
            {
                "success": True,
                "data": {
                    "orders": [OrderReadDTO.from_order(o).to_json() for o in page.orders],
                    "pagination": {
                        "page": page.page,
                        "limit": page.limit,
                        "total": page.total,
                        "pages": page.pages,
                    },
                },
            }
        )


class ApproveOrderView(APIView):
    permission_classes = [IsAdminUser]
    throttle_classes = [GeneralThrottle]

    def post(self, request, order_id: str):
        try:
            dto = ApproveOrderDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)

        result = get_review_service().approve_order(_actor(request), order_id, dto.notes)
        if not result.ok:
            return error_response(result)
        return Response(
            {
                "success": True,
                "message": "Order approved and bundle delivered",
                "order": OrderReadDTO.from_order(result.value).to_json(),
            }
        )


class RejectOrderView(APIView):
    permission_classes = [IsAdminUser]
    throttle_classes = [GeneralThrottle]

    def post(self, request, order_id: str):
        try:
            dto = RejectOrderDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)

        result = get_review_service().reject_order(_actor(request), order_id, dto.reason)
        if not result.ok:
            return error_response(result)
        return Response({"success": True, "message": "Order rejected"})

