"""Checkout state machine and admin review workflow.

Both services are stateless orchestrators: every operation reads the order
fresh through the repository, checks the transition is legal, writes the
new state back and only then triggers side effects (emails, blob uploads
happen before the write they depend on). Domain failures are returned as
``Err`` values, never raised.
"""

import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .domain import (
    Actor,
    BlobStorePort,
    Err,
    ErrorKind,
    NotificationPort,
    Ok,
    Order,
    OrderFilter,
    OrderItem,
    OrderPage,
    OrderRepositoryPort,
    OrderStatus,
    PaymentInstructions,
    PaymentQrPort,
    Result,
    Upload,
)
from .resilience import StorageUnavailable

logger = logging.getLogger(__name__)

OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 10
PAYMENT_PROOF_MAX_BYTES = 10 * 1024 * 1024
PAYMENT_PROOF_CATEGORY = "payment-screenshots"

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}

# Stable, deliberately vague messages
MSG_ORDER_NOT_FOUND = "Order not found"
MSG_INVALID_OTP = "Invalid or expired OTP"


def generate_otp() -> str:
    """Return a uniformly random 6-digit numeric code (no leading zero)."""
    return str(100000 + secrets.randbelow(900000))


def sniff_image_type(data: bytes) -> Optional[str]:
    """Detect the image MIME type from the file signature."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _not_found() -> Err:
    return Err(ErrorKind.NOT_FOUND, MSG_ORDER_NOT_FOUND)


class CheckoutService:
    """Drive an order from creation to payment proof submission.

    Args:
        repository: Order/bundle persistence.
        notifier: Transactional email gateway.
        blob_store: Storage for payment screenshots.
        payment_qr: Supplies payment instructions after verification.
        clock: Returns the current aware datetime.
        otp_generator: Returns a fresh one-time code.
        otp_expiry_minutes: Lifetime of a one-time code.
        max_proof_bytes: Upper bound for payment screenshots.
    """

    def __init__(
        self,
        repository: OrderRepositoryPort,
        notifier: NotificationPort,
        blob_store: BlobStorePort,
        payment_qr: PaymentQrPort,
        clock: Callable[[], datetime] = _utcnow,
        otp_generator: Callable[[], str] = generate_otp,
        otp_expiry_minutes: int = OTP_EXPIRY_MINUTES,
        max_proof_bytes: int = PAYMENT_PROOF_MAX_BYTES,
    ):
        self.repository = repository
        self.notifier = notifier
        self.blob_store = blob_store
        self.payment_qr = payment_qr
        self.clock = clock
        self.otp_generator = otp_generator
        self.otp_expiry_minutes = otp_expiry_minutes
        self.max_proof_bytes = max_proof_bytes

    def _new_challenge(self, order: Order) -> None:
        order.email_otp = self.otp_generator()
        order.email_otp_expires = self.clock() + timedelta(minutes=self.otp_expiry_minutes)

    def _send_otp(self, order: Order) -> Result[None]:
        try:
            self.notifier.send_otp_email(order.email, order.email_otp, order.customer_name, self.otp_expiry_minutes)
        except Exception:
            logger.exception("otp email failed", extra={"order_id": str(order.id)})
            return Err(ErrorKind.NOTIFICATION_FAILED, "Failed to send verification email")
        return Ok(None)

    def create_order(self, bundle_id: str, customer_name: str, email: str) -> Result[Order]:
        """Open a PENDING order for one active bundle and email its OTP.

        Returns:
            Ok(Order) with the persisted order, Err(NOT_FOUND) when the
            bundle does not exist or is inactive, Err(NOTIFICATION_FAILED)
            when the order was stored but the OTP email could not be sent.
        """
        bundle = self.repository.get_active_bundle(bundle_id)
        if bundle is None:
            return Err(ErrorKind.NOT_FOUND, "Bundle not found or inactive")

        item = OrderItem(
            bundle_id=bundle.id,
            price=bundle.price,
            quantity=1,
            bundle_name=bundle.name,
            bundle_slug=bundle.slug,
            download_url=bundle.download_url,
        )
        order = Order(
            id=None,
            customer_name=customer_name,
            email=email,
            items=[item],
            total_amount=bundle.price,
            status=OrderStatus.PENDING,
        )
        self._new_challenge(order)
        order = self.repository.create(order)
        logger.info("order created", extra={"order_id": str(order.id), "bundle_id": bundle.id})

        sent = self._send_otp(order)
        if not sent.ok:
            return Err(sent.kind, sent.message, order_id=str(order.id))
        return Ok(order)

    def resend_otp(self, order_id: str) -> Result[None]:
        """Replace the live OTP of an unverified order and email it again."""
        order = self.repository.get(order_id)
        if order is None:
            return _not_found()
        if order.email_verified:
            return Err(ErrorKind.CONFLICT, "Email already verified")

        self._new_challenge(order)
        self.repository.update(order, ["email_otp", "email_otp_expires"])
        logger.info("otp reissued", extra={"order_id": str(order.id)})
        return self._send_otp(order)

    def verify_email(self, order_id: str, code: str) -> Result[PaymentInstructions]:
        """Check the submitted OTP and move the order to EMAIL_VERIFIED.

        A missing code, a wrong code and an expired code all produce the
        same ``Err(INVALID_OR_EXPIRED_OTP)``. On success the code and its
        expiry are erased so the same code cannot be replayed.
        """
        order = self.repository.get(order_id)
        if order is None:
            return _not_found()

        now = self.clock()
        stored = order.email_otp
        matches = stored is not None and hmac.compare_digest(stored.encode("utf-8"), code.encode("utf-8"))
        live = order.email_otp_expires is not None and order.email_otp_expires > now
        if not (matches and live) or not order.status.can_transition_to(OrderStatus.EMAIL_VERIFIED):
            return Err(ErrorKind.INVALID_OR_EXPIRED_OTP, MSG_INVALID_OTP)

        order.email_verified = True
        order.status = OrderStatus.EMAIL_VERIFIED
        order.email_otp = None
        order.email_otp_expires = None
        self.repository.update(order, ["email_verified", "status", "email_otp", "email_otp_expires"])
        logger.info("email verified", extra={"order_id": str(order.id)})
        return Ok(self.payment_qr.instructions_for(order))

    def _validate_upload(self, upload: Upload) -> Optional[Err]:
        if not upload.data:
            return Err(ErrorKind.VALIDATION, "Screenshot is required")
        if len(upload.data) > self.max_proof_bytes:
            return Err(ErrorKind.VALIDATION, "File size must be less than 10MB")
        declared = (upload.content_type or "").split(";")[0].strip().lower()
        detected = sniff_image_type(upload.data)
        if declared not in ALLOWED_IMAGE_TYPES or detected not in ALLOWED_IMAGE_TYPES:
            return Err(ErrorKind.VALIDATION, "File must be an image")
        return None

    def upload_payment_proof(self, order_id: str, upload: Upload) -> Result[str]:
        """Store the payment screenshot and move the order to PAYMENT_UPLOADED.

        Returns:
            Ok(url) of the stored screenshot.
        """
        order = self.repository.get(order_id)
        if order is None:
            return _not_found()
        if not order.email_verified or not order.status.can_transition_to(OrderStatus.PAYMENT_UPLOADED):
            return Err(ErrorKind.INVALID_STATE, "Email not verified")

        invalid = self._validate_upload(upload)
        if invalid is not None:
            return invalid

        url = self.blob_store.store(upload.data, upload.filename, PAYMENT_PROOF_CATEGORY, str(order.id))
        order.payment_screenshot = url
        order.status = OrderStatus.PAYMENT_UPLOADED
        self.repository.update(order, ["payment_screenshot", "status"])
        logger.info("payment proof uploaded", extra={"order_id": str(order.id)})
        return Ok(url)


class OrderReviewService:
    """Admin decisions on orders awaiting payment review."""

    def __init__(
        self,
        repository: OrderRepositoryPort,
        notifier: NotificationPort,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.notifier = notifier
        self.clock = clock

    @staticmethod
    def _forbidden(actor: Actor) -> Optional[Err]:
        if actor is None or not actor.is_admin:
            return Err(ErrorKind.FORBIDDEN, "Unauthorized")
        return None

    def _load_for_decision(self, order_id: str, action: str) -> Result[Order]:
        order = self.repository.get(order_id)
        if order is None:
            return _not_found()
        if order.status != OrderStatus.PAYMENT_UPLOADED:
            return Err(ErrorKind.INVALID_STATE, f"Order cannot be {action} in current status")
        return Ok(order)

    def approve_order(self, actor: Actor, order_id: str, notes: Optional[str] = None) -> Result[Order]:
        """Approve a reviewed payment and deliver the bundles.

        The order is committed as APPROVED first; once the delivery email is
        out it moves to COMPLETED. A failed delivery leaves it APPROVED and
        returns Err(NOTIFICATION_FAILED).
        """
        denied = self._forbidden(actor)
        if denied:
            return denied
        loaded = self._load_for_decision(order_id, "approved")
        if not loaded.ok:
            return loaded
        order = loaded.value

        order.status = OrderStatus.APPROVED
        order.approved_at = self.clock()
        order.approved_by = actor.id
        order.admin_notes = notes
        self.repository.update(order, ["status", "approved_at", "approved_by", "admin_notes"])
        logger.info("order approved", extra={"order_id": str(order.id), "admin": actor.id})

        try:
            self.notifier.send_bundle_delivery_email(order.email, order.customer_name, order.items, str(order.id))
        except Exception:
            logger.exception("bundle delivery email failed", extra={"order_id": str(order.id)})
            return Err(ErrorKind.NOTIFICATION_FAILED, "Order approved but the bundle email could not be sent")

        order.status = OrderStatus.COMPLETED
        self.repository.update(order, ["status"])
        return Ok(order)

    def reject_order(self, actor: Actor, order_id: str, reason: str) -> Result[Order]:
        """Reject a reviewed payment, recording ``reason`` as the admin note.

        The REJECTED state is committed before the customer is emailed; if
        the email fails the order stays rejected and
        Err(NOTIFICATION_FAILED) is returned.
        """
        denied = self._forbidden(actor)
        if denied:
            return denied
        loaded = self._load_for_decision(order_id, "rejected")
        if not loaded.ok:
            return loaded
        order = loaded.value

        order.status = OrderStatus.REJECTED
        order.admin_notes = reason
        self.repository.update(order, ["status", "admin_notes"])
        logger.info("order rejected", extra={"order_id": str(order.id), "admin": actor.id})

        try:
            self.notifier.send_rejection_email(order.email, order.customer_name, reason, str(order.id))
        except Exception:
            logger.exception("rejection email failed", extra={"order_id": str(order.id)})
            return Err(ErrorKind.NOTIFICATION_FAILED, "Order rejected but the customer could not be notified")
        return Ok(order)

    def list_orders(self, actor: Actor, order_filter: OrderFilter) -> Result[OrderPage]:
        """Return one page of orders, newest first.

        Storage outages that survive the repository's retries become
        Err(STORAGE_UNAVAILABLE); any other error propagates.
        """
        denied = self._forbidden(actor)
        if denied:
            return denied
        try:
            page: OrderPage = self.repository.list(order_filter)
        except StorageUnavailable as exc:
            logger.error("order listing unavailable", extra={"error": str(exc.last_error)})
            return Err(
                ErrorKind.STORAGE_UNAVAILABLE,
                "Database connection failed. Please check your database configuration.",
            )
        return Ok(page)
