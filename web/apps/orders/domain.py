"""Domain models, result types and ports for the checkout flow.

This module holds the plain dataclasses the services operate on, the order
status graph, the ``Ok``/``Err`` result types returned by every service
operation, and the protocol definitions (ports) for the collaborators the
state machine drives: the order repository, the notification gateway, the
blob store and the payment QR provider. Nothing here touches Django.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, List, Optional, Protocol, TypeVar, Union
import uuid


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle states of an order.

    PENDING, EMAIL_VERIFIED and PAYMENT_UPLOADED are transient; REJECTED and
    COMPLETED are terminal. APPROVED is held only while the bundle delivery
    email is being sent.
    """

    PENDING = "PENDING"
    EMAIL_VERIFIED = "EMAIL_VERIFIED"
    PAYMENT_UPLOADED = "PAYMENT_UPLOADED"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.EMAIL_VERIFIED},
    OrderStatus.EMAIL_VERIFIED: {OrderStatus.PAYMENT_UPLOADED},
    # a fresh screenshot may replace the previous one until an admin decides
    OrderStatus.PAYMENT_UPLOADED: {OrderStatus.PAYMENT_UPLOADED, OrderStatus.APPROVED, OrderStatus.REJECTED},
    OrderStatus.APPROVED: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.REJECTED: set(),
}


class ErrorKind(str, Enum):
    """Closed set of failures a service operation can report.

    The value is the machine-readable code returned to API clients.
    """

    VALIDATION = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    INVALID_STATE = "INVALID_STATE"
    INVALID_OR_EXPIRED_OTP = "INVALID_OR_EXPIRED_OTP"
    RATE_LIMITED = "RATE_LIMITED"
    STORAGE_UNAVAILABLE = "DATABASE_CONNECTION_ERROR"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"


# ---- Results ----
T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """A failed operation.

    Attributes:
        kind: The failure category.
        message: Stable, user-facing description. Never carries internal
            details such as which part of an OTP check failed.
        order_id: Set when the order was persisted before the failure, so
            the client can still continue with it.
    """

    kind: ErrorKind
    message: str
    order_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Bundle:
    """A purchasable digital product as seen by the checkout flow."""

    id: str
    name: str
    slug: str
    price: Decimal
    is_active: bool = True
    download_url: str = ""


@dataclass(frozen=True)
class OrderItem:
    """A single line of an order.

    Attributes:
        bundle_id: Identifier of the purchased bundle.
        price: Unit price captured at checkout time.
        quantity: Units purchased (always 1 for checkout orders).
        bundle_name: Denormalized bundle name, for listings and emails.
        bundle_slug: Denormalized bundle slug.
        download_url: Downloadable content reference, used on delivery.
    """

    bundle_id: str
    price: Decimal
    quantity: int = 1
    bundle_name: str = ""
    bundle_slug: str = ""
    download_url: str = ""


@dataclass
class Order:
    """Container for order data.

    ``email_otp`` and ``email_otp_expires`` describe the single live OTP
    challenge; both are None once the email has been verified.
    """

    id: uuid.UUID | None
    customer_name: str
    email: str
    items: List[OrderItem]
    total_amount: Decimal
    status: OrderStatus = OrderStatus.PENDING
    email_verified: bool = False
    email_otp: Optional[str] = None
    email_otp_expires: Optional[datetime] = None
    payment_screenshot: Optional[str] = None
    admin_notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class OrderFilter:
    """Validated listing parameters for the admin order listing."""

    status: Optional[OrderStatus] = None
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class OrderPage:
    orders: List[Order]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


@dataclass(frozen=True)
class Actor:
    """The caller of an admin operation."""

    id: str
    is_admin: bool = False


@dataclass(frozen=True)
class PaymentInstructions:
    """What the customer needs to pay after verifying the email.

    Attributes:
        qr_url: Static merchant QR image; the payer enters the amount.
        upi_link: Order-specific UPI deep link carrying the amount.
    """

    qr_url: str
    upi_link: str = ""


@dataclass(frozen=True)
class Upload:
    """An uploaded payment screenshot as received from the client."""

    data: bytes
    filename: str
    content_type: str = ""


# ---- Ports (DIP) ----
class OrderRepositoryPort(Protocol):
    """Durable storage for bundles and orders."""

    def get_active_bundle(self, bundle_id: str) -> Optional[Bundle]:
        raise NotImplementedError()

    def create(self, order: Order) -> Order:
        """Persist a new order with its items and return it with its id."""
        raise NotImplementedError()

    def get(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError()

    def update(self, order: Order, fields: List[str]) -> None:
        """Write back the listed fields of ``order``."""
        raise NotImplementedError()

    def list(self, order_filter: OrderFilter) -> OrderPage:
        raise NotImplementedError()


class NotificationPort(Protocol):
    """Transactional email delivery. Failures raise."""

    def send_otp_email(self, to: str, code: str, name: str, expiry_minutes: int) -> None:
        raise NotImplementedError()

    def send_rejection_email(self, to: str, name: str, reason: str, order_id: str) -> None:
        raise NotImplementedError()

    def send_bundle_delivery_email(self, to: str, name: str, items: List[OrderItem], order_id: str) -> None:
        raise NotImplementedError()


class BlobStorePort(Protocol):
    """Opaque object storage returning a retrievable URL."""

    def store(self, data: bytes, filename: str, category: str, owner_id: str) -> str:
        raise NotImplementedError()


class PaymentQrPort(Protocol):
    def instructions_for(self, order: Order) -> PaymentInstructions:
        raise NotImplementedError()
