"""Pydantic schemas for the checkout and admin order APIs.

Request DTOs validate and normalize incoming payloads before anything
reaches the services; read DTOs shape the JSON returned to clients and
never include the OTP fields.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import Order, OrderFilter, OrderStatus


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(v: str) -> str:
    v2 = v.strip()
    if not EMAIL_RE.match(v2):
        raise ValueError("Valid email is required")
    return v2


class CreateOrderDTO(BaseModel):
    """Body of ``POST /api/checkout/create``.

    Attributes:
        bundle_id: Bundle to purchase (``bundleId`` on the wire).
        name: Customer name, required and non-blank.
        email: Customer email receiving the OTP.
    """

    bundle_id: str = Field(alias="bundleId", min_length=1)
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(max_length=254)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("Name is required")
        return v2

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class ResendOtpDTO(BaseModel):
    order_id: str = Field(alias="orderId", min_length=1)


class VerifyEmailDTO(BaseModel):
    """Body of ``POST /api/checkout/verify-email``.

    The OTP is compared verbatim; only its length is checked here.
    """

    order_id: str = Field(alias="orderId", min_length=1)
    otp: str = Field(min_length=6, max_length=6)


class ApproveOrderDTO(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=2000)


class RejectOrderDTO(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Rejection reason is required")
        return v


class OrderListQuery(BaseModel):
    """Query string of ``GET /api/admin/orders``.

    ``status`` accepts an order status or ``all``; ``limit`` is capped at 100.
    """

    status: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "" or v.lower() == "all":
            return None
        v2 = v.upper()
        if v2 not in OrderStatus.__members__:
            raise ValueError("Unknown order status")
        return v2

    def to_filter(self) -> OrderFilter:
        return OrderFilter(
            status=OrderStatus(self.status) if self.status else None,
            page=self.page,
            limit=self.limit,
        )


class BundleSummaryDTO(BaseModel):
    id: str
    name: str
    slug: str


class OrderItemReadDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bundle_id: str = Field(serialization_alias="bundleId")
    quantity: int
    price: Decimal
    bundle: BundleSummaryDTO


class OrderReadDTO(BaseModel):
    """Admin view of an order."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    customer_name: str = Field(serialization_alias="customerName")
    email: str
    status: OrderStatus
    total_amount: Decimal = Field(serialization_alias="totalAmount")
    email_verified: bool = Field(serialization_alias="emailVerified")
    payment_screenshot: Optional[str] = Field(default=None, serialization_alias="paymentScreenshot")
    admin_notes: Optional[str] = Field(default=None, serialization_alias="adminNotes")
    approved_at: Optional[datetime] = Field(default=None, serialization_alias="approvedAt")
    approved_by: Optional[str] = Field(default=None, serialization_alias="approvedBy")
    created_at: Optional[datetime] = Field(default=None, serialization_alias="createdAt")
    items: List[OrderItemReadDTO]

    @classmethod
    def from_order(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=str(order.id),
            customer_name=order.customer_name,
            email=order.email,
            status=order.status,
            total_amount=order.total_amount,
            email_verified=order.email_verified,
            payment_screenshot=order.payment_screenshot,
            admin_notes=order.admin_notes,
            approved_at=order.approved_at,
            approved_by=order.approved_by,
            created_at=order.created_at,
            items=[
                OrderItemReadDTO(
                    bundle_id=i.bundle_id,
                    quantity=i.quantity,
                    price=i.price,
                    bundle=BundleSummaryDTO(id=i.bundle_id, name=i.bundle_name, slug=i.bundle_slug),
                )
                for i in order.items
            ],
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
