"""Repository layer for persisting orders.

This module maps the domain dataclasses onto the Django ORM so the
checkout services never see model instances. Every read goes through a
``ResilientExecutor`` that retries transient database failures and
reconnects when the server dropped the connection; writes are executed
once.
"""

import uuid
from typing import List, Optional

from django.conf import settings
from django.utils import timezone
from django.db import InterfaceError, OperationalError, close_old_connections, connection, transaction

from apps.catalog.models import Bundle as BundleModel

from .domain import Bundle, Order, OrderFilter, OrderItem, OrderPage, OrderStatus
from .models import OrderItemModel, OrderModel
from .resilience import ResilientExecutor, exponential_backoff


def reconnect() -> None:
    """Drop the current database connection; Django reopens it on next use."""
    connection.close()
    close_old_connections()


def storage_executor(attempts: Optional[int] = None) -> ResilientExecutor:
    """Build the retry policy for database reads from settings.

    Args:
        attempts: Override for the number of attempts (health checks use
            fewer than ordinary reads).
    """
    return ResilientExecutor(
        attempts=attempts or getattr(settings, "STORAGE_RETRY_ATTEMPTS", 3),
        backoff=exponential_backoff(getattr(settings, "STORAGE_RETRY_BACKOFF_BASE", 1.0)),
        reconnect=reconnect,
        connectivity_errors=(OperationalError, InterfaceError),
    )


def _parse_id(value) -> Optional[uuid.UUID]:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def _to_bundle(obj: BundleModel) -> Bundle:
    return Bundle(
        id=str(obj.id),
        name=obj.name,
        slug=obj.slug,
        price=obj.price,
        is_active=obj.is_active,
        download_url=obj.download_url,
    )


def _to_item(obj: OrderItemModel) -> OrderItem:
    return OrderItem(
        bundle_id=str(obj.bundle_id),
        price=obj.price,
        quantity=obj.quantity,
        bundle_name=obj.bundle.name,
        bundle_slug=obj.bundle.slug,
        download_url=obj.bundle.download_url,
    )


def _to_order(obj: OrderModel) -> Order:
    return Order(
        id=obj.id,
        customer_name=obj.customer_name,
        email=obj.email,
        items=[_to_item(i) for i in obj.items.all()],
        total_amount=obj.total_amount,
        status=OrderStatus(obj.status),
        email_verified=obj.email_verified,
        email_otp=obj.email_otp,
        email_otp_expires=obj.email_otp_expires,
        payment_screenshot=obj.payment_screenshot,
        admin_notes=obj.admin_notes,
        approved_at=obj.approved_at,
        approved_by=obj.approved_by,
        created_at=obj.created_at,
    )


class OrderRepository:
    """Repository that persists Order domain objects using Django ORM.

    Args:
        executor: Retry policy applied to reads. Defaults to the
            settings-driven policy from ``storage_executor()``.
    """

    UPDATABLE_FIELDS = {
        "status",
        "email_verified",
        "email_otp",
        "email_otp_expires",
        "payment_screenshot",
        "admin_notes",
        "approved_at",
        "approved_by",
    }

    def __init__(self, executor: ResilientExecutor | None = None):
        self.execute = executor or storage_executor()

    def _queryset(self):
        return OrderModel.objects.prefetch_related("items__bundle")

    def get_active_bundle(self, bundle_id: str) -> Optional[Bundle]:
        bid = _parse_id(bundle_id)
        if bid is None:
            return None

        def read():
            obj = BundleModel.objects.filter(id=bid, is_active=True).first()
            return _to_bundle(obj) if obj else None

        return self.execute(read)

    def create(self, order: Order) -> Order:
        """Persist a new order and its items in one transaction.

        Args:
            order: Domain order with ``id`` None.

        Returns:
            The same order with ``id`` and ``created_at`` populated.
        """
        with transaction.atomic():
            obj = OrderModel.objects.create(
                customer_name=order.customer_name,
                email=order.email,
                status=order.status.value,
                total_amount=order.total_amount,
                email_verified=order.email_verified,
                email_otp=order.email_otp,
                email_otp_expires=order.email_otp_expires,
            )
            OrderItemModel.objects.bulk_create(
                [
                    OrderItemModel(order=obj, bundle_id=item.bundle_id, quantity=item.quantity, price=item.price)
                    for item in order.items
                ]
            )
        order.id = obj.id
        order.created_at = obj.created_at
        return order

    def get(self, order_id) -> Optional[Order]:
        oid = _parse_id(order_id)
        if oid is None:
            return None

        def read():
            obj = self._queryset().filter(id=oid).first()
            return _to_order(obj) if obj else None

        return self.execute(read)

    def update(self, order: Order, fields: List[str]) -> None:
        unknown = set(fields) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        values = {}
        for name in fields:
            value = getattr(order, name)
            values[name] = value.value if isinstance(value, OrderStatus) else value
        values["updated_at"] = timezone.now()
        OrderModel.objects.filter(id=order.id).update(**values)

    def list(self, order_filter: OrderFilter) -> OrderPage:
        def read():
            qs = self._queryset().order_by("-created_at", "-internal_id")
            if order_filter.status is not None:
                qs = qs.filter(status=order_filter.status.value)
            total = qs.count()
            rows = list(qs[order_filter.offset: order_filter.offset + order_filter.limit])
            return OrderPage(
                orders=[_to_order(o) for o in rows],
                total=total,
                page=order_filter.page,
                limit=order_filter.limit,
            )

        return self.execute(read)
