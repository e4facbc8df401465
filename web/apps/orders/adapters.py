"""In-process adapters for the checkout ports.

These implement ``NotificationPort``, ``BlobStorePort`` and ``PaymentQrPort``
on top of Django's own facilities: the configured email backend, the
default file storage and settings. They are the production notifier and
the development/test blob store; the HTTP blob client in
``http_adapters`` replaces ``DjangoStorageBlobStore`` when
``settings.USE_HTTP_ADAPTERS`` is on.
"""

import logging
import re
import time
from decimal import Decimal
from typing import List
from urllib.parse import quote, urlencode

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from .domain import BlobStorePort, NotificationPort, Order, OrderItem, PaymentInstructions, PaymentQrPort

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name or "upload")


class DjangoMailNotifier(NotificationPort):
    """Send transactional emails through Django's configured backend.

    Each message has a plain-text body and an HTML alternative rendered
    from ``templates/emails/``. Delivery errors are raised to the caller.
    """

    def _send(self, to: str, subject: str, template: str, context: dict) -> None:
        from_email = getattr(settings, "DEFAULT_FROM_EMAIL", None)
        text = render_to_string(f"emails/{template}.txt", context)
        html = render_to_string(f"emails/{template}.html", context)
        msg = EmailMultiAlternatives(subject, text, from_email, [to])
        msg.attach_alternative(html, "text/html")
        msg.send(fail_silently=False)
        logger.info("email sent", extra={"template": template, "to": to})

    def send_otp_email(self, to: str, code: str, name: str, expiry_minutes: int) -> None:
        self._send(
            to,
            "Verify your email - OTP Code",
            "checkout_otp",
            {"code": code, "name": name, "expiry_minutes": expiry_minutes},
        )

    def send_rejection_email(self, to: str, name: str, reason: str, order_id: str) -> None:
        self._send(
            to,
            "Order Payment Rejected",
            "order_rejected",
            {"name": name, "reason": reason, "order_id": order_id},
        )

    def send_bundle_delivery_email(self, to: str, name: str, items: List[OrderItem], order_id: str) -> None:
        bundles = [{"name": i.bundle_name or i.bundle_id, "download_url": i.download_url} for i in items]
        self._send(
            to,
            "Your BundleHub order is ready",
            "bundle_delivery",
            {"name": name, "bundles": bundles, "order_id": order_id},
        )


class DjangoStorageBlobStore(BlobStorePort):
    """Store blobs with Django's default file storage (MEDIA_ROOT locally).

    Objects are keyed ``{category}/{owner_id}/{timestamp}-{filename}``.
    """

    def __init__(self, storage=None):
        self.storage = storage or default_storage

    def store(self, data: bytes, filename: str, category: str, owner_id: str) -> str:
        key = f"{category}/{owner_id}/{int(time.time() * 1000)}-{sanitize_filename(filename)}"
        saved = self.storage.save(key, ContentFile(data))
        return self.storage.url(saved)


class StaticPaymentQr(PaymentQrPort):
    """Payment instructions built from the merchant's fixed QR image.

    The QR does not encode the amount; the accompanying UPI deep link does.
    """

    def __init__(self, qr_url: str | None = None, payee: str | None = None, payee_name: str | None = None,
                 currency: str | None = None):
        self.qr_url = qr_url or getattr(settings, "PAYMENT_QR_URL", "")
        self.payee = payee or getattr(settings, "UPI_PAYEE_ADDRESS", "merchant@upi")
        self.payee_name = payee_name or getattr(settings, "UPI_PAYEE_NAME", "BundleHub")
        self.currency = currency or getattr(settings, "UPI_CURRENCY", "INR")

    def upi_link(self, order: Order) -> str:
        amount = Decimal(order.total_amount).quantize(Decimal("0.01"))
        query = urlencode(
            {
                "pa": self.payee,
                "pn": self.payee_name,
                "am": str(amount),
                "cu": self.currency,
                "tn": f"Order {order.id}",
            },
            quote_via=quote,
        )
        return f"upi://pay?{query}"

    def instructions_for(self, order: Order) -> PaymentInstructions:
        return PaymentInstructions(qr_url=self.qr_url, upi_link=self.upi_link(order))
