"""Service provider helpers for wiring the checkout services with ports.

``get_checkout_service`` and ``get_review_service`` return services built
around the Django ORM repository and the Django mail notifier. The blob
store is the HTTP storage-service client when ``settings.USE_HTTP_ADAPTERS``
is truthy, and Django's default file storage otherwise (tests and local
development).
"""

from django.apps import apps
from django.conf import settings

from .adapters import DjangoMailNotifier, DjangoStorageBlobStore, StaticPaymentQr
from .domain import BlobStorePort
from .http_adapters import HttpBlobStoreClient
from .repository import OrderRepository
from .services import CheckoutService, OrderReviewService


def get_blob_store() -> BlobStorePort:
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        breaker = apps.get_app_config("orders").storage_breaker
        return HttpBlobStoreClient(breaker=breaker)
    return DjangoStorageBlobStore()


def get_checkout_service() -> CheckoutService:
    """Return a CheckoutService wired with the configured ports."""
    return CheckoutService(
        repository=OrderRepository(),
        notifier=DjangoMailNotifier(),
        blob_store=get_blob_store(),
        payment_qr=StaticPaymentQr(),
        otp_expiry_minutes=getattr(settings, "OTP_EXPIRY_MINUTES", 10),
        max_proof_bytes=getattr(settings, "PAYMENT_PROOF_MAX_BYTES", 10 * 1024 * 1024),
    )


def get_review_service() -> OrderReviewService:
    return OrderReviewService(repository=OrderRepository(), notifier=DjangoMailNotifier())
