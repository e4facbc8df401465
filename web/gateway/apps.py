import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class GatewayConfig(AppConfig):
    """Composition root for process-wide resources.

    The rate limiters live here: they are created once when Django finishes
    loading and cleared when the process shuts down.
    """

    name = "gateway"

    def ready(self):
        import atexit

        from .throttling import build_rate_limiters

        self.rate_limiters = build_rate_limiters(getattr(settings, "RATE_LIMITS", {}))
        logger.info("rate limiters ready", extra={"scopes": sorted(self.rate_limiters)})
        atexit.register(self.shutdown)

    def shutdown(self):
        for limiter in self.rate_limiters.values():
            limiter.clear()
