from django.apps import AppConfig


class OrdersConfig(AppConfig):
    name = "apps.orders"
    label = "orders"

    def ready(self):
        from .http_adapters import build_storage_breaker

        # shared by every request served by this process
        self.storage_breaker = build_storage_breaker()
