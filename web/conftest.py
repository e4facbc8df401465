from decimal import Decimal

import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings, tmp_path):
    settings.USE_HTTP_ADAPTERS = False
    settings.MEDIA_ROOT = str(tmp_path / "media")


@pytest.fixture(autouse=True)
def reset_rate_limiters():
    from django.apps import apps

    for limiter in apps.get_app_config("gateway").rate_limiters.values():
        limiter.clear()
    yield


@pytest.fixture
def make_bundle(db):
    """Factory for catalog bundles; slugs are unique per call."""
    from apps.catalog.models import Bundle

    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "name": f"Starter Kit {n}",
            "slug": f"starter-kit-{n}",
            "short_description": "Components and templates",
            "description": "A bundle of UI components.",
            "price": Decimal("499.00"),
            "is_active": True,
            "download_url": f"https://downloads.bundlehub.test/starter-kit-{n}.zip",
        }
        fields.update(kwargs)
        return Bundle.objects.create(**fields)

    return _make


@pytest.fixture
def bundle(make_bundle):
    return make_bundle()
