"""API tests for the public bundle catalog and its admin management."""
import io
import zipfile
from decimal import Decimal

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from apps.catalog.models import Bundle

LIST_URL = "/api/bundles"


@pytest.mark.django_db
def test_list_only_active_bundles_newest_first(client, make_bundle):
    first = make_bundle(name="React Kit")
    make_bundle(name="Retired Kit", is_active=False)
    second = make_bundle(name="Vue Kit")

    r = client.get(LIST_URL)
    assert r.status_code == 200
    data = r.json()["data"]
    assert [b["id"] for b in data["bundles"]] == [str(second.id), str(first.id)]
    assert data["pagination"] == {"page": 1, "limit": 12, "total": 2, "pages": 1}


@pytest.mark.django_db
def test_list_never_exposes_download_url(client, bundle):
    item = client.get(LIST_URL).json()["data"]["bundles"][0]
    assert "downloadUrl" not in item and "download_url" not in item
    assert item["isActive"] is True


@pytest.mark.django_db
def test_search_and_price_filters(client, make_bundle):
    make_bundle(name="React Dashboard", price=Decimal("999.00"))
    cheap = make_bundle(name="React Icons", price=Decimal("99.00"))
    make_bundle(name="Landing Pages", description="marketing", price=Decimal("49.00"))

    r = client.get(LIST_URL, {"search": "react", "maxPrice": "100"})
    assert [b["id"] for b in r.json()["data"]["bundles"]] == [str(cheap.id)]

    r = client.get(LIST_URL, {"search": "MARKETING"})
    assert r.json()["data"]["pagination"]["total"] == 1


@pytest.mark.django_db
def test_list_pagination(client, make_bundle):
    for _ in range(3):
        make_bundle()
    r = client.get(LIST_URL, {"limit": 2, "page": 2})
    data = r.json()["data"]
    assert len(data["bundles"]) == 1
    assert data["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}


@pytest.mark.django_db
@pytest.mark.parametrize("params", [{"limit": "101"}, {"minPrice": "10", "maxPrice": "5"}, {"page": "-1"}])
def test_list_rejects_bad_query(client, params):
    r = client.get(LIST_URL, params)
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


@pytest.mark.django_db
def test_detail_active_bundle(client, bundle):
    r = client.get(f"/api/bundles/{bundle.id}")
    assert r.status_code == 200
    assert r.json()["data"]["slug"] == bundle.slug
    assert r.json()["data"]["price"] == "499.00"


@pytest.mark.django_db
def test_detail_inactive_or_unknown_is_404(client, make_bundle):
    retired = make_bundle(is_active=False)
    assert client.get(f"/api/bundles/{retired.id}").status_code == 404
    assert client.get("/api/bundles/not-a-uuid").status_code == 404


@pytest.mark.django_db
def test_admin_can_deactivate_bundle(admin_client, client, bundle):
    r = admin_client.patch(f"/api/admin/bundles/{bundle.id}", data={"isActive": False}, content_type="application/json")
    assert r.status_code == 200, r.json()
    assert r.json()["data"]["isActive"] is False
    assert Bundle.objects.get(id=bundle.id).is_active is False

    r = client.post(
        "/api/checkout/create",
        data={"bundleId": str(bundle.id), "name": "Alice", "email": "alice@example.com"},
        content_type="application/json",
    )
    assert r.status_code == 404


@pytest.mark.django_db
def test_toggle_requires_admin(client, bundle):
    r = client.patch(f"/api/admin/bundles/{bundle.id}", data={"isActive": False}, content_type="application/json")
    assert r.status_code == 403
    assert Bundle.objects.get(id=bundle.id).is_active is True


@pytest.mark.django_db
def test_toggle_requires_flag(admin_client, bundle):
    r = admin_client.patch(f"/api/admin/bundles/{bundle.id}", data={}, content_type="application/json")
    assert r.status_code == 400


ADMIN_URL = "/api/admin/bundles"

NEW_BUNDLE = {
    "name": "SaaS Starter",
    "slug": "saas-starter",
    "shortDescription": "Auth, billing and dashboards",
    "description": "Everything to launch a SaaS.",
    "price": "1499.00",
}


def _zip_bytes():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("README.md", "# SaaS Starter\n")
    return buf.getvalue()


@pytest.mark.django_db
def test_admin_creates_bundle(admin_client, client):
    r = admin_client.post(ADMIN_URL, data=NEW_BUNDLE, content_type="application/json")
    assert r.status_code == 201, r.json()
    data = r.json()["data"]
    assert data["slug"] == "saas-starter"
    assert data["price"] == "1499.00"
    assert data["isActive"] is True
    assert data["downloadUrl"] == ""

    listed = client.get(LIST_URL).json()["data"]["bundles"]
    assert [b["id"] for b in listed] == [data["id"]]


@pytest.mark.django_db
def test_create_bundle_duplicate_slug_is_409(admin_client, make_bundle):
    make_bundle(slug="saas-starter")
    r = admin_client.post(ADMIN_URL, data=NEW_BUNDLE, content_type="application/json")
    assert r.status_code == 409
    assert r.json()["detail"] == "CONFLICT"
    assert Bundle.objects.filter(slug="saas-starter").count() == 1


@pytest.mark.django_db
@pytest.mark.parametrize(
    "overrides",
    [{"slug": "Not A Slug"}, {"price": "-1"}, {"name": ""}, {"shortDescription": "x" * 201}],
)
def test_create_bundle_validation(admin_client, overrides):
    r = admin_client.post(ADMIN_URL, data={**NEW_BUNDLE, **overrides}, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"
    assert not Bundle.objects.exists()


@pytest.mark.django_db
def test_bundle_management_requires_admin(client, bundle):
    assert client.post(ADMIN_URL, data=NEW_BUNDLE, content_type="application/json").status_code == 403
    assert client.put(f"{ADMIN_URL}/{bundle.id}", data={"name": "X"}, content_type="application/json").status_code == 403
    assert client.delete(f"{ADMIN_URL}/{bundle.id}").status_code == 403
    assert Bundle.objects.get(id=bundle.id).name == bundle.name


@pytest.mark.django_db
def test_admin_updates_only_sent_fields(admin_client, bundle):
    r = admin_client.put(
        f"{ADMIN_URL}/{bundle.id}", data={"price": "599.00", "name": "Starter Kit Pro"}, content_type="application/json"
    )
    assert r.status_code == 200, r.json()
    bundle.refresh_from_db()
    assert bundle.price == Decimal("599.00")
    assert bundle.name == "Starter Kit Pro"
    assert bundle.description == "A bundle of UI components."


@pytest.mark.django_db
def test_update_slug_conflict_and_empty_body(admin_client, make_bundle):
    taken = make_bundle(slug="taken")
    other = make_bundle()
    r = admin_client.put(f"{ADMIN_URL}/{other.id}", data={"slug": taken.slug}, content_type="application/json")
    assert r.status_code == 409

    r = admin_client.put(f"{ADMIN_URL}/{other.id}", data={}, content_type="application/json")
    assert r.status_code == 400

    r = admin_client.put(f"{ADMIN_URL}/{other.id}", data={"name": None}, content_type="application/json")
    assert r.status_code == 400


@pytest.mark.django_db
def test_update_unknown_bundle_is_404(admin_client):
    r = admin_client.put(
        f"{ADMIN_URL}/9b2f7a7e-0000-4000-8000-000000000000", data={"name": "X"}, content_type="application/json"
    )
    assert r.status_code == 404


@pytest.mark.django_db
def test_admin_deletes_unordered_bundle(admin_client, bundle):
    r = admin_client.delete(f"{ADMIN_URL}/{bundle.id}")
    assert r.status_code == 200
    assert r.json()["message"] == "Bundle deleted successfully"
    assert not Bundle.objects.filter(id=bundle.id).exists()


@pytest.mark.django_db
def test_ordered_bundle_cannot_be_deleted(admin_client, client, bundle):
    r = client.post(
        "/api/checkout/create",
        data={"bundleId": str(bundle.id), "name": "Alice", "email": "alice@example.com"},
        content_type="application/json",
    )
    assert r.status_code == 201

    r = admin_client.delete(f"{ADMIN_URL}/{bundle.id}")
    assert r.status_code == 409
    assert r.json()["detail"] == "CONFLICT"
    assert Bundle.objects.filter(id=bundle.id).exists()


@pytest.mark.django_db
def test_archive_upload_sets_download_url(admin_client, bundle, settings):
    archive = SimpleUploadedFile("starter.zip", _zip_bytes(), content_type="application/zip")
    r = admin_client.post(f"{ADMIN_URL}/{bundle.id}/archive", {"file": archive})
    assert r.status_code == 200, r.json()

    url = r.json()["downloadUrl"]
    assert url.startswith(settings.MEDIA_URL + f"bundle-archives/{bundle.slug}/")
    assert url.endswith("-starter.zip")
    bundle.refresh_from_db()
    assert bundle.download_url == url


@pytest.mark.django_db
def test_archive_goes_through_blob_store(admin_client, bundle, monkeypatch):
    from apps.orders.tests.fakes import FakeBlobStore

    store = FakeBlobStore()
    monkeypatch.setattr("apps.catalog.views.get_blob_store", lambda: store)
    data = _zip_bytes()
    r = admin_client.post(
        f"{ADMIN_URL}/{bundle.id}/archive", {"file": SimpleUploadedFile("kit.zip", data, content_type="application/zip")}
    )
    assert r.status_code == 200
    assert store.objects == [(data, "kit.zip", "bundle-archives", bundle.slug)]


@pytest.mark.django_db
@pytest.mark.parametrize(
    "name, data",
    [("notes.txt", b"plain text"), ("fake.zip", b"not really a zip")],
)
def test_archive_must_be_a_zip(admin_client, bundle, name, data):
    r = admin_client.post(f"{ADMIN_URL}/{bundle.id}/archive", {"file": SimpleUploadedFile(name, data)})
    assert r.status_code == 400
    assert r.json()["message"] == "Only ZIP files are allowed"
    bundle.refresh_from_db()
    assert bundle.download_url.startswith("https://downloads.bundlehub.test/")


@pytest.mark.django_db
def test_archive_upload_requires_file_and_admin(admin_client, client, bundle):
    assert admin_client.post(f"{ADMIN_URL}/{bundle.id}/archive", {}).status_code == 400
    archive = SimpleUploadedFile("starter.zip", _zip_bytes())
    assert client.post(f"{ADMIN_URL}/{bundle.id}/archive", {"file": archive}).status_code == 403


@pytest.mark.django_db
def test_archive_path_accepts_bodies_above_the_api_limit(admin_client, bundle, settings):
    settings.API_MAX_BYTES = 16
    archive = SimpleUploadedFile("starter.zip", _zip_bytes())
    assert admin_client.post(f"{ADMIN_URL}/{bundle.id}/archive", {"file": archive}).status_code == 200
