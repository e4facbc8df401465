"""API tests for the admin order review endpoints."""
import pytest
from django.db import OperationalError
from django.utils import timezone

from apps.orders.models import OrderItemModel, OrderModel

LIST_URL = "/api/admin/orders"


def _approve_url(order_id):
    return f"/api/admin/orders/{order_id}/approve"


def _reject_url(order_id):
    return f"/api/admin/orders/{order_id}/reject"


@pytest.fixture
def make_order(db):
    def _make(bundle, status="PAYMENT_UPLOADED", email="alice@example.com"):
        order = OrderModel.objects.create(
            customer_name="Alice",
            email=email,
            status=status,
            total_amount=bundle.price,
            email_verified=status != "PENDING",
            email_otp="123456" if status == "PENDING" else None,
            email_otp_expires=timezone.now() if status == "PENDING" else None,
            payment_screenshot="/media/payment-screenshots/x.png" if status == "PAYMENT_UPLOADED" else None,
        )
        OrderItemModel.objects.create(order=order, bundle=bundle, quantity=1, price=bundle.price)
        return order

    return _make


@pytest.mark.django_db
def test_anonymous_cannot_use_admin_endpoints(client, bundle, make_order):
    order = make_order(bundle)
    for r in (
        client.get(LIST_URL),
        client.post(_approve_url(order.id), data={}, content_type="application/json"),
        client.post(_reject_url(order.id), data={"reason": "x"}, content_type="application/json"),
    ):
        assert r.status_code == 403
        assert r.json()["detail"] == "FORBIDDEN"
    order.refresh_from_db()
    assert order.status == "PAYMENT_UPLOADED"


@pytest.mark.django_db
def test_non_staff_user_is_forbidden(client, django_user_model):
    user = django_user_model.objects.create_user(username="bob", password="pw")
    client.force_login(user)
    r = client.get(LIST_URL)
    assert r.status_code == 403
    assert r.json()["statusCode"] == 403


@pytest.mark.django_db
def test_list_orders_newest_first_with_pagination(admin_client, bundle, make_order):
    older = make_order(bundle, status="PENDING")
    newer = make_order(bundle)

    r = admin_client.get(LIST_URL, {"limit": 1})
    assert r.status_code == 200, r.json()
    data = r.json()["data"]
    assert data["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
    assert [o["id"] for o in data["orders"]] == [str(newer.id)]

    r = admin_client.get(LIST_URL, {"limit": 1, "page": 2})
    assert [o["id"] for o in r.json()["data"]["orders"]] == [str(older.id)]


@pytest.mark.django_db
def test_list_orders_shape_hides_otp(admin_client, bundle, make_order):
    make_order(bundle, status="PENDING")
    order = admin_client.get(LIST_URL).json()["data"]["orders"][0]

    assert order["status"] == "PENDING"
    assert order["customerName"] == "Alice"
    assert order["items"][0]["bundle"] == {"id": str(bundle.id), "name": bundle.name, "slug": bundle.slug}
    assert "emailOtp" not in order and "email_otp" not in order
    assert "123456" not in str(order)


@pytest.mark.django_db
def test_list_orders_status_filter(admin_client, bundle, make_order):
    make_order(bundle, status="PENDING")
    uploaded = make_order(bundle)

    r = admin_client.get(LIST_URL, {"status": "PAYMENT_UPLOADED"})
    assert [o["id"] for o in r.json()["data"]["orders"]] == [str(uploaded.id)]

    r = admin_client.get(LIST_URL, {"status": "all"})
    assert r.json()["data"]["pagination"]["total"] == 2


@pytest.mark.django_db
@pytest.mark.parametrize("params", [{"status": "SHIPPED"}, {"limit": "500"}, {"page": "0"}, {"page": "abc"}])
def test_list_orders_rejects_bad_query(admin_client, params):
    r = admin_client.get(LIST_URL, params)
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


@pytest.mark.django_db
def test_list_orders_database_outage_is_503_after_retries(admin_client, monkeypatch, settings):
    settings.STORAGE_RETRY_BACKOFF_BASE = 1.0
    sleeps = []
    monkeypatch.setattr("time.sleep", lambda s: sleeps.append(s), raising=True)
    calls = {"n": 0}

    def down(self):
        calls["n"] += 1
        raise OperationalError("Can't reach database server at web-db:5432")

    monkeypatch.setattr("apps.orders.repository.OrderRepository._queryset", down)

    r = admin_client.get(LIST_URL)

    assert r.status_code == 503
    body = r.json()
    assert body["detail"] == "DATABASE_CONNECTION_ERROR"
    assert body["statusCode"] == 503
    assert calls["n"] == 3
    assert sleeps == [2.0, 4.0]


@pytest.mark.django_db
def test_approve_completes_and_emails_download_links(admin_client, admin_user, bundle, make_order, mailoutbox):
    order = make_order(bundle)

    r = admin_client.post(_approve_url(order.id), data={"notes": "UPI ref 123"}, content_type="application/json")

    assert r.status_code == 200, r.json()
    assert r.json()["order"]["status"] == "COMPLETED"
    order.refresh_from_db()
    assert order.status == "COMPLETED"
    assert order.approved_by == str(admin_user.pk)
    assert order.approved_at is not None
    assert order.admin_notes == "UPI ref 123"
    assert len(mailoutbox) == 1
    assert bundle.download_url in mailoutbox[0].body


@pytest.mark.django_db
def test_approve_delivery_failure_leaves_order_approved(admin_client, bundle, make_order, monkeypatch):
    order = make_order(bundle)

    def boom(self, *a, **kw):
        raise ConnectionError("smtp down")

    monkeypatch.setattr("apps.orders.adapters.DjangoMailNotifier.send_bundle_delivery_email", boom)
    r = admin_client.post(_approve_url(order.id), data={}, content_type="application/json")

    assert r.status_code == 500
    assert r.json()["detail"] == "NOTIFICATION_FAILED"
    order.refresh_from_db()
    assert order.status == "APPROVED"


@pytest.mark.django_db
def test_approve_requires_payment_uploaded(admin_client, bundle, make_order):
    order = make_order(bundle, status="EMAIL_VERIFIED")
    r = admin_client.post(_approve_url(order.id), data={}, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_STATE"
    order.refresh_from_db()
    assert order.status == "EMAIL_VERIFIED"


@pytest.mark.django_db
def test_approve_unknown_order_is_404(admin_client):
    r = admin_client.post(_approve_url("not-a-uuid"), data={}, content_type="application/json")
    assert r.status_code == 404


@pytest.mark.django_db
def test_reject_requires_reason(admin_client, bundle, make_order):
    order = make_order(bundle)
    r = admin_client.post(_reject_url(order.id), data={"reason": "  "}, content_type="application/json")
    assert r.status_code == 400
    order.refresh_from_db()
    assert order.status == "PAYMENT_UPLOADED"


@pytest.mark.django_db
def test_reject_records_reason_and_emails_customer(admin_client, bundle, make_order, mailoutbox):
    order = make_order(bundle)
    r = admin_client.post(_reject_url(order.id), data={"reason": "Amount mismatch"}, content_type="application/json")

    assert r.status_code == 200, r.json()
    order.refresh_from_db()
    assert order.status == "REJECTED"
    assert order.admin_notes == "Amount mismatch"
    assert len(mailoutbox) == 1
    assert "Amount mismatch" in mailoutbox[0].body
    assert mailoutbox[0].to == ["alice@example.com"]


@pytest.mark.django_db
def test_reject_from_pending_fails_and_leaves_status(admin_client, bundle, make_order, mailoutbox):
    order = make_order(bundle, status="PENDING")
    r = admin_client.post(_reject_url(order.id), data={"reason": "no payment"}, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["message"] == "Order cannot be rejected in current status"
    order.refresh_from_db()
    assert order.status == "PENDING"
    assert mailoutbox == []
