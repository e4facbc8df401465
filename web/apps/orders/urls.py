from django.urls import path

from .views import (
    AdminOrdersView,
    ApproveOrderView,
    CheckoutCreateView,
    RejectOrderView,
    ResendOtpView,
    UploadPaymentView,
    VerifyEmailView,
)

app_name = "orders"

urlpatterns = [
    path("checkout/create", CheckoutCreateView.as_view(), name="checkout-create"),
    path("checkout/resend-otp", ResendOtpView.as_view(), name="checkout-resend-otp"),
    path("checkout/verify-email", VerifyEmailView.as_view(), name="checkout-verify-email"),
    path("checkout/upload-payment", UploadPaymentView.as_view(), name="checkout-upload-payment"),
    path("admin/orders", AdminOrdersView.as_view(), name="admin-orders"),
    path("admin/orders/<str:order_id>/approve", ApproveOrderView.as_view(), name="admin-order-approve"),
    path("admin/orders/<str:order_id>/reject", RejectOrderView.as_view(), name="admin-order-reject"),
]
