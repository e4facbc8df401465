from django.urls import path

from .views import ContactView, NewsletterView

app_name = "storefront"

urlpatterns = [
    path("newsletter", NewsletterView.as_view(), name="newsletter"),
    path("contact", ContactView.as_view(), name="contact"),
]
