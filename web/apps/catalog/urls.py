from django.urls import path

from .views import (
    AdminBundleArchiveView,
    AdminBundleCollectionView,
    AdminBundleView,
    BundleCollectionView,
    BundleDetailView,
    ReviewCollectionView,
)

app_name = "catalog"

urlpatterns = [
    path("bundles", BundleCollectionView.as_view(), name="bundles"),
    path("bundles/<str:bundle_id>", BundleDetailView.as_view(), name="bundle-detail"),
    path("admin/bundles", AdminBundleCollectionView.as_view(), name="admin-bundles"),
    path("admin/bundles/<str:bundle_id>", AdminBundleView.as_view(), name="admin-bundle"),
    path("admin/bundles/<str:bundle_id>/archive", AdminBundleArchiveView.as_view(), name="admin-bundle-archive"),
    path("reviews", ReviewCollectionView.as_view(), name="reviews"),
]
