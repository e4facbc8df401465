"""Bundle catalog: public reads, admin management and customer reviews.

Download URLs are never exposed on the public endpoints; customers receive
them in the delivery email once an order is approved. Admins manage the
archive behind that URL with ``AdminBundleArchiveView``.
"""

import io
import logging
import uuid
import zipfile

from django.conf import settings
from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.db.models import ProtectedError, Q
from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.orders.domain import Err, ErrorKind
from apps.orders.providers import get_blob_store
from apps.orders.repository import storage_executor
from gateway.errors import error_response, pydantic_error, validation_error
from gateway.throttling import GeneralThrottle, UploadThrottle

from .models import Bundle, Review
from .schemas import (
    BundleAdminReadDTO,
    BundleCreateDTO,
    BundleQuery,
    BundleReadDTO,
    BundleStatusDTO,
    BundleUpdateDTO,
    ReviewCreateDTO,
    ReviewReadDTO,
)

logger = logging.getLogger(__name__)

MSG_BUNDLE_NOT_FOUND = "Bundle not found"
MSG_SLUG_TAKEN = "Bundle with this slug already exists"
BUNDLE_ARCHIVE_CATEGORY = "bundle-archives"
DEFAULT_ARCHIVE_MAX_BYTES = 100 * 1024 * 1024
DETAIL_REVIEW_COUNT = 10


def _payload(request) -> dict:
    return request.data if isinstance(request.data, dict) else {}


def _bundle_or_none(bundle_id: str, active_only: bool):
    try:
        bid = uuid.UUID(str(bundle_id))
    except ValueError:
        return None
    qs = Bundle.objects.filter(id=bid)
    if active_only:
        qs = qs.filter(is_active=True)
    return storage_executor()(qs.first)


def _bundle_not_found() -> Response:
    return error_response(Err(ErrorKind.NOT_FOUND, MSG_BUNDLE_NOT_FOUND))


class BundleCollectionView(APIView):
    """Active bundles, newest first, with search and price filters."""

    throttle_classes = [GeneralThrottle]

    def get(self, request):
        try:
            query = BundleQuery.model_validate(request.query_params.dict())
        except ValidationError as e:
            return pydantic_error(e)

        qs = Bundle.objects.filter(is_active=True).order_by("-created_at")
        if query.search:
            qs = qs.filter(
                Q(name__icontains=query.search)
                | Q(description__icontains=query.search)
                | Q(short_description__icontains=query.search)
            )
        if query.min_price is not None:
            qs = qs.filter(price__gte=query.min_price)
        if query.max_price is not None:
            qs = qs.filter(price__lte=query.max_price)

        def read():
            p = Paginator(qs, query.limit)
            page_obj = p.get_page(query.page)
            return p, [BundleReadDTO.from_model(b).to_json() for b in page_obj.object_list]

        p, results = storage_executor()(read)
        return Response(
            {
                "success": True,
                "data": {
                    "bundles": results,
                    "pagination": {
                        "page": query.page,
                        "limit": query.limit,
                        "total": p.count,
                        "pages": p.num_pages if p.count else 0,
                    },
                },
            }
        )


class BundleDetailView(APIView):
    """One active bundle with its latest public reviews."""

    throttle_classes = [GeneralThrottle]

    def get(self, request, bundle_id: str):
        bundle = _bundle_or_none(bundle_id, active_only=True)
        if bundle is None:
            return _bundle_not_found()

        def read_reviews():
            public = Review.objects.filter(bundle=bundle, is_public=True).select_related("user")
            return public.count(), [ReviewReadDTO.from_model(r).to_json() for r in public[:DETAIL_REVIEW_COUNT]]

        count, reviews = storage_executor()(read_reviews)
        data = BundleReadDTO.from_model(bundle).to_json()
        data["reviews"] = reviews
        data["reviewCount"] = count
        return Response({"success": True, "data": data})


class AdminBundleCollectionView(APIView):
    permission_classes = [IsAdminUser]
    throttle_classes = [GeneralThrottle]

    def post(self, request):
        """Create a bundle.

        Returns:
            Response: 201 with the admin view of the bundle, 400 for
            validation errors, 409 ``CONFLICT`` when the slug is taken.
        """
        try:
            dto = BundleCreateDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)

        try:
            # Savepoint: a duplicate slug only rolls back this block.
            with transaction.atomic():
                bundle = Bundle.objects.create(**dto.model_dump())
        except IntegrityError:
            return error_response(Err(ErrorKind.CONFLICT, MSG_SLUG_TAKEN))

        logger.info("bundle created", extra={"bundle_id": str(bundle.id), "slug": bundle.slug})
        return Response(
            {"success": True, "data": BundleAdminReadDTO.from_model(bundle).to_json()},
            status=status.HTTP_201_CREATED,
        )


class AdminBundleView(APIView):
    """Update, activate/deactivate or delete one bundle."""

    permission_classes = [IsAdminUser]
    throttle_classes = [GeneralThrottle]

    def patch(self, request, bundle_id: str):
        """Toggle ``isActive``; inactive bundles cannot be ordered."""
        try:
            dto = BundleStatusDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)

        bundle = _bundle_or_none(bundle_id, active_only=False)
        if bundle is None:
            return _bundle_not_found()

        bundle.is_active = dto.is_active
        bundle.save(update_fields=["is_active", "updated_at"])
        logger.info("bundle status changed", extra={"bundle_id": str(bundle.id), "is_active": dto.is_active})
        return Response({"success": True, "data": BundleAdminReadDTO.from_model(bundle).to_json()})

    def put(self, request, bundle_id: str):
        try:
            dto = BundleUpdateDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)
        changes = dto.changes()
        if not changes:
            return validation_error("No fields to update")

        bundle = _bundle_or_none(bundle_id, active_only=False)
        if bundle is None:
            return _bundle_not_found()

        for field, value in changes.items():
            setattr(bundle, field, value)
        try:
            with transaction.atomic():
                bundle.save(update_fields=[*changes, "updated_at"])
        except IntegrityError:
            return error_response(Err(ErrorKind.CONFLICT, MSG_SLUG_TAKEN))

        logger.info("bundle updated", extra={"bundle_id": str(bundle.id), "fields": sorted(changes)})
        return Response({"success": True, "data": BundleAdminReadDTO.from_model(bundle).to_json()})

    def delete(self, request, bundle_id: str):
        """Delete a bundle that was never ordered.

        Ordered bundles are referenced by order history and answer 409;
        they can be deactivated instead.
        """
        bundle = _bundle_or_none(bundle_id, active_only=False)
        if bundle is None:
            return _bundle_not_found()

        try:
            bundle.delete()
        except ProtectedError:
            return error_response(Err(ErrorKind.CONFLICT, "Bundle has orders; deactivate it instead"))

        logger.info("bundle deleted", extra={"bundle_id": str(bundle_id)})
        return Response({"success": True, "message": "Bundle deleted successfully"})


class AdminBundleArchiveView(APIView):
    """Upload the ZIP archive customers download after approval.

    The archive goes to the blob store under ``bundle-archives/<slug>/`` and
    its URL becomes the bundle's download URL.
    """

    permission_classes = [IsAdminUser]
    throttle_classes = [GeneralThrottle, UploadThrottle]

    def post(self, request, bundle_id: str):
        archive = request.FILES.get("file")
        if archive is None:
            return validation_error("No file provided")

        bundle = _bundle_or_none(bundle_id, active_only=False)
        if bundle is None:
            return _bundle_not_found()

        if not (archive.name or "").lower().endswith(".zip"):
            return validation_error("Only ZIP files are allowed")
        max_bytes = getattr(settings, "BUNDLE_ARCHIVE_MAX_BYTES", DEFAULT_ARCHIVE_MAX_BYTES)
        if archive.size > max_bytes:
            return validation_error(f"Archive must not exceed {max_bytes} bytes")
        data = archive.read()
        if not zipfile.is_zipfile(io.BytesIO(data)):
            return validation_error("Only ZIP files are allowed")

        url = get_blob_store().store(data, archive.name, BUNDLE_ARCHIVE_CATEGORY, bundle.slug)
        bundle.download_url = url
        bundle.save(update_fields=["download_url", "updated_at"])
        logger.info("bundle archive stored", extra={"bundle_id": str(bundle.id), "size": len(data)})
        return Response(
            {
                "success": True,
                "downloadUrl": url,
                "data": BundleAdminReadDTO.from_model(bundle).to_json(),
            }
        )


class ReviewCollectionView(APIView):
    """Signed-in customers review a bundle once."""

    permission_classes = [IsAuthenticated]
    throttle_classes = [GeneralThrottle]

    def post(self, request):
        try:
            dto = ReviewCreateDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)

        bundle = _bundle_or_none(dto.bundle_id, active_only=False)
        if bundle is None:
            return validation_error(MSG_BUNDLE_NOT_FOUND)

        try:
            with transaction.atomic():
                review = Review.objects.create(
                    user=request.user,
                    bundle=bundle,
                    rating=dto.rating,
                    title=dto.title,
                    content=dto.content,
                    is_public=dto.is_public,
                )
        except IntegrityError:
            return error_response(Err(ErrorKind.CONFLICT, "You have already reviewed this bundle"))

        logger.info("review created", extra={"bundle_id": str(bundle.id), "rating": review.rating})
        return Response(
            {"success": True, "data": ReviewReadDTO.from_model(review).to_json()},
            status=status.HTTP_201_CREATED,
        )
