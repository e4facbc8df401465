"""Newsletter subscriptions and contact form submissions."""

import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.orders.domain import Err, ErrorKind
from gateway.errors import error_response, pydantic_error
from gateway.throttling import GeneralThrottle

from .models import ContactSubmission, NewsletterSubscription
from .schemas import ContactDTO, NewsletterDTO

logger = logging.getLogger(__name__)


def _payload(request) -> dict:
    return request.data if isinstance(request.data, dict) else {}


class NewsletterView(APIView):
    """Subscribe an email; a lapsed subscription is reactivated."""

    throttle_classes = [GeneralThrottle]

    def post(self, request):
        try:
            dto = NewsletterDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)

        sub, created = NewsletterSubscription.objects.get_or_create(email=dto.email)
        if not created:
            if sub.is_active:
                return error_response(Err(ErrorKind.CONFLICT, "Email is already subscribed to newsletter"))
            sub.is_active = True
            sub.save(update_fields=["is_active", "updated_at"])
            logger.info("newsletter subscription reactivated")

        return Response(
            {"success": True, "message": "Successfully subscribed to newsletter"},
            status=status.HTTP_201_CREATED,
        )


class ContactView(APIView):
    throttle_classes = [GeneralThrottle]

    def post(self, request):
        try:
            dto = ContactDTO.model_validate(_payload(request))
        except ValidationError as e:
            return pydantic_error(e)

        submission = ContactSubmission.objects.create(
            first_name=dto.first_name,
            last_name=dto.last_name,
            email=dto.email,
            company=dto.company or "",
            subject=dto.subject,
            message=dto.message,
        )
        logger.info("contact form received", extra={"submission_id": submission.pk, "subject": dto.subject})
        return Response(
            {"success": True, "message": "Contact form submitted successfully"},
            status=status.HTTP_201_CREATED,
        )
