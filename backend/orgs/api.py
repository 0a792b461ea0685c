import logging

from django.db import transaction
from django.utils.text import slugify
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import Membership
from payments.services.connect import create_onboarding_link, refresh_account_status

from .models import Organization
from .permissions import HasTenantRole
from .serializers import (
    OrganizationSerializer,
    StripeAccountStatusSerializer,
    StripeOnboardingLinkSerializer,
)

logger = logging.getLogger(__name__)


def _unique_slug(name: str) -> str:
    base = slugify(name)[:40] or "organization"
    slug = base
    suffix = 2
    while Organization.objects.filter(slug=slug).exists():
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


class OrganizationCreateView(APIView):
    """Create an organization; the caller becomes its admin and switches to it."""

    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = OrganizationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            organization = serializer.save(slug=_unique_slug(serializer.validated_data["name"]))
            Membership.objects.create(
                user=request.user,
                organization=organization,
                role=Membership.ADMIN,
            )
            request.user.active_organization = organization
            request.user.save(update_fields=["active_organization"])
        logger.info("Organization %s created by user %s", organization.pk, request.user.pk)
        return Response(OrganizationSerializer(organization).data, status=status.HTTP_201_CREATED)


class OrganizationDetailView(APIView):
    """Read or update the caller's active organization."""

    permission_classes = [IsAuthenticated, HasTenantRole]

    def get_tenant_roles(self):
        if self.request.method == "PATCH":
            return (Membership.ADMIN,)
        return None

    def get(self, request, *args, **kwargs):
        return Response(OrganizationSerializer(self.tenant.organization).data)

    def patch(self, request, *args, **kwargs):
        serializer = OrganizationSerializer(self.tenant.organization, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class StripeOnboardingLinkView(APIView):
    """Create (or refresh) an onboarding link for the organization's Stripe Express account."""

    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = (Membership.ADMIN,)

    def post(self, request, *args, **kwargs):
        link = create_onboarding_link(self.tenant)
        serializer = StripeOnboardingLinkSerializer(link)
        return Response(serializer.data, status=status.HTTP_201_CREATED)


class StripeAccountStatusView(APIView):
    """Return the current connection status for the organization's Stripe account."""

    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES

    def get(self, request, *args, **kwargs):
        account = refresh_account_status(self.tenant)
        return Response(StripeAccountStatusSerializer.from_account(account))
