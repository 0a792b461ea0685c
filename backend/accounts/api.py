from django.contrib.auth import get_user_model
from rest_framework import generics, status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from .models import Membership
from .serializers import (
    EmailTokenObtainPairSerializer,
    MembershipSerializer,
    RegisterSerializer,
    SelectOrganizationSerializer,
    UserSerializer,
)
from .tenancy import select_organization

User = get_user_model()


class RegisterView(APIView):
    """Create a new user account and issue an initial JWT pair."""

    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        refresh = RefreshToken.for_user(user)
        return Response(
            {
                "user": UserSerializer(user).data,
                "access": str(refresh.access_token),
                "refresh": str(refresh),
            },
            status=status.HTTP_201_CREATED,
        )


class LoginView(TokenObtainPairView):
    """Authenticate an existing user via email + password."""

    serializer_class = EmailTokenObtainPairSerializer


class MeView(APIView):
    """Return the serialized profile for the current authenticated user."""

    def get(self, request, *args, **kwargs):
        return Response(UserSerializer(request.user).data)


class MembershipListView(generics.ListAPIView):
    """Expose the current user's active organization memberships."""

    serializer_class = MembershipSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Membership.objects.filter(
            user=self.request.user, is_active=True
        ).select_related("organization")


class SelectOrganizationView(APIView):
    """Switch the organization the caller is acting for."""

    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = SelectOrganizationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        tenant = select_organization(request.user, serializer.validated_data["organization"])
        return Response(
            {
                "user": UserSerializer(request.user).data,
                "membership": MembershipSerializer(tenant.membership).data,
            }
        )
