# assay_core/views_auth.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenBlacklistView, TokenObtainPairView

from .filters import UserFilter
from .identity import actor_from_request
from .policy import IsAdmin, IsPrivileged
from .serializers_auth import (
    AssayTokenObtainPairSerializer,
    ChangePasswordSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
    UserCreateSerializer,
    UserSerializer,
    UserUpdateSerializer,
)
from .services import accounts as account_service


class AssayTokenObtainPairView(TokenObtainPairView):
    """
    JWT login by email. Inactive accounts are rejected by simplejwt itself.
    """

    serializer_class = AssayTokenObtainPairSerializer


class LogoutView(TokenBlacklistView):
    """
    Blacklists the posted refresh token. The access token simply expires.
    """

    @extend_schema(tags=["Auth"])
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)


class LogoutAllView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Auth"], request=None)
    def post(self, request):
        revoked = account_service.logout_everywhere(actor=actor_from_request(request))
        return Response({"revoked": revoked})


class RegisterView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(tags=["Auth"], request=RegisterSerializer, responses={201: UserSerializer})
    def post(self, request):
        ser = RegisterSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        user = account_service.register_user(**ser.validated_data)
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Auth"], responses=UserSerializer)
    def get(self, request):
        return Response(UserSerializer(request.user).data)

    @extend_schema(tags=["Auth"], request=ProfileUpdateSerializer, responses=UserSerializer)
    def patch(self, request):
        ser = ProfileUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        user = account_service.update_profile(
            actor=actor_from_request(request),
            data=ser.validated_data,
        )
        return Response(UserSerializer(user).data)


class ChangePasswordView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Auth"], request=ChangePasswordSerializer, responses={204: None})
    def post(self, request):
        ser = ChangePasswordSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        account_service.change_password(
            actor=actor_from_request(request),
            current_password=ser.validated_data["current_password"],
            new_password=ser.validated_data["new_password"],
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class UserViewSet(viewsets.GenericViewSet):
    """
    Account administration. Supervisors may read; only administrators
    write. Users are deactivated, never deleted.
    """

    serializer_class = UserSerializer
    permission_classes = [IsAdmin]
    filter_backends = []

    def get_permissions(self):
        if self.action in ("list", "retrieve"):
            return [IsPrivileged()]
        return super().get_permissions()

    @extend_schema(tags=["Users"])
    def list(self, request):
        qs = account_service.list_users(actor=actor_from_request(request))
        fs = UserFilter(request.query_params, queryset=qs)
        if not fs.is_valid():
            raise ValidationError(fs.errors)
        qs = fs.qs
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(qs, many=True).data)

    @extend_schema(tags=["Users"], request=UserCreateSerializer, responses={201: UserSerializer})
    def create(self, request):
        ser = UserCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        user = account_service.create_user(
            actor=actor_from_request(request),
            data=ser.validated_data,
        )
        return Response(self.get_serializer(user).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Users"])
    def retrieve(self, request, pk=None):
        user = account_service.get_user(pk, actor=actor_from_request(request))
        return Response(self.get_serializer(user).data)

    @extend_schema(tags=["Users"], request=UserUpdateSerializer)
    def partial_update(self, request, pk=None):
        ser = UserUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        user = account_service.update_user(
            pk,
            actor=actor_from_request(request),
            data=ser.validated_data,
        )
        return Response(self.get_serializer(user).data)

    @extend_schema(tags=["Users"])
    def destroy(self, request, pk=None):
        user = account_service.deactivate_user(pk, actor=actor_from_request(request))
        return Response(self.get_serializer(user).data)
