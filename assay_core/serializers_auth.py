from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .identity import role_for_user
from .labels import to_label
from .models import Role
from .serializers import LabelChoiceField

User = get_user_model()


# ===============================================================
# Tokens
# ===============================================================

class AssayTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Users sign in with their email as username. Tokens carry email and
    role claims so clients can route without an extra round trip.
    """

    def validate(self, attrs):
        username_field = self.username_field
        attrs[username_field] = str(attrs.get(username_field, "")).strip().lower()
        data = super().validate(attrs)
        data["user"] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["email"] = user.email
        token["role"] = role_for_user(user)
        return token


# ===============================================================
# Users
# ===============================================================

class UserSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(source="profile.display_name", read_only=True)
    role = serializers.SerializerMethodField()
    role_label = serializers.SerializerMethodField()
    company = serializers.CharField(source="profile.company", read_only=True)
    phone = serializers.CharField(source="profile.phone", read_only=True)
    is_verified = serializers.BooleanField(source="profile.is_verified", read_only=True)

    class Meta:
        model = User
        fields = (
            "id",
            "email",
            "display_name",
            "role",
            "role_label",
            "company",
            "phone",
            "is_active",
            "is_verified",
            "last_login",
            "date_joined",
        )
        read_only_fields = fields

    def get_role(self, obj) -> str:
        return role_for_user(obj)

    def get_role_label(self, obj) -> str:
        return to_label("role", role_for_user(obj))


class RegisterSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8, style={"input_type": "password"})
    display_name = serializers.CharField(min_length=2, max_length=100)
    company = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    phone = serializers.RegexField(r"^\+?[1-9]\d{1,14}$", required=False, allow_blank=True, default="")


class ProfileUpdateSerializer(serializers.Serializer):
    display_name = serializers.CharField(min_length=2, max_length=100, required=False)
    company = serializers.CharField(max_length=200, required=False, allow_blank=True)
    phone = serializers.RegexField(r"^\+?[1-9]\d{1,14}$", required=False, allow_blank=True)


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, min_length=8)


class UserCreateSerializer(RegisterSerializer):
    role = LabelChoiceField("role", required=False, default=Role.CLIENT.value)


class UserUpdateSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False)
    display_name = serializers.CharField(min_length=2, max_length=100, required=False)
    role = LabelChoiceField("role", required=False)
    company = serializers.CharField(max_length=200, required=False, allow_blank=True)
    phone = serializers.RegexField(r"^\+?[1-9]\d{1,14}$", required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)
    is_verified = serializers.BooleanField(required=False)
