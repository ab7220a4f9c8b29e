from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict

from rest_framework import serializers

from .labels import to_label, to_token
from .models import Report, Sample, SampleDocument, TimelineEvent
from .policy import public_client_view
from .services.documents import document_url
from .services.verification import verification_url
from .tracking import format_for_display
from .workflows import allowed_next_states


# ===============================================================
# Helpers
# ===============================================================

class ImmutableFieldsMixin:
    """
    Rejects payloads that try to set server-controlled fields.
    """
    immutable_fields: tuple[str, ...] = ()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        incoming = getattr(self, "initial_data", None) or {}
        present = [f for f in self.immutable_fields if f in incoming]
        if present:
            raise serializers.ValidationError(
                {f: ["This field is immutable."] for f in present}
            )
        return super().validate(attrs)


class LabelChoiceField(serializers.CharField):
    """
    Accepts a stored token ("CU", "PERCENT") or its display label
    ("Cu", "%") and always emits the token.
    """

    def __init__(self, kind: str, **kwargs):
        self.kind = kind
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        token = to_token(self.kind, value)
        if token is None:
            raise serializers.ValidationError(f"'{value}' is not a valid {self.kind}.")
        return token

    def to_representation(self, value):
        return str(value) if value is not None else None


def _user_summary(user) -> Dict[str, Any] | None:
    if user is None:
        return None
    profile = getattr(user, "profile", None)
    return {
        "id": user.pk,
        "name": getattr(profile, "display_name", "") or "",
        "email": user.email,
        "company": getattr(profile, "company", "") or "",
    }


# ===============================================================
# Timeline / documents
# ===============================================================

class TimelineEventSerializer(serializers.ModelSerializer):
    status_label = serializers.SerializerMethodField()
    user = serializers.SerializerMethodField()

    class Meta:
        model = TimelineEvent
        fields = ("id", "status", "status_label", "notes", "user", "timestamp")
        read_only_fields = fields

    def get_status_label(self, obj) -> str:
        return to_label("status", obj.status)

    def get_user(self, obj):
        if self.context.get("public"):
            return None
        user = obj.user
        return {"id": user.pk, "email": user.email} if user else None


class TimelineEventCreateSerializer(serializers.Serializer):
    status = LabelChoiceField("status")
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")
    override = serializers.BooleanField(required=False, default=False)


class SampleDocumentSerializer(serializers.ModelSerializer):
    url = serializers.SerializerMethodField()

    class Meta:
        model = SampleDocument
        fields = (
            "id",
            "sample",
            "filename",
            "original_name",
            "mime_type",
            "size",
            "uploaded_by",
            "uploaded_at",
            "url",
        )
        read_only_fields = fields

    def get_url(self, obj) -> str:
        return document_url(obj)


class DocumentUploadSerializer(serializers.Serializer):
    file = serializers.FileField()


# ===============================================================
# Samples
# ===============================================================

class ReportBriefSerializer(serializers.ModelSerializer):
    class Meta:
        model = Report
        fields = ("id", "report_code", "grade", "unit", "certified", "issued_at")
        read_only_fields = fields


class SampleSerializer(serializers.ModelSerializer):
    mineral_label = serializers.SerializerMethodField()
    unit_label = serializers.SerializerMethodField()
    status_label = serializers.SerializerMethodField()
    client = serializers.SerializerMethodField()
    analyst = serializers.SerializerMethodField()
    report = serializers.SerializerMethodField()
    timeline = TimelineEventSerializer(many=True, read_only=True)
    documents = SampleDocumentSerializer(many=True, read_only=True)
    allowed_next_states = serializers.SerializerMethodField()

    class Meta:
        model = Sample
        fields = (
            "id",
            "code",
            "mineral",
            "mineral_label",
            "site",
            "status",
            "status_label",
            "grade",
            "unit",
            "unit_label",
            "mass",
            "notes",
            "priority",
            "client",
            "analyst",
            "received_at",
            "due_date",
            "completed_at",
            "created_at",
            "updated_at",
            "timeline",
            "documents",
            "report",
            "allowed_next_states",
        )
        read_only_fields = fields

    def get_mineral_label(self, obj) -> str:
        return to_label("mineral", obj.mineral)

    def get_unit_label(self, obj) -> str:
        return to_label("unit", obj.unit)

    def get_status_label(self, obj) -> str:
        return to_label("status", obj.status)

    def get_client(self, obj):
        if self.context.get("public"):
            return public_client_view(obj.client)
        return _user_summary(obj.client)

    def get_analyst(self, obj):
        return _user_summary(obj.analyst)

    def get_report(self, obj):
        report = getattr(obj, "report", None)
        return ReportBriefSerializer(report).data if report else None

    def get_allowed_next_states(self, obj):
        return allowed_next_states(obj.status)


class SampleListSerializer(SampleSerializer):
    class Meta(SampleSerializer.Meta):
        fields = tuple(
            f for f in SampleSerializer.Meta.fields if f not in ("timeline", "documents")
        )
        read_only_fields = fields


class SampleWriteSerializer(ImmutableFieldsMixin, serializers.Serializer):
    mineral = LabelChoiceField("mineral")
    site = serializers.CharField(min_length=2, max_length=200)
    unit = LabelChoiceField("unit")
    mass = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    priority = serializers.IntegerField(min_value=1, max_value=3, required=False)
    due_date = serializers.DateTimeField(required=False, allow_null=True)

    immutable_fields = ("code", "client", "client_id", "status", "completed_at", "sequence")


class SampleUpdateSerializer(ImmutableFieldsMixin, serializers.Serializer):
    mineral = LabelChoiceField("mineral", required=False)
    site = serializers.CharField(min_length=2, max_length=200, required=False)
    unit = LabelChoiceField("unit", required=False)
    mass = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"), required=False)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    priority = serializers.IntegerField(min_value=1, max_value=3, required=False)
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    grade = serializers.DecimalField(
        max_digits=12, decimal_places=4, min_value=Decimal("0.0001"), required=False, allow_null=True
    )
    analyst = serializers.IntegerField(required=False, allow_null=True)
    status = LabelChoiceField("status", required=False)
    status_note = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    override = serializers.BooleanField(required=False, default=False)

    immutable_fields = ("code", "client", "client_id", "completed_at", "sequence")


# ===============================================================
# Reports
# ===============================================================

class ReportSampleSerializer(serializers.ModelSerializer):
    client = serializers.SerializerMethodField()
    mineral_label = serializers.SerializerMethodField()

    class Meta:
        model = Sample
        fields = (
            "id",
            "code",
            "mineral",
            "mineral_label",
            "site",
            "status",
            "mass",
            "received_at",
            "completed_at",
            "client",
        )
        read_only_fields = fields

    def get_mineral_label(self, obj) -> str:
        return to_label("mineral", obj.mineral)

    def get_client(self, obj):
        if self.context.get("public"):
            return public_client_view(obj.client)
        return _user_summary(obj.client)


class ReportSerializer(serializers.ModelSerializer):
    sample = ReportSampleSerializer(read_only=True)
    unit_label = serializers.SerializerMethodField()
    issued_by = serializers.SerializerMethodField()
    verification_url = serializers.SerializerMethodField()

    class Meta:
        model = Report
        fields = (
            "id",
            "report_code",
            "sample",
            "grade",
            "unit",
            "unit_label",
            "certified",
            "hash",
            "qr_code",
            "verification_url",
            "notes",
            "issued_by",
            "issued_at",
            "valid_until",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_unit_label(self, obj) -> str:
        return to_label("unit", obj.unit)

    def get_issued_by(self, obj):
        if self.context.get("public"):
            profile = getattr(obj.issued_by, "profile", None)
            return {"name": getattr(profile, "display_name", "") or ""}
        return _user_summary(obj.issued_by)

    def get_verification_url(self, obj) -> str:
        return verification_url(obj.report_code, obj.hash)


class ReportCreateSerializer(serializers.Serializer):
    sample_id = serializers.CharField(max_length=32)
    grade = serializers.DecimalField(max_digits=12, decimal_places=4, min_value=Decimal("0.0001"))
    unit = LabelChoiceField("unit")
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")
    certified = serializers.BooleanField(required=False, default=False)


class CertificationSerializer(serializers.Serializer):
    certified = serializers.BooleanField()


class VerificationSerializer(serializers.Serializer):
    valid = serializers.BooleanField()
    message = serializers.CharField()
    report = serializers.SerializerMethodField()

    def get_report(self, obj):
        if obj.report is None:
            return None
        return ReportSerializer(obj.report, context={**self.context, "public": True}).data


# ===============================================================
# Public tracking
# ===============================================================

class TrackedSampleSerializer(serializers.ModelSerializer):
    display_code = serializers.SerializerMethodField()
    status_label = serializers.SerializerMethodField()
    timeline = serializers.SerializerMethodField()
    report_code = serializers.SerializerMethodField()

    class Meta:
        model = Sample
        fields = (
            "code",
            "display_code",
            "mineral",
            "site",
            "status",
            "status_label",
            "received_at",
            "updated_at",
            "timeline",
            "report_code",
        )
        read_only_fields = fields

    def get_display_code(self, obj) -> str:
        return format_for_display(obj.code)

    def get_status_label(self, obj) -> str:
        return to_label("status", obj.status)

    def get_timeline(self, obj):
        return [
            {"status": e.status, "timestamp": e.timestamp, "notes": e.notes}
            for e in obj.timeline.all()
        ]

    def get_report_code(self, obj):
        report = getattr(obj, "report", None)
        return report.report_code if report else None
