# assay_core/models/core.py

from django.conf import settings
from django.db import models
from django.db.models import Q


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Enumerations
# ============================================================
class Role(models.TextChoices):
    CLIENT = "CLIENT", "Client"
    ADMIN = "ADMIN", "Administrator"
    ANALYST = "ANALYST", "Analyst"
    SUPERVISOR = "SUPERVISOR", "Supervisor"


class Mineral(models.TextChoices):
    CU = "CU", "Copper"
    CO = "CO", "Cobalt"
    LI = "LI", "Lithium"
    AU = "AU", "Gold"
    SN = "SN", "Tin"
    TA = "TA", "Tantalum"
    W = "W", "Tungsten"
    ZN = "ZN", "Zinc"
    PB = "PB", "Lead"
    NI = "NI", "Nickel"


class Unit(models.TextChoices):
    PERCENT = "PERCENT", "%"
    GRAMS_PER_TON = "GRAMS_PER_TON", "g/t"
    PPM = "PPM", "ppm"
    OUNCES_PER_TON = "OUNCES_PER_TON", "oz/t"


class SampleStatus(models.TextChoices):
    RECEIVED = "RECEIVED", "Received"
    PREP = "PREP", "Preparation"
    ANALYZING = "ANALYZING", "Analyzing"
    QA_QC = "QA_QC", "QA/QC"
    REPORTED = "REPORTED", "Reported"
    CANCELLED = "CANCELLED", "Cancelled"


# ============================================================
# User profile
# ============================================================
class UserProfile(TimeStampedModel):
    """Assay-specific identity attributes for a Django auth user."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
    )
    display_name = models.CharField(max_length=100, blank=True)
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.CLIENT,
        db_index=True,
    )
    company = models.CharField(max_length=200, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    is_verified = models.BooleanField(default=False)

    def __str__(self):
        return f"{self.user.email or self.user.get_username()} ({self.role})"


# ============================================================
# Sample
# ============================================================
class Sample(TimeStampedModel):
    """A physical mineral specimen tracked through the assay pipeline."""

    code = models.CharField(max_length=20, unique=True, editable=False)
    sequence = models.PositiveIntegerField(editable=False)

    mineral = models.CharField(max_length=4, choices=Mineral.choices, db_index=True)
    site = models.CharField(max_length=200)
    status = models.CharField(
        max_length=20,
        choices=SampleStatus.choices,
        default=SampleStatus.RECEIVED,
        db_index=True,
        editable=False,
    )
    grade = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    unit = models.CharField(max_length=20, choices=Unit.choices)
    mass = models.DecimalField(max_digits=10, decimal_places=2)
    notes = models.TextField(blank=True)
    priority = models.PositiveSmallIntegerField(default=1)

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="samples",
        editable=False,
    )
    analyst = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_samples",
    )

    received_at = models.DateTimeField(db_index=True)
    due_date = models.DateTimeField(null=True, blank=True, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(
                name="sample_priority_range",
                condition=Q(priority__gte=1) & Q(priority__lte=3),
            ),
            models.CheckConstraint(
                name="sample_mass_positive",
                condition=Q(mass__gt=0),
            ),
            models.CheckConstraint(
                name="sample_completed_iff_reported",
                condition=(
                    Q(status=SampleStatus.REPORTED, completed_at__isnull=False)
                    | (~Q(status=SampleStatus.REPORTED) & Q(completed_at__isnull=True))
                ),
            ),
        ]
        indexes = [
            models.Index(fields=["client", "status"], name="sample_client_status_idx"),
        ]

    def __str__(self):
        return self.code


# ============================================================
# Report
# ============================================================
class Report(TimeStampedModel):
    """Certified outcome of a sample analysis. One per sample."""

    sample = models.OneToOneField(
        Sample,
        on_delete=models.PROTECT,
        related_name="report",
    )
    report_code = models.CharField(max_length=30, unique=True)
    grade = models.DecimalField(max_digits=12, decimal_places=4)
    unit = models.CharField(max_length=20, choices=Unit.choices)
    certified = models.BooleanField(default=False, db_index=True)
    hash = models.CharField(max_length=64, editable=False)
    qr_code = models.TextField(blank=True, editable=False)
    notes = models.TextField(blank=True)
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="issued_reports",
    )
    issued_at = models.DateTimeField(db_index=True)
    valid_until = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-issued_at", "-id"]

    def __str__(self):
        return self.report_code


# ============================================================
# Sample documents
# ============================================================
class SampleDocument(models.Model):
    sample = models.ForeignKey(
        Sample,
        on_delete=models.CASCADE,
        related_name="documents",
    )
    filename = models.CharField(max_length=255)
    original_name = models.CharField(max_length=255)
    mime_type = models.CharField(max_length=100, db_index=True)
    size = models.PositiveBigIntegerField()
    path = models.CharField(max_length=500, unique=True)
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="uploaded_documents",
    )
    uploaded_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-uploaded_at", "-id"]

    def __str__(self):
        return self.original_name


# ============================================================
# Audit Log
# ============================================================
class AuditLog(models.Model):
    """Activity feed and error trail."""

    ERROR_ACTION = "ERROR"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    action = models.CharField(max_length=64, db_index=True)
    entity = models.CharField(max_length=64, blank=True)
    entity_id = models.CharField(max_length=64, blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["action", "created_at"], name="audit_action_time_idx"),
        ]

    def __str__(self):
        return f"{self.created_at} - {self.action} {self.entity}:{self.entity_id}"
