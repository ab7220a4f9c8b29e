# assay_core/admin.py

from django.contrib import admin

from .models import (
    AuditLog,
    Report,
    Sample,
    SampleDocument,
    TimelineEvent,
    UserProfile,
)


# =============================================================
# Accounts
# =============================================================

@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "display_name", "role", "company", "is_verified")
    list_filter = ("role", "is_verified")
    search_fields = ("user__email", "display_name", "company")


# =============================================================
# Samples
# =============================================================

class TimelineEventInline(admin.TabularInline):
    model = TimelineEvent
    extra = 0
    readonly_fields = ("status", "notes", "user", "timestamp")
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Sample)
class SampleAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "mineral",
        "site",
        "status",
        "priority",
        "client",
        "received_at",
        "due_date",
    )
    list_filter = ("status", "mineral", "priority")
    search_fields = ("code", "site", "client__email")
    ordering = ("-received_at",)
    inlines = [TimelineEventInline]

    # status moves through the service layer so the timeline stays complete
    readonly_fields = ("code", "sequence", "status", "completed_at", "created_at", "updated_at")


# =============================================================
# Reports (READ-ONLY apart from certification)
# =============================================================

@admin.register(Report)
class ReportAdmin(admin.ModelAdmin):
    list_display = ("report_code", "sample", "grade", "unit", "certified", "issued_at")
    list_filter = ("certified", "unit")
    search_fields = ("report_code", "sample__code")
    ordering = ("-issued_at",)

    readonly_fields = [
        f.name for f in Report._meta.fields if f.name != "certified"
    ]

    def has_add_permission(self, request):
        return False


@admin.register(SampleDocument)
class SampleDocumentAdmin(admin.ModelAdmin):
    list_display = ("original_name", "sample", "mime_type", "size", "uploaded_at")
    list_filter = ("mime_type",)
    search_fields = ("original_name", "sample__code")
    readonly_fields = [f.name for f in SampleDocument._meta.fields]


# =============================================================
# Audit log (READ-ONLY)
# =============================================================

@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "action", "entity", "entity_id", "user")
    list_filter = ("action", "entity")
    search_fields = ("entity_id", "user__email")
    ordering = ("-created_at",)

    readonly_fields = [f.name for f in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
