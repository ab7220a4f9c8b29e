# assay_core/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter

# -------------------------------------------------
# Core API ViewSets
# -------------------------------------------------
from .views import HealthCheckView, SampleViewSet
from .views_reports import ReportViewSet, ReportVerificationView
from .views_auth import (
    ChangePasswordView,
    LogoutAllView,
    LogoutView,
    MeView,
    RegisterView,
    UserViewSet,
)

# -------------------------------------------------
# Documents, dashboard, tracking
# -------------------------------------------------
from .views_documents import DocumentDetailView, DocumentStatsView, StoredFileView
from .views_dashboard import DashboardStatsView, SystemStatsView
from .views_tracking import SampleTrackingView

# -------------------------------------------------
# Workflow definitions (static metadata)
# -------------------------------------------------
from .views_workflows import WorkflowDefinitionView, WorkflowNextStatesView


router = DefaultRouter()
router.register(r"samples", SampleViewSet, basename="sample")
router.register(r"reports", ReportViewSet, basename="report")
router.register(r"users", UserViewSet, basename="user")


urlpatterns = [
    path("health/", HealthCheckView.as_view(), name="health"),

    # Auth
    path("auth/register/", RegisterView.as_view(), name="auth-register"),
    path("auth/me/", MeView.as_view(), name="auth-me"),
    path("auth/change-password/", ChangePasswordView.as_view(), name="auth-change-password"),
    path("auth/logout/", LogoutView.as_view(), name="auth-logout"),
    path("auth/logout-all/", LogoutAllView.as_view(), name="auth-logout-all"),

    # Public
    path("reports/verify/<str:code>/", ReportVerificationView.as_view(), name="report-verify"),
    path("tracking/", SampleTrackingView.as_view(), name="sample-track"),
    path("tracking/<str:query>/", SampleTrackingView.as_view(), name="sample-track-query"),
    path("files/<path:path>", StoredFileView.as_view(), name="stored-file"),

    # Documents
    path("documents/stats/", DocumentStatsView.as_view(), name="document-stats"),
    path("documents/<int:pk>/", DocumentDetailView.as_view(), name="document-detail"),

    # Dashboard
    path("dashboard/stats/", DashboardStatsView.as_view(), name="dashboard-stats"),
    path("dashboard/system/", SystemStatsView.as_view(), name="dashboard-system"),

    # Workflows
    path("workflows/sample/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path("workflows/sample/next/", WorkflowNextStatesView.as_view(), name="workflow-next-states"),

    path("", include(router.urls)),
]
