# assay_core/views_dashboard.py
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema

from .identity import actor_from_request
from .policy import IsPrivileged
from .services.dashboard import dashboard_stats, system_stats


class DashboardStatsView(APIView):
    """
    Headline numbers, monthly trend and recent activity for the caller.
    Clients only see their own samples.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Dashboard"])
    def get(self, request):
        return Response(dashboard_stats(actor=actor_from_request(request)))


class SystemStatsView(APIView):
    permission_classes = [IsPrivileged]

    @extend_schema(tags=["Dashboard"])
    def get(self, request):
        return Response(system_stats(actor=actor_from_request(request)))
