# assay_core/views_tracking.py
from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .serializers import TrackedSampleSerializer
from .services.samples import track_samples


class SampleTrackingView(APIView):
    """
    Public sample tracking by short code, digit fragment or site.
    Client identity and analyst details are never returned.
    """

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "tracking"

    @extend_schema(
        tags=["Tracking"],
        parameters=[OpenApiParameter("code", str, required=False)],
        responses=TrackedSampleSerializer(many=True),
    )
    def get(self, request, query: str = ""):
        raw = query or request.query_params.get("code", "")
        parsed, samples = track_samples(raw)
        return Response(
            {
                "query": parsed.key,
                "kind": parsed.kind,
                "count": len(samples),
                "results": TrackedSampleSerializer(samples, many=True).data,
            }
        )
