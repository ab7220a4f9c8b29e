# assay_core/views_reports.py
from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .identity import actor_from_request
from .policy import IsPrivileged, IsStaffRole
from .serializers import (
    CertificationSerializer,
    ReportCreateSerializer,
    ReportSerializer,
    VerificationSerializer,
)
from .services import reports as report_service


class ReportViewSet(viewsets.GenericViewSet):
    """
    Issued reports. Reports are immutable apart from the certified flag.
    """

    serializer_class = ReportSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = []

    def get_permissions(self):
        if self.action == "by_code":
            return [AllowAny()]
        if self.action == "certification":
            return [IsPrivileged()]
        if self.action == "create":
            return [IsStaffRole()]
        return super().get_permissions()

    @extend_schema(tags=["Reports"])
    def list(self, request):
        qs = report_service.search_reports(
            actor=actor_from_request(request),
            filters=request.query_params,
        )
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(qs, many=True).data)

    @extend_schema(tags=["Reports"], request=ReportCreateSerializer, responses={201: ReportSerializer})
    def create(self, request):
        ser = ReportCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        report = report_service.create_report(
            actor=actor_from_request(request),
            **ser.validated_data,
        )
        return Response(self.get_serializer(report).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Reports"])
    def retrieve(self, request, pk=None):
        report = report_service.get_report(pk, actor=actor_from_request(request))
        return Response(self.get_serializer(report).data)

    @extend_schema(tags=["Reports"])
    @action(detail=False, methods=["get"], url_path=r"code/(?P<code>[^/]+)")
    def by_code(self, request, code=None):
        actor = actor_from_request(request)
        report = report_service.get_report_by_code(code, actor=actor)
        context = {**self.get_serializer_context(), "public": actor is None}
        return Response(ReportSerializer(report, context=context).data)

    @extend_schema(tags=["Reports"], request=CertificationSerializer, responses=ReportSerializer)
    @action(detail=True, methods=["patch"])
    def certification(self, request, pk=None):
        ser = CertificationSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        report = report_service.update_certification(
            pk,
            ser.validated_data["certified"],
            actor=actor_from_request(request),
        )
        return Response(self.get_serializer(report).data)

    @extend_schema(tags=["Reports"])
    @action(detail=False, methods=["get"])
    def stats(self, request):
        return Response(report_service.report_stats(actor=actor_from_request(request)))


class ReportVerificationView(APIView):
    """
    Public certificate check. A mismatched or missing report is still a
    200 with valid=false so QR scanners always get a readable answer.
    """

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "verification"

    @extend_schema(
        tags=["Verification"],
        parameters=[OpenApiParameter("hash", str, required=False)],
        responses=VerificationSerializer,
    )
    def get(self, request, code: str):
        result = report_service.verify_report(code, request.query_params.get("hash"))
        return Response(VerificationSerializer(result, context={"request": request}).data)
