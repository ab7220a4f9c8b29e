# assay_core/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .identity import actor_from_request
from .serializers import (
    DocumentUploadSerializer,
    SampleDocumentSerializer,
    SampleListSerializer,
    SampleSerializer,
    SampleUpdateSerializer,
    SampleWriteSerializer,
    TimelineEventCreateSerializer,
    TimelineEventSerializer,
)
from .services import dashboard as dashboard_service
from .services import documents as document_service
from .services import samples as sample_service
from .services.dashboard import database_ok


# ===============================================================
# Health
# ===============================================================
class HealthCheckView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        db_ok = database_ok()
        return Response(
            {
                "status": "ok" if db_ok else "degraded",
                "service": "assay-lims",
                "database": "healthy" if db_ok else "error",
            },
            status=status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        )


# ===============================================================
# Samples
# ===============================================================
class SampleViewSet(viewsets.GenericViewSet):
    """
    Sample registry. All writes go through assay_core.services.samples;
    status never changes through a serializer save.
    """

    serializer_class = SampleSerializer
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser, FormParser, MultiPartParser]
    filter_backends = []
    lookup_value_regex = r"[^/]+"

    def _context(self, **extra):
        return {**self.get_serializer_context(), **extra}

    @extend_schema(tags=["Samples"], responses=SampleListSerializer(many=True))
    def list(self, request):
        qs = sample_service.search_samples(
            actor=actor_from_request(request),
            filters=request.query_params,
        )
        page = self.paginate_queryset(qs)
        if page is not None:
            data = SampleListSerializer(page, many=True, context=self._context()).data
            return self.get_paginated_response(data)
        return Response(SampleListSerializer(qs, many=True, context=self._context()).data)

    @extend_schema(tags=["Samples"], request=SampleWriteSerializer, responses={201: SampleSerializer})
    def create(self, request):
        ser = SampleWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        sample = sample_service.create_sample(
            actor=actor_from_request(request),
            data=ser.validated_data,
        )
        sample = sample_service.lookup_sample(sample.pk)
        return Response(
            SampleSerializer(sample, context=self._context()).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(tags=["Samples"])
    def retrieve(self, request, pk=None):
        sample = sample_service.get_sample(pk, actor=actor_from_request(request))
        return Response(SampleSerializer(sample, context=self._context()).data)

    @extend_schema(tags=["Samples"], request=SampleUpdateSerializer, responses=SampleSerializer)
    def partial_update(self, request, pk=None):
        actor = actor_from_request(request)
        ser = SampleUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        patch = dict(ser.validated_data)
        override = patch.pop("override", False)
        sample = sample_service.update_sample(pk, patch, actor=actor, override=override)
        return Response(SampleSerializer(sample, context=self._context()).data)

    def update(self, request, pk=None):
        return self.partial_update(request, pk=pk)

    @extend_schema(tags=["Samples"], responses=SampleSerializer)
    def destroy(self, request, pk=None):
        sample = sample_service.cancel_sample(pk, actor=actor_from_request(request))
        sample = sample_service.lookup_sample(sample.pk)
        return Response(SampleSerializer(sample, context=self._context()).data)

    @extend_schema(tags=["Samples"])
    @action(detail=False, methods=["get"], url_path=r"code/(?P<code>[^/]+)")
    def by_code(self, request, code=None):
        sample = sample_service.get_sample(code, actor=actor_from_request(request))
        return Response(SampleSerializer(sample, context=self._context()).data)

    @extend_schema(tags=["Samples"])
    @action(detail=False, methods=["get"])
    def stats(self, request):
        return Response(dashboard_service.sample_stats(actor=actor_from_request(request)))

    @extend_schema(
        tags=["Samples"],
        request=TimelineEventCreateSerializer,
        responses=TimelineEventSerializer(many=True),
    )
    @action(detail=True, methods=["get", "post"])
    def timeline(self, request, pk=None):
        actor = actor_from_request(request)

        if request.method == "POST":
            ser = TimelineEventCreateSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            event = sample_service.add_timeline_event(
                pk,
                status=ser.validated_data["status"],
                notes=ser.validated_data.get("notes", ""),
                override=ser.validated_data.get("override", False),
                actor=actor,
            )
            return Response(
                TimelineEventSerializer(event, context=self._context()).data,
                status=status.HTTP_201_CREATED,
            )

        events = sample_service.timeline_for(pk, actor=actor)
        return Response(TimelineEventSerializer(events, many=True, context=self._context()).data)

    @extend_schema(
        tags=["Documents"],
        request=DocumentUploadSerializer,
        responses=SampleDocumentSerializer(many=True),
    )
    @action(detail=True, methods=["get", "post"])
    def documents(self, request, pk=None):
        actor = actor_from_request(request)

        if request.method == "POST":
            ser = DocumentUploadSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            document = document_service.store_document(
                pk,
                ser.validated_data["file"],
                actor=actor,
            )
            return Response(
                SampleDocumentSerializer(document, context=self._context()).data,
                status=status.HTTP_201_CREATED,
            )

        docs = document_service.list_documents(pk, actor=actor)
        return Response(SampleDocumentSerializer(docs, many=True, context=self._context()).data)
