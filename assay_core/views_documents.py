# assay_core/views_documents.py
from __future__ import annotations

from django.http import FileResponse
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .identity import actor_from_request
from .serializers import SampleDocumentSerializer
from .services import documents as document_service


class DocumentDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Documents"], responses=SampleDocumentSerializer)
    def get(self, request, pk: int):
        document = document_service.get_document(pk, actor=actor_from_request(request))
        return Response(SampleDocumentSerializer(document).data)

    @extend_schema(tags=["Documents"], responses={204: None})
    def delete(self, request, pk: int):
        document_service.delete_document(pk, actor=actor_from_request(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class DocumentStatsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Documents"])
    def get(self, request):
        return Response(document_service.document_stats(actor=actor_from_request(request)))


class StoredFileView(APIView):
    """
    Serves the bytes of a registered document.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(tags=["Documents"], responses={200: bytes})
    def get(self, request, path: str):
        document, handle = document_service.open_document(path)
        return FileResponse(
            handle,
            content_type=document.mime_type,
            filename=document.original_name or document.filename,
        )
