# assay_core/views_workflows.py
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.exceptions import ValidationError
from drf_spectacular.utils import extend_schema

from .workflows import workflow_definition, allowed_next_states


class WorkflowDefinitionView(APIView):
    """
    Returns the sample workflow definition.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflows"])
    def get(self, request):
        return Response(workflow_definition())


class WorkflowNextStatesView(APIView):
    """
    Returns allowed next states given current state.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflows"])
    def get(self, request):
        current = request.query_params.get("current")
        if not current:
            raise ValidationError("current query parameter is required.")

        try:
            next_states = allowed_next_states(current)
        except ValueError as e:
            raise ValidationError(str(e))

        return Response(
            {
                "current": current.strip().upper(),
                "allowed_next": next_states,
                "terminal": len(next_states) == 0,
            }
        )
