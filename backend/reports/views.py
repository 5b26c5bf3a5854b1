"""
Reports app ViewSets.

Architecture: Views are intentionally thin.
Every view follows the strict three-step pattern:

    1. Parse / validate input via a serializer.
    2. Delegate all business logic to the appropriate service class.
    3. Serialize the result and return a DRF ``Response``.

ViewSets
--------
- ``ReportViewSet`` — Report intake and lookup plus the case-status
  workflow actions (transition, auto-assign, available transitions,
  timeline, SLA, metrics, dry-run validation).
"""

from __future__ import annotations

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)

from core.domain.access import get_user_role_name

from .models import Report
from .serializers import (
    AutoAssignRequestSerializer,
    AutoAssignResultSerializer,
    AvailableTransitionsSerializer,
    PerformanceMetricsSerializer,
    ReportCreateSerializer,
    ReportDetailSerializer,
    ReportFilterSerializer,
    ReportListSerializer,
    SlaStatusSerializer,
    TimelineEntrySerializer,
    TransitionRequestSerializer,
    TransitionResultSerializer,
    ValidateTransitionSerializer,
    WorkflowValidationSerializer,
)
from .services import (
    CaseStatusService,
    ReportAssignmentService,
    ReportCreationService,
    ReportQueryService,
    StatusTransitionContext,
)


class ReportViewSet(viewsets.ViewSet):
    """
    Central ViewSet for the reports app.

    Uses ``viewsets.ViewSet`` (not ``ModelViewSet``) so every action is
    explicitly defined; workflow fields can only change through the
    ``transition`` action.

    Permission Strategy
    -------------------
    The base permission is ``IsAuthenticated``.  Visibility is scoped by
    ``ReportQueryService`` and transition rights by the workflow engine.
    """

    permission_classes = [IsAuthenticated]
    # Allows drf-spectacular to infer path-parameter types automatically.
    queryset = Report.objects.none()

    def _get_report(self, request: Request, pk) -> Report:
        """Retrieve a report within the user's scope.  Raises domain NotFound."""
        return ReportQueryService.get_report_detail(request.user, pk)

    @staticmethod
    def _role_of(request: Request) -> str:
        return get_user_role_name(request.user) or ""

    # ── Standard CRUD ────────────────────────────────────────────────

    @extend_schema(
        summary="List reports",
        description="Return the reports visible to the requesting user, optionally filtered by status.",
        parameters=[
            OpenApiParameter(name="status", type=str, required=False, description="Filter by case status."),
        ],
        responses={200: OpenApiResponse(response=ReportListSerializer(many=True), description="Report list.")},
        tags=["Reports"],
    )
    def list(self, request: Request) -> Response:
        """GET /api/reports/ — List reports with optional status filter."""
        filter_serializer = ReportFilterSerializer(data=request.query_params)
        if not filter_serializer.is_valid():
            return Response(filter_serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        queryset = ReportQueryService.get_filtered_queryset(
            request.user, filter_serializer.validated_data
        )
        serializer = ReportListSerializer(queryset, many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Submit a report",
        description="Create a new report in `pending` status with an empty history.",
        request=ReportCreateSerializer,
        responses={
            201: OpenApiResponse(response=ReportDetailSerializer, description="Report created."),
            400: OpenApiResponse(description="Validation error."),
        },
        tags=["Reports"],
    )
    def create(self, request: Request) -> Response:
        """POST /api/reports/ — Submit a report."""
        serializer = ReportCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        report = ReportCreationService.create_report(serializer.validated_data, request.user)
        return Response(ReportDetailSerializer(report).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Retrieve report detail",
        responses={200: OpenApiResponse(response=ReportDetailSerializer, description="Report detail.")},
        tags=["Reports"],
    )
    def retrieve(self, request: Request, pk=None) -> Response:
        """GET /api/reports/{id}/ — Report detail."""
        report = self._get_report(request, pk)
        return Response(ReportDetailSerializer(report).data, status=status.HTTP_200_OK)

    # ── Workflow @actions ─────────────────────────────────────────────

    @action(detail=True, methods=["post"], url_path="transition")
    @extend_schema(
        summary="Change report status",
        description=(
            "Move the report to `target_status` (or the next status in the "
            "default progression) as the requesting user. The whole change "
            "is applied atomically or not at all."
        ),
        request=TransitionRequestSerializer,
        responses={
            200: OpenApiResponse(response=TransitionResultSerializer, description="Transition applied."),
            400: OpenApiResponse(response=TransitionResultSerializer, description="Transition rejected."),
        },
        tags=["Reports – Workflow"],
    )
    def transition(self, request: Request, pk=None) -> Response:
        """POST /api/reports/{id}/transition/ — Perform a status transition."""
        report = self._get_report(request, pk)
        serializer = TransitionRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        result = CaseStatusService.perform_transition(
            StatusTransitionContext(
                report_id=str(report.pk),
                current_user_id=str(request.user.pk),
                user_role=self._role_of(request),
                notes=data.get("notes", ""),
                metadata=data["metadata"],
                location=data.get("location"),
            )
        )
        response_status = status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST
        return Response(result.to_dict(), status=response_status)

    @action(detail=True, methods=["post"], url_path="auto-assign")
    @extend_schema(
        summary="Auto-assign to the least-loaded officer",
        description=(
            "Pick the active officer with the fewest open cases (preferring "
            "officers in the report's jurisdiction) and move the report from "
            "`validated` to `assigned` with that officer as `assignedTo`."
        ),
        request=AutoAssignRequestSerializer,
        responses={
            200: OpenApiResponse(response=AutoAssignResultSerializer, description="Report assigned."),
            400: OpenApiResponse(description="Transition not allowed or rejected."),
            409: OpenApiResponse(description="No active officers available."),
        },
        tags=["Reports – Workflow"],
    )
    def auto_assign(self, request: Request, pk=None) -> Response:
        """POST /api/reports/{id}/auto-assign/"""
        serializer = AutoAssignRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        pick, result = ReportAssignmentService.auto_assign(
            request.user, pk, notes=serializer.validated_data["notes"],
        )
        payload = AutoAssignResultSerializer({
            **result.to_dict(),
            "assigned_officer_id": pick.officer_id,
            "open_cases": pick.open_cases,
            "reason": pick.reason,
        }).data
        response_status = status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST
        return Response(payload, status=response_status)

    @action(detail=True, methods=["get"], url_path="available-transitions")
    @extend_schema(
        summary="List allowed next statuses",
        description="Statuses the requesting user's role may move this report to. Required fields are not checked.",
        responses={200: OpenApiResponse(response=AvailableTransitionsSerializer, description="Allowed statuses.")},
        tags=["Reports – Workflow"],
    )
    def available_transitions(self, request: Request, pk=None) -> Response:
        """GET /api/reports/{id}/available-transitions/"""
        report = self._get_report(request, pk)
        transitions = CaseStatusService.get_available_transitions(report.status, self._role_of(request))
        serializer = AvailableTransitionsSerializer({
            "current_status": report.status,
            "available_transitions": transitions,
        })
        return Response(serializer.data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["get"], url_path="timeline")
    @extend_schema(
        summary="Status timeline",
        description="History entries in chronological order with the time spent between them.",
        responses={200: OpenApiResponse(response=TimelineEntrySerializer(many=True), description="Timeline.")},
        tags=["Reports – Workflow"],
    )
    def timeline(self, request: Request, pk=None) -> Response:
        """GET /api/reports/{id}/timeline/"""
        report = self._get_report(request, pk)
        entries = CaseStatusService.get_status_timeline(report.status_history)
        return Response(TimelineEntrySerializer(entries, many=True).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["get"], url_path="sla")
    @extend_schema(
        summary="SLA status",
        responses={200: OpenApiResponse(response=SlaStatusSerializer, description="SLA status.")},
        tags=["Reports – Workflow"],
    )
    def sla(self, request: Request, pk=None) -> Response:
        """GET /api/reports/{id}/sla/"""
        report = self._get_report(request, pk)
        overdue = CaseStatusService.check_overdue(report)
        return Response(SlaStatusSerializer(overdue).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"], url_path="metrics")
    @extend_schema(
        summary="Workflow performance metrics",
        description="Status distribution, overdue count and transition timings over all reports.",
        responses={
            200: OpenApiResponse(response=PerformanceMetricsSerializer, description="Metrics."),
            403: OpenApiResponse(description="Role not permitted."),
        },
        tags=["Reports – Workflow"],
    )
    def metrics(self, request: Request) -> Response:
        """GET /api/reports/metrics/"""
        metrics = ReportQueryService.get_metrics(request.user)
        return Response(PerformanceMetricsSerializer(metrics).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"], url_path="validate-transition")
    @extend_schema(
        summary="Dry-run a transition",
        description="Run the workflow validator without touching any report.",
        request=ValidateTransitionSerializer,
        responses={200: OpenApiResponse(response=WorkflowValidationSerializer, description="Validation result.")},
        tags=["Reports – Workflow"],
    )
    def validate_transition(self, request: Request) -> Response:
        """POST /api/reports/validate-transition/"""
        serializer = ValidateTransitionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        validation = CaseStatusService.validate_transition(
            data["from_status"],
            data["to_status"],
            data.get("user_role") or self._role_of(request),
            {
                "notes": data["notes"],
                "assignedTo": data["assigned_to"],
                "triageLevel": data["triage_level"],
            },
        )
        return Response(WorkflowValidationSerializer(validation.to_dict()).data, status=status.HTTP_200_OK)
