"""
Reports app serializers.

Serializers handle field definitions and field-level validation only.
**No workflow transitions or permission checks live here** — those belong
in ``services.py``.

Structure
---------
1. Filter / query-param serializers
2. Report read serializers (list, detail)
3. Report write serializers (create)
4. Workflow action serializers (transition, auto-assign, dry-run validation)
5. Derived-query response serializers (timeline, SLA, metrics)
"""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

from accounts.models import UserRole

from .models import CaseStatus, Report

#: Matches ``Report.current_officer_id``, which stores the assignee.
ASSIGNEE_ID_MAX_LENGTH = Report._meta.get_field("current_officer_id").max_length


# ═══════════════════════════════════════════════════════════════════
#  1. Filter / Query-Parameter Serializers
# ═══════════════════════════════════════════════════════════════════


class ReportFilterSerializer(serializers.Serializer):
    """Query-parameter filters for ``GET /api/reports/``."""

    status = serializers.ChoiceField(
        choices=CaseStatus.choices,
        required=False,
        help_text="Filter by current case status.",
    )


# ═══════════════════════════════════════════════════════════════════
#  2. Report Read Serializers
# ═══════════════════════════════════════════════════════════════════


class ReportListSerializer(serializers.ModelSerializer):
    """Compact representation for list endpoints."""

    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Report
        fields = [
            "id",
            "category",
            "description",
            "status",
            "status_display",
            "current_officer_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ReportDetailSerializer(serializers.ModelSerializer):
    """Full report including the raw status history."""

    status_display = serializers.CharField(source="get_status_display", read_only=True)
    reporter = serializers.PrimaryKeyRelatedField(read_only=True)
    is_terminal = serializers.BooleanField(read_only=True)

    class Meta:
        model = Report
        fields = [
            "id",
            "reporter",
            "category",
            "description",
            "jurisdiction_id",
            "status",
            "status_display",
            "is_terminal",
            "status_history",
            "current_officer_id",
            "investigation_started_at",
            "investigation_duration",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


# ═══════════════════════════════════════════════════════════════════
#  3. Report Write Serializers
# ═══════════════════════════════════════════════════════════════════


class ReportCreateSerializer(serializers.Serializer):
    """Citizen submission.  Workflow fields are not accepted."""

    category = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    description = serializers.CharField()
    jurisdiction_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")


# ═══════════════════════════════════════════════════════════════════
#  4. Workflow Action Serializers
# ═══════════════════════════════════════════════════════════════════


class LocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)


class TransitionRequestSerializer(serializers.Serializer):
    """
    Body of ``POST /api/reports/{id}/transition/``.

    ``target_status``, ``assigned_to`` and ``triage_level`` are folded into
    the engine's ``metadata`` as ``targetStatus``, ``assignedTo`` and
    ``triageLevel``.  Field completeness is checked by the engine, not
    here, so the caller gets the workflow's own error message.  An
    ``assignedTo`` from either source must fit ``current_officer_id``.
    """

    notes = serializers.CharField(required=False, allow_blank=True, default="")
    target_status = serializers.ChoiceField(choices=CaseStatus.choices, required=False)
    assigned_to = serializers.CharField(required=False, allow_blank=True, max_length=ASSIGNEE_ID_MAX_LENGTH)
    triage_level = serializers.CharField(required=False, allow_blank=True, max_length=20)
    metadata = serializers.DictField(required=False, default=dict)
    location = LocationSerializer(required=False, allow_null=True, default=None)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        metadata = dict(attrs.get("metadata") or {})
        for field_name, key in (
            ("target_status", "targetStatus"),
            ("assigned_to", "assignedTo"),
            ("triage_level", "triageLevel"),
        ):
            value = attrs.pop(field_name, None)
            if value:
                metadata[key] = value

        assigned_to = metadata.get("assignedTo")
        if assigned_to is not None:
            if isinstance(assigned_to, bool) or not isinstance(assigned_to, (str, int)):
                raise serializers.ValidationError({"metadata": "assignedTo must be a user id."})
            assigned_to = str(assigned_to)
            if len(assigned_to) > ASSIGNEE_ID_MAX_LENGTH:
                raise serializers.ValidationError({
                    "metadata": f"assignedTo must be at most {ASSIGNEE_ID_MAX_LENGTH} characters.",
                })
            metadata["assignedTo"] = assigned_to

        attrs["metadata"] = metadata
        return attrs


class AutoAssignRequestSerializer(serializers.Serializer):
    """Body of ``POST /api/reports/{id}/auto-assign/``."""

    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ValidateTransitionSerializer(serializers.Serializer):
    """
    Body of ``POST /api/reports/validate-transition/``.

    ``user_role`` defaults to the requesting user's own role.
    """

    from_status = serializers.CharField(max_length=20)
    to_status = serializers.CharField(max_length=20)
    user_role = serializers.ChoiceField(choices=UserRole.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    assigned_to = serializers.CharField(
        required=False, allow_blank=True, default="", max_length=ASSIGNEE_ID_MAX_LENGTH,
    )
    triage_level = serializers.CharField(required=False, allow_blank=True, default="")


# ═══════════════════════════════════════════════════════════════════
#  5. Derived-Query Response Serializers
# ═══════════════════════════════════════════════════════════════════


class WorkflowValidationSerializer(serializers.Serializer):
    is_valid = serializers.BooleanField()
    current_status = serializers.CharField()
    target_status = serializers.CharField()
    error_message = serializers.CharField(allow_null=True)
    required_role = serializers.CharField(allow_null=True)
    required_fields = serializers.ListField(child=serializers.CharField())


class TransitionResultSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    new_status = serializers.CharField(allow_null=True)
    status_history_id = serializers.CharField(allow_null=True)
    error_message = serializers.CharField(allow_null=True)
    warnings = serializers.ListField(child=serializers.CharField())
    required_role = serializers.CharField(allow_null=True, required=False)
    required_fields = serializers.ListField(child=serializers.CharField(), required=False)


class AutoAssignResultSerializer(TransitionResultSerializer):
    assigned_officer_id = serializers.CharField()
    open_cases = serializers.IntegerField()
    reason = serializers.CharField()


class AvailableTransitionsSerializer(serializers.Serializer):
    current_status = serializers.CharField()
    available_transitions = serializers.ListField(child=serializers.CharField())


class TimelineEntrySerializer(serializers.Serializer):
    status = serializers.CharField()
    label = serializers.CharField()
    timestamp = serializers.DateTimeField()
    officer_id = serializers.CharField()
    officer_role = serializers.CharField()
    notes = serializers.CharField(allow_blank=True)
    duration = serializers.CharField(allow_null=True)


class SlaStatusSerializer(serializers.Serializer):
    is_overdue = serializers.BooleanField()
    sla_hours = serializers.IntegerField(allow_null=True)
    hours_elapsed = serializers.FloatField(allow_null=True)
    suggested_action = serializers.CharField(allow_null=True)


class PerformanceMetricsSerializer(serializers.Serializer):
    status_distribution = serializers.DictField(child=serializers.IntegerField())
    overdue_reports = serializers.IntegerField()
    transition_times = serializers.DictField(
        child=serializers.ListField(child=serializers.FloatField()),
    )
    average_response_time = serializers.IntegerField(allow_null=True)
    average_resolution_time = serializers.IntegerField(allow_null=True)
