from django.contrib import admin

from .models import Report


@admin.register(Report)
class ReportAdmin(admin.ModelAdmin):
    list_display = ("id", "category", "status", "current_officer_id", "created_at")
    list_filter = ("status", "category", "jurisdiction_id")
    search_fields = ("description", "category")
    # Workflow fields are written only through CaseStatusService.
    readonly_fields = (
        "status",
        "status_history",
        "current_officer_id",
        "investigation_started_at",
        "investigation_duration",
        "version",
        "created_at",
        "updated_at",
    )
