import uuid

import django.core.serializers.json
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Report",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created At")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated At")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("category", models.CharField(blank=True, default="", max_length=100, verbose_name="Category")),
                ("description", models.TextField(verbose_name="Description")),
                ("status", models.CharField(choices=[("pending", "Pending Validation"), ("validated", "Validated"), ("assigned", "Assigned to Investigator"), ("accepted", "Accepted by Investigator"), ("responding", "Responding to Scene"), ("investigating", "Under Investigation"), ("resolved", "Resolved (Pending Approval)"), ("closed", "Closed"), ("archived", "Archived"), ("rejected", "Rejected")], db_index=True, default="pending", max_length=20, verbose_name="Current Status")),
                ("status_history", models.JSONField(blank=True, default=list, encoder=django.core.serializers.json.DjangoJSONEncoder, help_text="Append-only list of status transitions.", verbose_name="Status History")),
                ("current_officer_id", models.CharField(blank=True, db_index=True, max_length=64, null=True, verbose_name="Current Officer")),
                ("investigation_started_at", models.DateTimeField(blank=True, null=True, verbose_name="Investigation Started At")),
                ("investigation_duration", models.PositiveIntegerField(blank=True, null=True, verbose_name="Investigation Duration (hours)")),
                ("version", models.PositiveIntegerField(default=0, verbose_name="Version")),
                ("reporter", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reports", to=settings.AUTH_USER_MODEL, verbose_name="Reporter")),
            ],
            options={
                "verbose_name": "Report",
                "verbose_name_plural": "Reports",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "created_at"], name="report_status_created_idx")],
            },
        ),
    ]
