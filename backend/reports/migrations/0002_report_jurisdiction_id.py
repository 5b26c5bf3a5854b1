from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("reports", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="report",
            name="jurisdiction_id",
            field=models.CharField(blank=True, default="", help_text="Used to prefer local officers when auto-assigning.", max_length=64, verbose_name="Jurisdiction"),
        ),
    ]
