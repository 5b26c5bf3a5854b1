from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("accounts", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="user",
            name="jurisdiction_id",
            field=models.CharField(blank=True, db_index=True, default="", max_length=64, verbose_name="Jurisdiction"),
        ),
    ]
