from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="DonationRun",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "correlation_id",
                    models.CharField(
                        help_text="Correlation ID tying together the run's artifacts and messages.",
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("organization_id", models.CharField(db_index=True, max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("scraped", "Scraped"),
                            ("weighed", "Weighed"),
                            ("distributed", "Distributed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "request",
                    models.JSONField(
                        default=dict,
                        help_text="The donation request as received (camelCase keys).",
                    ),
                ),
                (
                    "groups",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="(language, registry) pairs with artifacts under this correlation id.",
                    ),
                ),
                (
                    "crawled",
                    models.BooleanField(
                        default=False,
                        help_text="Whether dependencies were crawled from the organization's repositories.",
                    ),
                ),
                ("top_level_dependencies", models.PositiveIntegerField(default=0)),
                ("total_dependencies", models.PositiveIntegerField(default=0)),
                ("last_error_type", models.CharField(blank=True, default="", max_length=255)),
                ("last_error_message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("scraped_at", models.DateTimeField(blank=True, null=True)),
                ("weighed_at", models.DateTimeField(blank=True, null=True)),
                ("distributed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="distribution_status_idx"),
                ],
            },
        ),
    ]
