import uuid

import django.db.models.deletion
from django.db import migrations, models

import apps.ledger.models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Organization",
            fields=[
                (
                    "id",
                    models.CharField(
                        default=apps.ledger.models.generate_id,
                        editable=False,
                        max_length=64,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        db_index=True,
                        help_text="Organization login on the code host.",
                        max_length=255,
                    ),
                ),
                (
                    "installation_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Code host app installation reference used to read repositories.",
                        max_length=64,
                    ),
                ),
                (
                    "billing_mode",
                    models.CharField(
                        choices=[("standard", "Standard"), ("manually_billed", "Manually billed")],
                        default="standard",
                        max_length=20,
                    ),
                ),
                (
                    "remaining_donation",
                    models.BigIntegerField(
                        default=0, help_text="Prepaid balance left to distribute (millicents)."
                    ),
                ),
                (
                    "total_donated",
                    models.BigIntegerField(
                        default=0, help_text="Lifetime new money donated (millicents)."
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Package",
            fields=[
                (
                    "id",
                    models.CharField(
                        default=apps.ledger.models.generate_id,
                        editable=False,
                        max_length=64,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(max_length=255)),
                ("language", models.CharField(max_length=50)),
                ("registry", models.CharField(max_length=50)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["registry", "name"],
            },
        ),
        migrations.CreateModel(
            name="ExclusionList",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("language", models.CharField(max_length=50)),
                ("registry", models.CharField(max_length=50)),
                ("names", models.JSONField(blank=True, default=list)),
            ],
        ),
        migrations.CreateModel(
            name="OssUsageSnapshot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("total_dependencies", models.PositiveIntegerField(default=0)),
                ("top_level_dependencies", models.PositiveIntegerField(default=0)),
                ("timestamp", models.DateTimeField(db_index=True)),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="snapshots",
                        to="ledger.organization",
                    ),
                ),
            ],
            options={
                "ordering": ["organization", "timestamp"],
            },
        ),
        migrations.CreateModel(
            name="PackageDonation",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                ("organization_id", models.CharField(db_index=True, max_length=64)),
                ("amount", models.FloatField(help_text="Share of the donation (millicents).")),
                (
                    "timestamp",
                    models.BigIntegerField(help_text="Donation time as epoch milliseconds."),
                ),
                ("description", models.TextField(blank=True, default="")),
                (
                    "package",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="donations",
                        to="ledger.package",
                    ),
                ),
            ],
            options={
                "ordering": ["package", "timestamp"],
                "indexes": [
                    models.Index(
                        fields=["organization_id", "timestamp"],
                        name="ledger_donation_org_ts_idx",
                    )
                ],
            },
        ),
        migrations.AddConstraint(
            model_name="package",
            constraint=models.UniqueConstraint(
                fields=("name", "language", "registry"), name="unique_package_per_registry"
            ),
        ),
        migrations.AddConstraint(
            model_name="exclusionlist",
            constraint=models.UniqueConstraint(
                fields=("language", "registry"), name="unique_exclusion_list"
            ),
        ),
    ]
