from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OrgLock",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "organization_id",
                    models.CharField(
                        help_text="Organization this lock is held on.",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "locked_until",
                    models.BigIntegerField(
                        db_index=True,
                        help_text="Epoch seconds after which the lock is considered released.",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["-locked_until"],
            },
        ),
    ]
