"""Django app configuration for the distribution app."""

from django.apps import AppConfig


class DistributionConfig(AppConfig):
    """Configuration for the Donation Distribution app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.distribution"
    verbose_name = "Donation Distribution"
