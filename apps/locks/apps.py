"""Django app configuration for the locks app."""

from django.apps import AppConfig


class LocksConfig(AppConfig):
    """Configuration for the Org Locks app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.locks"
    verbose_name = "Organization Locks"
