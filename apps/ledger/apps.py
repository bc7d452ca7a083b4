"""Django app configuration for the ledger app."""

from django.apps import AppConfig


class LedgerConfig(AppConfig):
    """Configuration for the Ledger app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.ledger"
    verbose_name = "Donation Ledger"
