"""Custom Django admin app configuration."""

from django.contrib.admin.apps import AdminConfig


class DonationsAdminConfig(AdminConfig):
    default_site = "config.admin.DonationsAdminSite"
