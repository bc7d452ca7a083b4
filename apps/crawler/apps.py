"""Django app configuration for the crawler app."""

from django.apps import AppConfig


class CrawlerConfig(AppConfig):
    """Configuration for the Manifest Crawler app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.crawler"
    verbose_name = "Manifest Crawler"
