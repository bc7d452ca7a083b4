"""
Celery entry point for split donation runs.

A donation moves through three queued stages, each one a task that receives
only the correlation id and reads the rest from the state store:
scrape_dependencies → weigh_dependencies → distribute_weighed_donation.

Start a worker with:
- celery -A config worker -l info
"""

from __future__ import annotations

import os

from celery import Celery

from config.env import load_env

# Workers are started outside manage.py, so CELERY_BROKER_URL, GITHUB_TOKEN
# and the DONATIONS_* settings have to come from .env before settings import.
load_env()
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("org-donations")

# CELERY_BROKER_URL, CELERY_TASK_ACKS_LATE and friends live in config/settings.py.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up apps/distribution/tasks.py.
app.autodiscover_tasks()
