"""Celery application for form schema maintenance jobs."""
from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "builder_service.settings")

app = Celery("builder_service")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
