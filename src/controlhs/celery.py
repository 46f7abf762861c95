"""Celery configuration for ControlHS."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "controlhs.settings")

app = Celery("controlhs")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
