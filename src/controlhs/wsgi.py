"""WSGI config for the ControlHS project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "controlhs.settings")

application = get_wsgi_application()
