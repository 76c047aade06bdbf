"""WSGI entry point for the SnapClass project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "snapclass.settings")

application = get_wsgi_application()
