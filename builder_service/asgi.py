"""ASGI entry point for the form builder service."""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "builder_service.settings")

application = get_asgi_application()
