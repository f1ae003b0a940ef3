"""
ASGI config for lead_broker project.
"""
import atexit
import os

from django.apps import apps
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lead_broker.settings')
application = get_asgi_application()

# The forward scheduler keeps a broker producer for the lifetime of the process.
scheduler = apps.get_app_config('pipeline').scheduler
scheduler.start()
atexit.register(scheduler.stop)
