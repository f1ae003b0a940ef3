"""
Celery configuration for Lead Broker Service.
"""
import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lead_broker.settings')

app = Celery('lead_broker')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
