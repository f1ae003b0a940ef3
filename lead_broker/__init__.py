from lead_broker.celery import app as celery_app

__all__ = ('celery_app',)
