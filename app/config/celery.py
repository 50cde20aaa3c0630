"""
Celery app for the credit ledger service.

Workers run Stripe webhook processing; beat fires the webhook upkeep
tasks on the database schedules from django-celery-beat. Settings are
read from Django settings under the CELERY_ prefix.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("credits_service")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
