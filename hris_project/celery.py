"""
Celery application for background payroll work.

Beat schedule:
- auto_reconcile_payroll: hourly, verifies outstanding salary payouts
  for the current month
"""

import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hris_project.settings')

app = Celery('hris_project')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

app.conf.beat_schedule = {
    'auto-reconcile-payroll': {
        'task': 'hris.tasks.auto_reconcile_payroll',
        'schedule': crontab(minute=0),
    },
}
