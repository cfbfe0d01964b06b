"""
Celery Application Configuration

Ride files are decoded and analyzed in a single synchronous pass, so each
task is short and CPU-bound. Limits can be tuned per deployment:
- REDIS_URL: broker and result backend
- RIDEREPORT_TASK_TIME_LIMIT: hard limit per task in seconds
- RIDEREPORT_RESULT_EXPIRES: seconds a report stays in the result backend
"""

from celery import Celery
import os

# Broker and result backend share one Redis instance
redis_url = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
app = Celery('ridereport', broker=redis_url, backend=redis_url)

task_time_limit = int(os.getenv('RIDEREPORT_TASK_TIME_LIMIT', '120'))

app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_time_limit=task_time_limit,
    # Leave room to log and return the error result before the hard kill
    task_soft_time_limit=max(1, task_time_limit - 10),
    # Reports are fetched once by the caller; superseded ones are discarded
    result_expires=int(os.getenv('RIDEREPORT_RESULT_EXPIRES', '3600')),
    # One ride at a time per worker process
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Auto-discover tasks
app.autodiscover_tasks(['ridereport.tasks'])

__all__ = ['app']
