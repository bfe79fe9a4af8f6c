# ordercore/celery_worker.py
from celery import Celery

from ordercore.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "ordercore",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# explicite importuj taski, zeby Celery je zarejestrowal
celery_app.conf.imports = ("ordercore.services.notification_service",)

celery_app.conf.timezone = "UTC"
celery_app.conf.task_ignore_result = True
