from celery import Celery

from ..core.config import settings
from ..core.logging_config import configure_logging

celery_app = Celery("trafficsnap", broker=settings.redis_url, backend=settings.redis_url)
celery_app.conf.timezone = settings.tz
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"

configure_logging(settings.log_level)
