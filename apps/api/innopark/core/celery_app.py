import logging

from celery import Celery

from innopark.core.config import get_settings
from innopark.core.database import new_session
from innopark.crm.service import task_service

settings = get_settings()
logger = logging.getLogger("innopark.worker")

celery_app = Celery("innopark_api", broker=settings.redis_url, backend=settings.redis_url)
celery_app.conf.beat_schedule = {
    "crm-sweep-overdue-tasks": {
        "task": "crm.tasks.sweep_overdue",
        "schedule": float(settings.overdue_sweep_interval_seconds),
    },
}


@celery_app.task(name="crm.tasks.sweep_overdue")
def sweep_overdue_tasks() -> int:
    """Promote every tenant's past-due Pending tasks to Overdue."""
    session = new_session()
    try:
        promoted = task_service.sweep_overdue(session, company_id=None)
    finally:
        session.close()
    logger.info("task.overdue_sweep", extra={"promoted_count": promoted})
    return promoted
