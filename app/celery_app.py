from celery.schedules import crontab
from celery import Celery
from flask import has_app_context
import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = os.getenv("REDIS_PORT", 6379)
REDIS_DB = os.getenv("REDIS_DB", 0)
REDIS_URL = f"redis://{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)

_flask_app = None


def _worker_app():
    """Flask app used by tasks running outside a request."""
    global _flask_app
    if _flask_app is None:
        from app import create_app

        _flask_app = create_app()
    return _flask_app


def make_celery(app=None):
    """
    Create a Celery instance that integrates with Flask application context.
    """

    celery = Celery(
        "app",
        broker=CELERY_BROKER_URL,
        backend=CELERY_RESULT_BACKEND,
        include=["app.modules.rent_saving.tasks"],
    )

    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        task_track_started=True,
        worker_max_tasks_per_child=1000,
        task_acks_late=True,
    )

    celery.conf.beat_schedule = {
        "mature-due-savings-plans": {
            "task": "app.modules.rent_saving.tasks.mature_due_savings_plans",
            "schedule": crontab(hour=0, minute=5),  # Daily, just after midnight UTC
        },
    }

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            if has_app_context():
                return self.run(*args, **kwargs)
            with (app or _worker_app()).app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask
    return celery


celery = make_celery()
