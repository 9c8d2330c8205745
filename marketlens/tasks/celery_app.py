import os
import logging
from celery import Celery

logger = logging.getLogger(__name__)


def make_celery(config=None) -> Celery:
    """
    Build the Celery instance used when JOB_EXECUTOR=celery.
    Broker settings come from the Flask config when given, else the environment.
    Includes a connection check with diagnostic logs.
    """
    config = config or {}
    celery_app = Celery("marketlens")

    broker_url = config.get("CELERY_BROKER_URL") or os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
    result_backend = config.get("CELERY_RESULT_BACKEND") or os.getenv("CELERY_RESULT_BACKEND", broker_url)
    core = int(config.get("ANALYSIS_POOL_CORE_WORKERS", 5))
    maximum = int(config.get("ANALYSIS_POOL_MAX_WORKERS", 10))

    celery_app.conf.update(
        broker_url=broker_url,
        result_backend=result_backend,
        task_ignore_result=True,
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone=os.getenv("TZ", "UTC"),
        enable_utc=True,
        # steady `core` workers, up to `maximum` under burst
        worker_autoscale=(maximum, core),
        # a job that dies with its worker is not re-run; it stays visible to pollers
        task_acks_late=False,
        worker_prefetch_multiplier=1,
    )

    try:
        conn = celery_app.connection()
        conn.ensure_connection(max_retries=1)
        logger.info("Celery connected to broker: %s", broker_url)
    except Exception as e:
        logger.error("Error connecting to Celery broker (%s): %s", broker_url, e)

    return celery_app


def init_celery(flask_app) -> Celery:
    """Bind a Celery app to the Flask app so every task runs in its app context."""
    celery = make_celery(flask_app.config)
    TaskBase = celery.Task

    class ContextTask(TaskBase):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return TaskBase.__call__(self, *args, **kwargs)

    celery.Task = ContextTask
    celery.set_default()
    flask_app.extensions["celery"] = celery

    # register task modules
    from marketlens.tasks import analysis_tasks  # noqa

    return celery
