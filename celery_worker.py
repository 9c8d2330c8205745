# Celery entrypoint for JOB_EXECUTOR=celery:
#   celery -A celery_worker.celery worker --loglevel=INFO
import os

from marketlens import create_app

flask_app = create_app(os.getenv("FLASK_ENV", "production"), overrides={"JOB_EXECUTOR": "celery"})
celery = flask_app.extensions["celery"]
