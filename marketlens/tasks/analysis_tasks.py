# marketlens/tasks/analysis_tasks.py
from celery import shared_task

from marketlens.logging_setup import bind_log_context, clear_log_context
from marketlens.services.orchestrator import get_orchestrator


@shared_task(name="analysis.run")
def run_analysis(job_id: str):
    """
    Execute one analysis job on a Celery worker. Failures are recorded on the
    job by the orchestrator, so the task itself always succeeds.
    """
    clear_log_context()
    bind_log_context(job_id=job_id)
    get_orchestrator().execute(job_id)
    return {"job_id": job_id}
