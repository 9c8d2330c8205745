# marketlens/services/orchestrator.py
"""
Owner of the analysis job lifecycle.

    create_job  -> RUNNING/0, dispatched to a worker, returns immediately
    execute     -> 20 fetch, 50 summary, 70 charts, 90 persist, COMPLETED/100
                   or FAILED on the first exception

RUNNING -> COMPLETED and RUNNING -> FAILED are the only transitions. A failed
job is never retried; the client starts a new one.
"""
import logging
import re
import time
from typing import Tuple

from flask import current_app
from prometheus_client import Counter, Histogram

from marketlens.errors import NotFoundError, ValidationError
from marketlens.logging_setup import bind_log_context
from marketlens.models import db
from marketlens.models.job import AnalysisJob, JobStatus, Period
from marketlens.services import analytics
from marketlens.services.job_store import AnalysisReport, JobStore, ResultStore

logger = logging.getLogger(__name__)

SYMBOL_MAX_LENGTH = 10
SYMBOL_PATTERN = re.compile(r"^[A-Z][A-Z0-9.-]*$")

# progress checkpoints and the stage reported while a job sits on them
STAGES = {
    0: "Queued",
    20: "Fetching market data",
    50: "Calculating analytics",
    70: "Generating charts",
    90: "Saving results",
    100: "Done",
}

JOBS_TOTAL = Counter(
    "marketlens_analysis_jobs_total", "Analysis jobs by final status", ["status"]
)
JOB_SECONDS = Histogram(
    "marketlens_analysis_job_seconds", "Wall time of analysis job execution"
)


def stage_for(progress: int) -> str:
    reached = [p for p in STAGES if p <= progress]
    return STAGES[max(reached)] if reached else STAGES[0]


def validate_request(symbol, range_) -> Tuple[str, str]:
    """Normalize (symbol, range) or raise ValidationError listing every bad field."""
    details = []

    norm_symbol = symbol.strip().upper() if isinstance(symbol, str) else ""
    if not norm_symbol:
        details.append({"field": "symbol", "issue": "Symbol is required"})
    elif len(norm_symbol) > SYMBOL_MAX_LENGTH:
        details.append({
            "field": "symbol",
            "issue": f"Symbol must be between 1 and {SYMBOL_MAX_LENGTH} characters",
        })
    elif not SYMBOL_PATTERN.match(norm_symbol):
        details.append({
            "field": "symbol",
            "issue": "Symbol must be letters, digits, dots, or dashes starting with a letter "
                     "(e.g., AAPL, BRK.B)",
        })

    norm_range = None
    try:
        norm_range = Period.parse(range_ if isinstance(range_, str) else "").value
    except ValueError:
        details.append({
            "field": "range",
            "issue": f"Range must be one of: {', '.join(p.value for p in Period)}",
        })

    if details:
        raise ValidationError("Request validation failed", details)
    return norm_symbol, norm_range


class AnalysisOrchestrator:

    def __init__(self, fetcher, dispatcher, jobs: JobStore = None, results: ResultStore = None):
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.jobs = jobs or JobStore()
        self.results = results or ResultStore()

    # ---------------------------
    # Commands
    # ---------------------------

    def create_job(self, symbol, range_) -> AnalysisJob:
        symbol, range_ = validate_request(symbol, range_)
        job = self.jobs.create(symbol, range_)
        bind_log_context(job_id=job.id, symbol=symbol, range=range_)
        logger.info("Created analysis job for %s/%s", symbol, range_)

        try:
            self.dispatcher.dispatch(job.id)
        except Exception as e:
            logger.exception("Could not schedule analysis job %s", job.id)
            self._record_failure(job.id, f"Could not schedule analysis: {e}")
        return job

    def execute(self, job_id: str) -> None:
        """Run the pipeline for one job. Failures end up on the job record, never raised."""
        job = self.jobs.get(job_id)
        if job is None:
            logger.warning("Analysis job %s not found; nothing to execute", job_id)
            return
        if job.job_status.is_terminal:
            logger.warning("Analysis job %s already %s; skipping", job_id, job.status)
            return

        symbol, range_ = job.symbol, job.range
        bind_log_context(job_id=job_id, symbol=symbol, range=range_)
        logger.info("Starting analysis processing")
        started = time.perf_counter()

        try:
            self._advance(job_id, 20)
            prices = self.fetcher.fetch(symbol, range_)

            self._advance(job_id, 50)
            summary = analytics.summarize(prices)

            self._advance(job_id, 70)
            series = analytics.build_series(prices)

            self._advance(job_id, 90)
            self.results.add(job_id, symbol, range_, summary, series)
            self.jobs.complete(job_id)
        except Exception as e:
            db.session.rollback()
            logger.exception("Error processing analysis job %s", job_id)
            self._record_failure(job_id, str(e) or e.__class__.__name__)
        else:
            JOBS_TOTAL.labels(status=JobStatus.COMPLETED.value).inc()
            logger.info("Completed analysis processing")
        finally:
            JOB_SECONDS.observe(time.perf_counter() - started)

    def _advance(self, job_id: str, progress: int):
        self.jobs.advance(job_id, progress)
        logger.info("Analysis progress: %d%% - %s", progress, stage_for(progress))

    def _record_failure(self, job_id: str, message: str):
        if self.jobs.fail(job_id, message):
            JOBS_TOTAL.labels(status=JobStatus.FAILED.value).inc()
        else:
            logger.error("Analysis job %s was already terminal; failure not recorded: %s",
                         job_id, message)

    # ---------------------------
    # Queries
    # ---------------------------

    def get_job(self, job_id: str) -> AnalysisJob:
        job = self.jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Analysis job not found: {job_id}")
        return job

    def get_result(self, job_id: str) -> AnalysisReport:
        report = self.results.get(job_id)
        if report is None:
            raise NotFoundError(f"Analysis result not found: {job_id}")
        return report

    def get_latest_completed_job(self, symbol: str) -> AnalysisJob:
        norm = (symbol or "").strip().upper()
        job = self.jobs.latest_completed(norm)
        if job is None:
            raise NotFoundError(f"No completed analysis found for symbol: {norm}")
        return job


def init_orchestrator(app, dispatcher, fetcher=None) -> AnalysisOrchestrator:
    if fetcher is None:
        from marketlens.services.market_data import YahooFinanceFetcher
        fetcher = YahooFinanceFetcher.from_config(app.config)

    orchestrator = AnalysisOrchestrator(fetcher=fetcher, dispatcher=dispatcher)
    app.extensions["analysis_orchestrator"] = orchestrator
    return orchestrator


def get_orchestrator() -> AnalysisOrchestrator:
    return current_app.extensions["analysis_orchestrator"]
