# marketlens/routes/analysis_routes.py
import logging

from flask import Blueprint, jsonify, request, url_for

from marketlens.errors import InconsistentStateError, NotFoundError, ValidationError
from marketlens.models.job import AnalysisJob, JobStatus, Period
from marketlens.services.job_store import AnalysisReport
from marketlens.services.orchestrator import get_orchestrator, stage_for

logger = logging.getLogger(__name__)

bp = Blueprint("analysis", __name__)  # prefix applied on registration in marketlens/__init__.py

DEFAULT_RANGE = Period.ONE_YEAR.value


# --- Local helpers ---

def _iso(dt):
    return dt.replace(microsecond=0).isoformat() + "Z" if dt else None


def _message(job: AnalysisJob) -> str:
    status = job.job_status
    if status is JobStatus.COMPLETED:
        return "Analysis completed successfully"
    if status is JobStatus.FAILED:
        return f"Analysis failed: {job.error_message}"
    return f"Analysis in progress: {stage_for(job.progress)} ({job.progress}% complete)"


def _status_payload(job: AnalysisJob) -> dict:
    payload = {
        "ok": True,
        "jobId": job.id,
        "symbol": job.symbol,
        "range": job.range,
        "status": job.status,
        "progress": job.progress,
        "message": _message(job),
        "createdAt": _iso(job.created_at),
        "updatedAt": _iso(job.updated_at),
        "completedAt": _iso(job.completed_at),
    }
    if job.error_message:
        payload["errorMessage"] = job.error_message
    return payload


def _result_payload(report: AnalysisReport) -> dict:
    return {
        "ok": True,
        "jobId": report.job_id,
        "symbol": report.symbol,
        "range": report.range,
        "status": JobStatus.COMPLETED.value,
        "generatedAt": _iso(report.generated_at),
        "summary": report.summary.to_dict(),
        "series": report.series.to_dict(),
    }


def _completed_report(job: AnalysisJob) -> AnalysisReport:
    try:
        return get_orchestrator().get_result(job.id)
    except NotFoundError as e:
        raise InconsistentStateError(
            f"Analysis {job.id} marked as completed but result not found"
        ) from e


# --- Routes ---

@bp.post("/run")
def run():
    """
    Analysis: start a job
    ---
    tags:
      - Analysis
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - symbol
          properties:
            symbol:
              type: string
              description: Ticker symbol (alias ticker).
              example: "AAPL"
            range:
              type: string
              description: Lookback range (alias period).
              enum: ["1M", "3M", "6M", "1Y", "5Y"]
              default: "1Y"
          example:
            symbol: "AAPL"
            range: "1Y"
    responses:
      202:
        description: Accepted (job running in background)
      400:
        description: Validation error
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError(
            "Request body must be a JSON object",
            [{"field": "body", "issue": "Expected an object like {\"symbol\": \"AAPL\", \"range\": \"1Y\"}"}],
        )

    # aliases only apply when the primary key is absent; present values are validated as sent
    symbol = data["symbol"] if "symbol" in data else data.get("ticker")
    range_ = data["range"] if "range" in data else data.get("period", DEFAULT_RANGE)

    job = get_orchestrator().create_job(symbol, range_)

    body = _status_payload(job)
    body["statusUrl"] = url_for("analysis.status", job_id=job.id)
    body["resultUrl"] = url_for("analysis.result", job_id=job.id)
    return jsonify(body), 202


@bp.get("/<job_id>/status")
def status(job_id: str):
    """
    Analysis: poll job status
    ---
    tags:
      - Analysis
    parameters:
      - in: path
        name: job_id
        required: true
        type: string
    responses:
      200:
        description: Job exists (inspect the status field)
      404:
        description: Unknown or malformed id
    """
    job = get_orchestrator().get_job(job_id)
    return jsonify(_status_payload(job)), 200


@bp.get("/<job_id>")
def result(job_id: str):
    """
    Analysis: fetch result
    ---
    tags:
      - Analysis
    parameters:
      - in: path
        name: job_id
        required: true
        type: string
    responses:
      200:
        description: Completed, full payload
      202:
        description: Still running, poll again later
      404:
        description: Unknown or malformed id
      500:
        description: Job failed (see errorMessage)
    """
    job = get_orchestrator().get_job(job_id)
    status = job.job_status

    if status is JobStatus.RUNNING:
        return jsonify(_status_payload(job)), 202

    if status is JobStatus.FAILED:
        body = _status_payload(job)
        body["ok"] = False
        return jsonify(body), 500

    return jsonify(_result_payload(_completed_report(job))), 200


@bp.get("/ticker/<symbol>/latest")
def latest(symbol: str):
    """
    Analysis: latest completed result for a symbol
    ---
    tags:
      - Analysis
    parameters:
      - in: path
        name: symbol
        required: true
        type: string
        example: "AAPL"
    responses:
      200:
        description: OK
      404:
        description: No completed analysis for the symbol
    """
    job = get_orchestrator().get_latest_completed_job(symbol)
    return jsonify(_result_payload(_completed_report(job))), 200
