# marketlens/errors.py
"""
Error taxonomy and the Flask handlers that render it.

Every error response has the same shape:

    {"ok": false, "error": "<CODE>", "message": "...", "details": [...],
     "path": "/api/...", "timestamp": "2026-01-01T00:00:00Z"}
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from flask import jsonify, request
from werkzeug.exceptions import BadRequest, HTTPException, MethodNotAllowed, NotFound

logger = logging.getLogger(__name__)


class MarketLensError(Exception):
    """Base class for errors raised by the analysis pipeline."""


class ValidationError(MarketLensError):
    """Rejected input; carries field-level details."""

    def __init__(self, message: str, details: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundError(MarketLensError):
    pass


class DataUnavailableError(MarketLensError):
    """Market data could not be fetched or was empty."""


class JobStateError(MarketLensError):
    """Illegal job mutation: write after a terminal state or progress regression."""


class InconsistentStateError(MarketLensError):
    """Stored state breaks an invariant, e.g. a COMPLETED job without a result."""


def _iso_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def error_response(code: str, message: str, status: int, details=None):
    body = {
        "ok": False,
        "error": code,
        "message": message,
        "path": request.path,
        "timestamp": _iso_now(),
    }
    if details:
        body["details"] = details
    return jsonify(body), status


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def _validation(e: ValidationError):
        logger.warning("Validation error on %s: %d fields failed", request.path, len(e.details))
        return error_response("VALIDATION_ERROR", e.message, 400, e.details)

    @app.errorhandler(NotFoundError)
    def _not_found(e: NotFoundError):
        logger.warning("Not found on %s: %s", request.path, e)
        return error_response("NOT_FOUND", str(e), 404)

    @app.errorhandler(InconsistentStateError)
    def _inconsistent(e: InconsistentStateError):
        logger.error("Data inconsistency on %s: %s", request.path, e)
        return error_response("INTERNAL_ERROR", str(e), 500)

    @app.errorhandler(BadRequest)
    def _bad_request(e: BadRequest):
        logger.warning("Malformed request on %s: %s", request.path, e.description)
        return error_response(
            "BAD_REQUEST", "Malformed request body. Please check your JSON syntax.", 400
        )

    @app.errorhandler(NotFound)
    def _no_route(e: NotFound):
        return error_response(
            "NOT_FOUND", f"Endpoint not found: {request.method} {request.path}", 404
        )

    @app.errorhandler(MethodNotAllowed)
    def _method_not_allowed(e: MethodNotAllowed):
        allowed = ", ".join(sorted(e.valid_methods or []))
        return error_response(
            "METHOD_NOT_ALLOWED",
            f"HTTP method {request.method} is not supported for this endpoint. "
            f"Supported methods: {allowed}",
            405,
        )

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return error_response(e.name.upper().replace(" ", "_"), e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        logger.exception("Unhandled exception on %s", request.path)
        return error_response(
            "INTERNAL_ERROR", "An unexpected error occurred. Please try again later.", 500
        )
