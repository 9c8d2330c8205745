import logging

from flask import Blueprint, jsonify
from sqlalchemy import text

from marketlens.models import db

logger = logging.getLogger(__name__)

bp = Blueprint("health", __name__)


@bp.get("/healthz")
def healthz():
    """
    Healthcheck
    ---
    tags:
      - Health
    responses:
      200:
        description: OK
    """
    return jsonify({"ok": True}), 200


@bp.get("/readyz")
def readyz():
    """
    Readiness: job and result stores reachable
    ---
    tags:
      - Health
    responses:
      200:
        description: OK
      503:
        description: Database unavailable
    """
    try:
        db.session.execute(text("SELECT 1")).scalar()
        return jsonify({"ok": True, "database": db.engine.dialect.name, "status": "Connected"}), 200
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        db.session.rollback()
        return jsonify({"ok": False, "database": db.engine.dialect.name, "error": str(e)}), 503
