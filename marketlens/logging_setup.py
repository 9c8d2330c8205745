import contextvars
import json
import logging
import time
import uuid

from flask import g, has_request_context, request

REQUEST_ID_HEADER = "X-Request-ID"

# Correlation fields (request_id, job_id, symbol, range) for the current
# request or job. Worker threads receive a copy via contextvars.copy_context().
_log_context: contextvars.ContextVar = contextvars.ContextVar("log_context", default={})


def bind_log_context(**fields):
    ctx = dict(_log_context.get())
    ctx.update({k: v for k, v in fields.items() if v is not None})
    _log_context.set(ctx)


def clear_log_context():
    _log_context.set({})


def get_log_context() -> dict:
    return dict(_log_context.get())


class JsonRequestFormatter(logging.Formatter):
    def format(self, record):
        data = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }

        if has_request_context():
            data.update({
                "method": request.method,
                "path": request.path,
                "remote_addr": request.headers.get("X-Forwarded-For", request.remote_addr),
            })

        data.update(_log_context.get())

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(data, ensure_ascii=False, default=str)


class HealthCheckFilter(logging.Filter):
    """Drops records emitted while serving the health probes."""

    def filter(self, record):
        return not (has_request_context() and request.path in ("/healthz", "/readyz"))


def setup_logging(app=None):
    level = logging.INFO
    if app:
        level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    # clear duplicated handlers on reload
    for h in list(root.handlers):
        root.removeHandler(h)

    h = logging.StreamHandler()
    h.setFormatter(JsonRequestFormatter())
    h.addFilter(HealthCheckFilter())
    root.addHandler(h)

    if app:
        app.logger.handlers = [h]
        app.logger.setLevel(level)
        app.logger.propagate = False
        init_request_logging(app)


def init_request_logging(app):
    access_log = logging.getLogger("marketlens.access")

    @app.before_request
    def _start_request():
        clear_log_context()
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        g.request_id = request_id
        g.request_started = time.perf_counter()
        bind_log_context(request_id=request_id)

    @app.after_request
    def _finish_request(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        started = getattr(g, "request_started", None)
        if started is not None:
            duration_ms = int((time.perf_counter() - started) * 1000)
            access_log.info(
                "HTTP %s %s - %s - %dms",
                request.method, request.path, response.status_code, duration_ms,
            )
        return response

    @app.teardown_request
    def _reset_context(exc):
        clear_log_context()
