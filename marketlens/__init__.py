import atexit
import os

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS
from prometheus_client import CollectorRegistry
from prometheus_flask_exporter import PrometheusMetrics

from .config import DevelopmentConfig, ProductionConfig, TestingConfig
from .errors import register_error_handlers
from .logging_setup import setup_logging
from .routes import analysis_routes, health

__version__ = "1.0.0"


def create_app(config_name: str = "development", overrides: dict = None, fetcher=None):
    app = Flask(__name__)

    config_map = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
    }
    app.config.from_object(config_map.get(config_name.lower(), DevelopmentConfig))
    if overrides:
        app.config.update(overrides)
    app.json.sort_keys = False

    setup_logging(app)
    register_error_handlers(app)

    # CORS from CORS_ORIGINS
    # - unset or '*'  -> any origin
    # - "https://app.example.com,https://admin.example.com" -> only those
    cors_origin = os.getenv("CORS_ORIGINS", "*").strip()
    cors_common_kwargs = dict(
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS", "HEAD"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Requested-With",
            "X-Request-ID",
            "Accept",
            "Origin",
            "Cache-Control",
        ],
        expose_headers=["X-Request-ID"],
    )
    if cors_origin == "*" or cors_origin == "":
        CORS(app, resources={r"/*": {"origins": "*"}}, **cors_common_kwargs)
    else:
        origins_list = [o.strip() for o in cors_origin.split(",") if o.strip()]
        CORS(app, resources={r"/*": {"origins": origins_list}}, **cors_common_kwargs)

    from .models import init_app as init_models
    init_models(app)

    # Job pipeline: one dispatcher (worker pool) per process, injected into the orchestrator
    from .tasks.executor import make_dispatcher
    from .services.orchestrator import init_orchestrator
    dispatcher = make_dispatcher(app)
    init_orchestrator(app, dispatcher, fetcher=fetcher)
    if not app.testing:
        atexit.register(dispatcher.shutdown)

    # Swagger
    swagger_template = {
        "swagger": "2.0",
        "info": {
            "title": "MarketLens Analysis API",
            "description": "Asynchronous ticker analytics: start a job, poll it, fetch the report.",
            "version": __version__,
        },
        "basePath": "/",
        "schemes": ["https"],
    }
    swagger_config = {
        "headers": [],
        "specs": [
            {
                "endpoint": "apispec_1",
                "route": "/apispec_1.json",
                "rule_filter": lambda rule: True,
                "model_filter": lambda tag: True,
            }
        ],
        "static_url_path": "/flasgger_static",
        "swagger_ui": True,
        "specs_route": "/apidocs/",
    }
    Swagger(app, template=swagger_template, config=swagger_config)

    # Blueprints
    app.register_blueprint(health.bp)
    app.register_blueprint(analysis_routes.bp, url_prefix="/api/analysis")

    # Metrics (private registry under tests: several apps per process)
    metrics_kwargs = {"registry": CollectorRegistry()} if app.testing else {}
    metrics = PrometheusMetrics(app, path="/metrics", **metrics_kwargs)
    metrics.info("app_info", "MarketLens analysis service", version=__version__)

    return app
