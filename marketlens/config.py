# marketlens/config.py
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


class BaseConfig:
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://redis:6379/0")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://redis:6379/0")

    # --- DB (job metadata + result documents) ---
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", "postgresql+psycopg2://app_user:app_pass@db:5432/app_db"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # --- Job execution ---
    # "thread": in-process bounded pool; "celery": analysis.run task on the broker
    JOB_EXECUTOR = os.environ.get("JOB_EXECUTOR", "thread").strip().lower()
    # Celery autoscale floor only; the in-process thread pool has no core size
    # and keeps its threads (up to MAX_WORKERS) until shutdown
    ANALYSIS_POOL_CORE_WORKERS = _env_int("ANALYSIS_POOL_CORE_WORKERS", 5)
    ANALYSIS_POOL_MAX_WORKERS = _env_int("ANALYSIS_POOL_MAX_WORKERS", 10)
    ANALYSIS_POOL_QUEUE_CAPACITY = _env_int("ANALYSIS_POOL_QUEUE_CAPACITY", 25)
    ANALYSIS_POOL_SHUTDOWN_GRACE = _env_int("ANALYSIS_POOL_SHUTDOWN_GRACE", 30)

    # --- Market data ---
    YAHOO_FINANCE_BASE_URL = os.environ.get(
        "YAHOO_FINANCE_BASE_URL", "https://query1.finance.yahoo.com"
    )
    MARKET_DATA_TIMEOUT = _env_int("MARKET_DATA_TIMEOUT", 10)


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"


class ProductionConfig(BaseConfig):
    DEBUG = False
    ENV = "production"


class TestingConfig(BaseConfig):
    TESTING = True
    DEBUG = False
    ENV = "testing"
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite://")
    JOB_EXECUTOR = "thread"
    ANALYSIS_POOL_SHUTDOWN_GRACE = 5
