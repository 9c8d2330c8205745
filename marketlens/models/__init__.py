# marketlens/models/__init__.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


def init_app(app):
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    db.init_app(app)
    migrate.init_app(app, db)


# Imported here so both tables are registered on the metadata
from .job import AnalysisJob, JobStatus, Period  # noqa
from .result import AnalysisResult  # noqa

__all__ = ["db", "migrate", "AnalysisJob", "AnalysisResult", "JobStatus", "Period"]
