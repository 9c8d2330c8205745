import enum
import uuid
from datetime import datetime, timezone

from marketlens.models import db


class JobStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


class Period(str, enum.Enum):
    """Lookback ranges accepted by the analysis API."""
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    FIVE_YEARS = "5Y"

    @classmethod
    def parse(cls, value: str) -> "Period":
        normalized = (value or "").strip().upper()
        for period in cls:
            if period.value == normalized:
                return period
        raise ValueError(
            f"Invalid range: {value}. Allowed values: {', '.join(p.value for p in cls)}"
        )


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


class AnalysisJob(db.Model):
    __tablename__ = "analysis_jobs"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    symbol = db.Column(db.String(10), index=True, nullable=False)
    range = db.Column(db.String(4), nullable=False)

    status = db.Column(db.String(20), nullable=False, default=JobStatus.RUNNING.value, index=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.Index("ix_analysis_jobs_symbol_status_created", "symbol", "status", "created_at"),
    )

    @property
    def job_status(self) -> JobStatus:
        return JobStatus(self.status)

    def __repr__(self):
        return f"<AnalysisJob {self.id} {self.symbol}/{self.range} {self.status} {self.progress}%>"
