from marketlens.models import db
from marketlens.models.job import utcnow
from marketlens.models.types import JSONBCompat


class AnalysisResult(db.Model):
    """Computed report of a COMPLETED job. Written once, never updated."""
    __tablename__ = "analysis_results"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(
        db.String(36), db.ForeignKey("analysis_jobs.id"), nullable=False, unique=True, index=True
    )
    symbol = db.Column(db.String(10), nullable=False)
    range = db.Column(db.String(4), nullable=False)
    generated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    summary = db.Column(JSONBCompat(), nullable=False)   # cumulativeReturn, maxDrawdown, ...
    series = db.Column(JSONBCompat(), nullable=False)    # prices, returns, volatility, rsi
