"""
Access layer for the two stores behind the job pipeline.

JobStore holds the small, frequently polled job record; ResultStore holds the
computed report. Status polling only ever touches JobStore.

Job mutations are conditional UPDATEs (status must still be RUNNING, progress
may not go backwards), so the database serializes concurrent writers of one
job id and terminal jobs stay untouched.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from marketlens.errors import InconsistentStateError, JobStateError
from marketlens.models import db
from marketlens.models.job import AnalysisJob, JobStatus, utcnow
from marketlens.models.result import AnalysisResult
from marketlens.services.analytics import ChartSeries, Summary

logger = logging.getLogger(__name__)


def is_valid_job_id(job_id) -> bool:
    try:
        uuid.UUID(str(job_id))
        return True
    except ValueError:
        return False


@dataclass(frozen=True)
class AnalysisReport:
    job_id: str
    symbol: str
    range: str
    generated_at: datetime
    summary: Summary
    series: ChartSeries

    @classmethod
    def from_model(cls, rec: AnalysisResult) -> "AnalysisReport":
        return cls(
            job_id=rec.job_id,
            symbol=rec.symbol,
            range=rec.range,
            generated_at=rec.generated_at,
            summary=Summary.from_dict(rec.summary),
            series=ChartSeries.from_dict(rec.series),
        )


class JobStore:

    def create(self, symbol: str, range_: str) -> AnalysisJob:
        now = utcnow()
        job = AnalysisJob(
            id=str(uuid.uuid4()),
            symbol=symbol,
            range=range_,
            status=JobStatus.RUNNING.value,
            progress=0,
            created_at=now,
            updated_at=now,
        )
        db.session.add(job)
        db.session.commit()
        # load the creation-time state before any worker can move it
        db.session.refresh(job)
        return job

    def get(self, job_id: str) -> Optional[AnalysisJob]:
        if not is_valid_job_id(job_id):
            return None
        # always reload: the row is written by worker sessions
        return db.session.get(AnalysisJob, str(job_id), populate_existing=True)

    def latest_completed(self, symbol: str) -> Optional[AnalysisJob]:
        stmt = (
            select(AnalysisJob)
            .where(AnalysisJob.symbol == symbol, AnalysisJob.status == JobStatus.COMPLETED.value)
            .order_by(AnalysisJob.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return db.session.execute(stmt).scalars().first()

    def _update_running(self, job_id: str, values: dict, min_progress: Optional[int] = None) -> int:
        conditions = [AnalysisJob.id == job_id, AnalysisJob.status == JobStatus.RUNNING.value]
        if min_progress is not None:
            conditions.append(AnalysisJob.progress <= min_progress)
        stmt = (
            update(AnalysisJob)
            .where(*conditions)
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return db.session.execute(stmt).rowcount

    def advance(self, job_id: str, progress: int) -> None:
        """Raise progress of a RUNNING job; regressions and terminal jobs are rejected."""
        if not 0 <= progress <= 100:
            raise ValueError(f"progress out of range: {progress}")
        if self._update_running(job_id, {"progress": progress}, min_progress=progress) != 1:
            db.session.rollback()
            raise JobStateError(f"Cannot set progress {progress} on job {job_id}")
        db.session.commit()

    def complete(self, job_id: str) -> None:
        """
        RUNNING -> COMPLETED at 100%. Commits whatever else is pending in the
        session (the result document) in the same transaction.
        """
        now = utcnow()
        values = {"status": JobStatus.COMPLETED.value, "progress": 100, "completed_at": now}
        if self._update_running(job_id, values) != 1:
            db.session.rollback()
            raise JobStateError(f"Job {job_id} is not RUNNING; cannot complete")
        db.session.commit()

    def fail(self, job_id: str, error_message: str) -> bool:
        """RUNNING -> FAILED. Returns False if the job was already terminal."""
        values = {
            "status": JobStatus.FAILED.value,
            "error_message": error_message,
            "completed_at": utcnow(),
        }
        updated = self._update_running(job_id, values)
        db.session.commit()
        return updated == 1


class ResultStore:

    def add(self, job_id: str, symbol: str, range_: str, summary: Summary, series: ChartSeries) -> AnalysisResult:
        """Stage the result document; it becomes visible when the job completes."""
        rec = AnalysisResult(
            job_id=job_id,
            symbol=symbol,
            range=range_,
            generated_at=utcnow(),
            summary=summary.to_dict(),
            series=series.to_dict(),
        )
        db.session.add(rec)
        try:
            db.session.flush()
        except IntegrityError as e:
            db.session.rollback()
            raise InconsistentStateError(f"Result for job {job_id} already exists") from e
        return rec

    def get(self, job_id: str) -> Optional[AnalysisReport]:
        if not is_valid_job_id(job_id):
            return None
        stmt = select(AnalysisResult).where(AnalysisResult.job_id == str(job_id))
        rec = db.session.execute(stmt).scalars().first()
        return AnalysisReport.from_model(rec) if rec else None
