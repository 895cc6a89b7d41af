"""Job recorder: one row per sync cycle, immutable once finalized."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select

from prunarr.exceptions import JobFinalizedError
from prunarr.models.tables import SyncJob

logger = logging.getLogger(__name__)

FULL_SYNC = "full_sync"
INCREMENTAL_SYNC = "incremental_sync"
SYNC_KINDS = (FULL_SYNC, INCREMENTAL_SYNC)

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
FINAL_STATES = (COMPLETED, FAILED)


@dataclass
class Job:
    id: str
    kind: str
    status: str = PENDING
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    summary: dict = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def finalized(self) -> bool:
        return self.status in FINAL_STATES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.kind,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "summary": self.summary,
            "error": self.error,
        }

    @classmethod
    def from_row(cls, row: SyncJob) -> "Job":
        return cls(
            id=row.id,
            kind=row.kind,
            status=row.status,
            started_at=_aware(row.started_at),
            completed_at=_aware(row.completed_at),
            duration_ms=row.duration_ms,
            summary=dict(row.summary or {}),
            error=row.error,
        )


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class JobRecorder:
    """Persists jobs through an async session factory and keeps the newest ``max_jobs``."""

    def __init__(self, session_factory, max_jobs: int = 100):
        self._session_factory = session_factory
        self.max_jobs = max_jobs

    async def create(self, kind: str) -> Job:
        if kind not in SYNC_KINDS:
            raise ValueError(f"unknown job kind {kind!r}")
        job = Job(id=str(uuid.uuid4()), kind=kind)
        async with self._session_factory() as session:
            session.add(SyncJob(
                id=job.id, kind=job.kind, status=job.status,
                started_at=job.started_at, summary={},
            ))
            await session.commit()
        await self._prune()
        return job

    async def mark_running(self, job: Job) -> Job:
        self._check_open(job)
        job.status = RUNNING
        job.started_at = datetime.now(timezone.utc)
        await self._save(job)
        logger.info(f"Job {job.id} ({job.kind}) running")
        return job

    async def complete(self, job: Job, summary: dict) -> Job:
        return await self._finalize(job, COMPLETED, summary, None)

    async def fail(self, job: Job, error: str, summary: Optional[dict] = None) -> Job:
        return await self._finalize(job, FAILED, summary or job.summary, error)

    async def latest(self) -> Optional[Job]:
        jobs = await self.recent(limit=1)
        return jobs[0] if jobs else None

    async def get(self, job_id: str) -> Optional[Job]:
        async with self._session_factory() as session:
            row = await session.get(SyncJob, job_id)
            return Job.from_row(row) if row else None

    async def recent(self, limit: int = 20) -> list[Job]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SyncJob).order_by(SyncJob.started_at.desc()).limit(limit)
            )
            return [Job.from_row(r) for r in result.scalars().all()]

    # ── Internal helpers ─────────────────────────────────────────

    def _check_open(self, job: Job) -> None:
        if job.finalized:
            raise JobFinalizedError(job.id, job.status)

    async def _finalize(self, job: Job, status: str, summary: dict, error: Optional[str]) -> Job:
        self._check_open(job)
        job.status = status
        job.summary = summary
        job.error = error
        job.completed_at = datetime.now(timezone.utc)
        job.duration_ms = int((job.completed_at - job.started_at).total_seconds() * 1000)
        await self._save(job)
        if status == FAILED:
            logger.error(f"Job {job.id} ({job.kind}) failed after {job.duration_ms}ms: {error}")
        else:
            logger.info(f"Job {job.id} ({job.kind}) completed in {job.duration_ms}ms")
        return job

    async def _save(self, job: Job) -> None:
        async with self._session_factory() as session:
            row = await session.get(SyncJob, job.id)
            if row is None:
                row = SyncJob(id=job.id, kind=job.kind)
                session.add(row)
            row.status = job.status
            row.started_at = job.started_at
            row.completed_at = job.completed_at
            row.duration_ms = job.duration_ms
            row.summary = job.summary
            row.error = job.error
            await session.commit()

    async def _prune(self) -> None:
        async with self._session_factory() as session:
            keep = select(SyncJob.id).order_by(SyncJob.started_at.desc()).limit(self.max_jobs)
            await session.execute(delete(SyncJob).where(SyncJob.id.not_in(keep)))
            await session.commit()
