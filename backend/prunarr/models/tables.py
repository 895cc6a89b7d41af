"""SQLAlchemy ORM models: exclusions and sync job history."""

from datetime import datetime
from typing import Optional
from sqlalchemy import Integer, String, Text, DateTime, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from prunarr.database import Base


# ── Exclusions ───────────────────────────────────────────────────

class Exclusion(Base):
    __tablename__ = "exclusions"

    item_id: Mapped[str] = mapped_column(String(50), primary_key=True)   # radarr-<id> | sonarr-<id>
    media_type: Mapped[Optional[str]] = mapped_column(String(10))
    title: Mapped[Optional[str]] = mapped_column(String(500))
    reason: Mapped[str] = mapped_column(Text, default="")
    excluded_by: Mapped[Optional[str]] = mapped_column(String(100))
    excluded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── Sync Jobs ────────────────────────────────────────────────────

class SyncJob(Base):
    __tablename__ = "sync_jobs"
    __table_args__ = (
        Index("idx_sync_jobs_started", "started_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)      # full_sync | incremental_sync
    status: Mapped[str] = mapped_column(String(10), nullable=False)    # pending | running | completed | failed
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    summary: Mapped[dict] = mapped_column(JSON, default=dict)
    error: Mapped[Optional[str]] = mapped_column(Text)
