"""Job model for asynchronous content generation."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, JSON, Index
from ..database import Base


class JobType(str, enum.Enum):
    """Kinds of content a job can generate."""
    KEYWORDS = "KEYWORDS"
    ARTICLE = "ARTICLE"
    SEO = "SEO"
    META = "META"
    IMAGE = "IMAGE"
    HASHTAGS = "HASHTAGS"


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class JobErrorType(str, enum.Enum):
    """Value of ``error["type"]`` on failed jobs."""
    PROVIDER = "PROVIDER"
    PRECONDITION = "PRECONDITION"
    WORKER_UNCAUGHT = "WORKER_UNCAUGHT"


ALL_JOB_TYPES = tuple(t.value for t in JobType)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(Base):
    """
    A unit of asynchronous generation work.

    Status transitions: PENDING -> RUNNING -> SUCCEEDED | FAILED
    Only the job runner mutates a job after creation. ``result`` is set only
    on SUCCEEDED and ``error`` only on FAILED.
    """

    __tablename__ = "jobs"

    # Primary key (UUID format)
    id = Column(String(36), primary_key=True)

    # Owning principal; immutable
    user_id = Column(String(64), nullable=False, index=True)

    # One of JobType; immutable
    type = Column(String(20), nullable=False)

    # One of JobStatus
    status = Column(String(20), nullable=False, default=JobStatus.PENDING.value)

    # Request body minus "type", stored verbatim
    payload = Column(JSON, nullable=False, default=dict)

    result = Column(JSON, nullable=True)
    error = Column(JSON, nullable=True)
    model = Column(String(100), nullable=True)

    tokens_used = Column(Integer, nullable=False, default=0)
    attempt = Column(Integer, nullable=False, default=0)

    # Worker instance currently holding the job
    claimed_by = Column(String(100), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Claim query: oldest PENDING job of a given type
    __table_args__ = (
        Index("ix_jobs_status_type_created", "status", "type", "created_at"),
    )
