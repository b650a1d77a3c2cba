"""Data access for generation jobs.

Every mutation is a single-row statement so concurrent workers and API
handlers never need explicit locks:

- ``claim_oldest_pending`` picks a candidate and then flips it to RUNNING
  with a compare-and-set UPDATE guarded on ``status = PENDING``. When two
  workers race for the same row, the database lets exactly one UPDATE
  match; the other sees ``rowcount == 0`` and reports no match.
- ``update_terminal`` sets terminal fields and increments ``tokens_used``
  in the same UPDATE, so the counter is additive even under concurrent
  writers.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import or_, update

from .base import BaseRepository
from ..models.job import Job, JobStatus, utcnow

logger = logging.getLogger(__name__)


class JobRepository(BaseRepository[Job]):
    """Repository for the jobs table."""

    model_class = Job

    def insert(self, user_id: str, job_type: str, payload: Dict[str, Any]) -> Job:
        """Persist a new PENDING job and return it with its assigned id."""
        now = utcnow()
        job = Job(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=job_type,
            status=JobStatus.PENDING.value,
            payload=payload,
            attempt=0,
            tokens_used=0,
            created_at=now,
            updated_at=now,
        )
        with self.store_errors("insert"):
            self.db.add(job)
            self.db.commit()
            self.db.refresh(job)
        return job

    def find_by_id(self, job_id: str, owner_id: Optional[str] = None) -> Optional[Job]:
        """Load a job, optionally only if it belongs to *owner_id*.

        Status polls must see the worker's writes, so loaded rows always
        overwrite whatever this session already holds.
        """
        if owner_id is None:
            return self.get_by_id_optional(job_id)
        with self.store_errors("find_by_id"):
            return (
                self._base_query()
                .populate_existing()
                .filter(Job.id == job_id, Job.user_id == owner_id)
                .first()
            )

    def _claimable(self, types: Iterable[str], instance_id: str) -> list:
        return [
            Job.status == JobStatus.PENDING.value,
            Job.type.in_(list(types)),
            or_(Job.claimed_by.is_(None), Job.claimed_by == instance_id),
        ]

    def try_claim(self, job_id: str, types: Iterable[str], instance_id: str) -> bool:
        """Compare-and-set a specific job to RUNNING. Returns False if another claimant won."""
        now = utcnow()
        stmt = (
            update(Job)
            .where(Job.id == job_id, *self._claimable(types, instance_id))
            .values(
                status=JobStatus.RUNNING.value,
                claimed_by=instance_id,
                claimed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with self.store_errors("claim"):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount == 1

    def claim_oldest_pending(self, types: Iterable[str], instance_id: str) -> Optional[Job]:
        """Atomically claim the oldest claimable PENDING job of the given types.

        Returns the post-update job, or None when nothing matched (including
        when a concurrent claimant took the candidate first).
        """
        types = list(types)
        with self.store_errors("claim"):
            candidate_id = (
                self.db.query(Job.id)
                .filter(*self._claimable(types, instance_id))
                .order_by(Job.created_at.asc(), Job.id.asc())
                .limit(1)
                .scalar()
            )
        if candidate_id is None:
            return None

        if not self.try_claim(candidate_id, types, instance_id):
            logger.debug("Lost claim race for job %s", candidate_id)
            return None

        with self.store_errors("claim"):
            job = self.db.get(Job, candidate_id, populate_existing=True)
        logger.info("Claimed job %s", candidate_id, extra={"job_type": job.type, "instance_id": instance_id})
        return job

    def update_terminal(
        self,
        job_id: str,
        status: JobStatus,
        attempt: int,
        tokens_used_delta: int = 0,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None,
        model: Optional[str] = None,
    ) -> None:
        """Write a terminal state and add *tokens_used_delta* to the usage counter."""
        values: Dict[str, Any] = {
            "status": status.value,
            "attempt": attempt,
            "tokens_used": Job.tokens_used + max(0, int(tokens_used_delta or 0)),
            "updated_at": utcnow(),
        }
        if status == JobStatus.SUCCEEDED:
            values["result"] = result
            values["model"] = model
            values["error"] = None
        elif status == JobStatus.FAILED:
            values["error"] = error
        else:
            raise ValueError(f"Not a terminal status: {status}")

        stmt = (
            update(Job)
            .where(Job.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self.store_errors("update_terminal"):
            self.db.execute(stmt)
            self.db.commit()

    def mark_failed(self, job_id: str, error: Dict[str, Any]) -> None:
        """Set FAILED and an error record without touching attempt or usage."""
        stmt = (
            update(Job)
            .where(Job.id == job_id)
            .values(status=JobStatus.FAILED.value, error=error, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        with self.store_errors("mark_failed"):
            self.db.execute(stmt)
            self.db.commit()

    def requeue_orphaned(self, instance_id: str) -> int:
        """Return this instance's RUNNING jobs to PENDING after a crash.

        ``claimed_by`` is kept, so only the same instance can re-claim them.
        """
        stmt = (
            update(Job)
            .where(Job.status == JobStatus.RUNNING.value, Job.claimed_by == instance_id)
            .values(status=JobStatus.PENDING.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        with self.store_errors("requeue_orphaned"):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount
