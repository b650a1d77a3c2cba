"""Service for submitting and reading generation jobs."""

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..exceptions import AuthenticationError, JobNotFoundError, UnsupportedJobTypeError, ValidationError
from ..models.job import ALL_JOB_TYPES, Job
from ..repositories.job_repository import JobRepository

logger = logging.getLogger(__name__)


class JobService:
    """
    Entry point for the HTTP layer into the job queue.

    Submission only validates and stores; generation happens later in the
    worker. Reads are scoped to the owning principal: a job owned by someone
    else is reported exactly like a missing one.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = JobRepository(db)

    def submit(self, principal_id: Optional[str], job_type: Any, body_fields: Dict[str, Any]) -> Job:
        """
        Create a PENDING job for *principal_id*.

        Args:
            principal_id: Authenticated caller
            job_type: Requested kind; matched case-insensitively
            body_fields: Remaining request body, stored verbatim as the payload

        Returns:
            The stored job

        Raises:
            AuthenticationError: No principal
            UnsupportedJobTypeError: Type not in the supported set
        """
        if not principal_id:
            raise AuthenticationError("Unauthorized")

        normalized = job_type.strip().upper() if isinstance(job_type, str) else ""
        if normalized not in ALL_JOB_TYPES:
            logger.info("Rejected job submission with type %r", job_type)
            raise UnsupportedJobTypeError(received=str(job_type or ""), supported=ALL_JOB_TYPES)

        payload = {k: v for k, v in (body_fields or {}).items() if k != "type"}
        job = self.repo.insert(principal_id, normalized, payload)

        logger.info(f"Enqueued {normalized} job {job.id} for user {principal_id}")
        return job

    def get_for_owner(self, principal_id: str, job_id: str) -> Job:
        """
        Load a job the caller owns.

        Raises:
            ValidationError: *job_id* is not a UUID
            JobNotFoundError: Missing or owned by someone else
        """
        try:
            uuid.UUID(str(job_id))
        except ValueError:
            raise ValidationError("Invalid job id", field="id")

        job = self.repo.find_by_id(str(job_id), owner_id=principal_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job
