"""Job submission and status endpoints."""

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..core.auth import AuthContext, require_auth
from ..schemas.job import JobCreatedResponse, JobSubmitRequest, JobView
from ..services.job_service import JobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


@router.post("", response_model=JobCreatedResponse, status_code=201)
def create_job(
    request: JobSubmitRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Queue a generation job.

    The body is ``{type, ...payload}``. Everything except ``type`` is stored
    as the job payload; the worker picks the job up on its next poll.
    """
    job = JobService(db).submit(auth.user_id, request.type, request.payload())
    return JobCreatedResponse(id=job.id)


@router.get("/{job_id}", response_model=JobView, response_model_exclude_none=True)
def get_job(
    job_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Get one of the caller's jobs by ID."""
    return JobService(db).get_for_owner(auth.user_id, job_id)
