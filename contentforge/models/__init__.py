"""Database models."""

from .job import Job, JobType, JobStatus, JobErrorType, ALL_JOB_TYPES

__all__ = ["Job", "JobType", "JobStatus", "JobErrorType", "ALL_JOB_TYPES"]
