"""Business logic services."""

from .generation_service import GenerationService
from .job_runner import JobRunner
from .job_service import JobService

__all__ = ["GenerationService", "JobRunner", "JobService"]
