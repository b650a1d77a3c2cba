"""Data access repositories."""

from .base import BaseRepository
from .job_repository import JobRepository

__all__ = ["BaseRepository", "JobRepository"]
