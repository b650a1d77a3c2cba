"""Pydantic schemas for API validation and generation I/O."""

from .job import JobSubmitRequest, JobCreatedResponse, JobView
from .generation import (
    ArticleRef,
    ArticleSettings,
    KeywordsInput,
    ArticleInput,
    ArticleTaskInput,
    GenerationInput,
    TextGeneration,
    GenerationOutcome,
)

__all__ = [
    "JobSubmitRequest",
    "JobCreatedResponse",
    "JobView",
    "ArticleRef",
    "ArticleSettings",
    "KeywordsInput",
    "ArticleInput",
    "ArticleTaskInput",
    "GenerationInput",
    "TextGeneration",
    "GenerationOutcome",
]
