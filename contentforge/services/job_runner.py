"""Job runner: claims pending jobs and drives them to a terminal state.

One ``tick`` claims at most one job, builds the typed input for its kind,
runs the generation with job-level retries and writes SUCCEEDED or FAILED.
Ticks are single-flight per runner: a tick that starts while another is
still running returns immediately.

Nothing raised while processing a job escapes ``tick``. Failures end up on
the job's ``error`` record; a store outage aborts the tick and the next
tick tries again.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.logging_config import job_id_var
from ..core.retry import linear_backoff, retry_call
from ..database import SessionLocal
from ..exceptions import PreconditionError, ResponseParseError, StoreUnavailableError
from ..models.job import ALL_JOB_TYPES, Job, JobErrorType, JobStatus, JobType
from ..repositories.job_repository import JobRepository
from ..schemas.generation import (
    ArticleInput,
    ArticleRef,
    ArticleSettings,
    ArticleTaskInput,
    GenerationInput,
    KeywordsInput,
)
from .generation_service import GenerationService, normalize_keywords

logger = logging.getLogger(__name__)

# Job-level backoff between attempts: 300ms, 600ms, 900ms, ...
JOB_BACKOFF_INITIAL_SECONDS = 0.3
JOB_BACKOFF_STEP_SECONDS = 0.3

RAW_SNIPPET_LIMIT = 500

_ARTICLE_TASK_KINDS = (JobType.SEO.value, JobType.META.value, JobType.IMAGE.value, JobType.HASHTAGS.value)


def _str_field(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else ""


def _prompt_field(payload: Dict[str, Any], key: str) -> str:
    """Like _str_field, but non-zero numbers are accepted as their text."""
    value = payload.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value:
        return str(value)
    return _str_field(payload, key)


def build_input(kind: str, payload: Dict[str, Any], default_locale: str = "en") -> GenerationInput:
    """Turn a stored payload into the typed input for *kind*.

    Raises:
        PreconditionError: an SEO/META/IMAGE/HASHTAGS payload lacks title or
            content, or *kind* is unknown.
    """
    payload = payload if isinstance(payload, dict) else {}
    locale = _str_field(payload, "locale") or default_locale
    topic = _prompt_field(payload, "seed") or _prompt_field(payload, "topic") or "untitled"
    keywords = normalize_keywords(payload.get("keywords"))

    if kind == JobType.KEYWORDS.value:
        return KeywordsInput(seed=topic, locale=locale)

    if kind == JobType.ARTICLE.value:
        raw_settings = payload.get("settings") if isinstance(payload.get("settings"), dict) else {}
        article_settings = ArticleSettings(
            length=_str_field(raw_settings, "length") or "medium",
            tone=_str_field(raw_settings, "tone") or "professional",
        )
        return ArticleInput(topic=topic, keywords=keywords, locale=locale, settings=article_settings)

    if kind in _ARTICLE_TASK_KINDS:
        title = _str_field(payload, "title")
        content = payload.get("content") if isinstance(payload.get("content"), str) else ""
        missing = [name for name, value in (("title", title), ("content", content.strip())) if not value]
        if missing:
            raise PreconditionError(f"{kind} job requires {' and '.join(missing)}", missing=missing)
        return ArticleTaskInput(
            kind=kind,
            article=ArticleRef(title=title, content=content),
            topic=topic,
            keywords=keywords,
            locale=locale,
        )

    raise PreconditionError(f"Unsupported job type: {kind}", missing=["type"])


def to_job_error(exc: BaseException, error_type: JobErrorType, provider: str = "") -> Dict[str, Any]:
    """Build the structured error record stored on a FAILED job."""
    record: Dict[str, Any] = {
        "type": error_type.value,
        "code": getattr(exc, "code", None) or "AI_CALL_FAILED",
        "provider": getattr(exc, "provider", None) or provider,
        "message": str(exc) or type(exc).__name__,
    }
    if isinstance(exc, ResponseParseError):
        record["raw_snippet"] = (exc.raw_text or "")[:RAW_SNIPPET_LIMIT]
        record["parse_error"] = exc.parse_error
        if exc.fallback_error:
            record["fallback_error"] = exc.fallback_error
    return record


class JobRunner:
    """Polls the job store and processes one job per tick."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        generator: Optional[GenerationService] = None,
        instance_id: Optional[str] = None,
        max_attempts: Optional[int] = None,
        allowed_types: Iterable[str] = ALL_JOB_TYPES,
        default_locale: Optional[str] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self._session_factory = session_factory
        self.generator = generator or GenerationService()
        self.instance_id = instance_id or settings.worker_instance_id
        self.max_attempts = max_attempts or settings.job_max_attempts
        self.allowed_types = tuple(allowed_types)
        self.default_locale = default_locale or settings.default_locale
        self._sleep = sleep
        self._run_lock = threading.Lock()
        self._backoff = linear_backoff(JOB_BACKOFF_INITIAL_SECONDS, JOB_BACKOFF_STEP_SECONDS)

    @property
    def provider(self) -> str:
        return getattr(self.generator, "provider", "") or settings.ai_provider

    def recover_orphans(self) -> int:
        """Requeue jobs this instance left RUNNING. Call once at startup."""
        db = self._session_factory()
        try:
            count = JobRepository(db).requeue_orphaned(self.instance_id)
        finally:
            db.close()
        if count:
            logger.warning("Requeued %d orphaned job(s) for instance %s", count, self.instance_id)
        return count

    def tick(self) -> Optional[str]:
        """Claim and process at most one job.

        Returns:
            The processed job's id, or None if the runner was busy, nothing
            was claimable or the store was unavailable.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.debug("Tick skipped, previous tick still running")
            return None
        try:
            return self._claim_and_process()
        except StoreUnavailableError as e:
            logger.warning("Job store unavailable, skipping tick: %s", e)
            return None
        except Exception:
            logger.exception("Unexpected error in worker tick")
            return None
        finally:
            self._run_lock.release()

    def run_forever(self, stop_event: threading.Event, interval_seconds: Optional[float] = None) -> None:
        """Tick every *interval_seconds* until *stop_event* is set."""
        interval = interval_seconds if interval_seconds is not None else settings.worker_poll_interval_ms / 1000
        logger.info(
            "Worker %s started (poll interval %.1fs, max attempts %d)",
            self.instance_id, interval, self.max_attempts,
        )
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(interval)
        logger.info("Worker %s stopped", self.instance_id)

    def _claim_and_process(self) -> Optional[str]:
        db = self._session_factory()
        try:
            repo = JobRepository(db)
            job = repo.claim_oldest_pending(self.allowed_types, self.instance_id)
            if job is None:
                return None

            ctx_token = job_id_var.set(job.id)
            try:
                self._process(repo, job)
            except Exception as e:
                logger.exception("Uncaught error while processing job %s", job.id)
                self._mark_uncaught(db, repo, job.id, e)
            finally:
                job_id_var.reset(ctx_token)
            return job.id
        finally:
            db.close()

    def _process(self, repo: JobRepository, job: Job) -> None:
        job_id = job.id
        kind = job.type
        start = job.attempt or 0

        if start >= self.max_attempts:
            logger.warning("Job %s already used %d attempt(s), failing it", job_id, start)
            repo.update_terminal(
                job_id,
                JobStatus.FAILED,
                attempt=self.max_attempts,
                error={
                    "type": JobErrorType.PROVIDER.value,
                    "code": "ATTEMPTS_EXHAUSTED",
                    "provider": self.provider,
                    "message": f"Job already used {start} of {self.max_attempts} attempts",
                },
            )
            return

        try:
            generation_input = build_input(kind, job.payload, self.default_locale)
        except PreconditionError as e:
            self._fail_precondition(repo, job_id, start + 1, e)
            return

        tokens_used = 0
        current_attempt = start

        def _attempt(index: int):
            nonlocal current_attempt
            current_attempt = start + index
            return self.generator.generate(kind, generation_input)

        def _on_failure(index: int, exc: BaseException) -> None:
            nonlocal tokens_used
            tokens_used += max(0, int(getattr(exc, "tokens_used", 0) or 0))
            logger.warning(
                "Job %s attempt %d/%d failed: %s",
                job_id, start + index + 1, self.max_attempts, exc,
                extra={"job_type": kind},
            )

        started_at = time.monotonic()
        try:
            outcome = retry_call(
                _attempt,
                attempts=self.max_attempts - start,
                is_retriable=lambda exc: not isinstance(exc, PreconditionError),
                backoff=lambda index: self._backoff(start + index),
                sleep=self._sleep,
                on_failure=_on_failure,
                label=f"job {job_id}",
            )
        except PreconditionError as e:
            self._fail_precondition(repo, job_id, current_attempt + 1, e, tokens_used)
            return
        except Exception as e:
            repo.update_terminal(
                job_id,
                JobStatus.FAILED,
                attempt=self.max_attempts,
                tokens_used_delta=tokens_used,
                error=to_job_error(e, JobErrorType.PROVIDER, self.provider),
            )
            logger.error(
                "Job %s failed after %d attempt(s)", job_id, self.max_attempts,
                extra={"job_type": kind, "tokens_used": tokens_used},
            )
            return

        repo.update_terminal(
            job_id,
            JobStatus.SUCCEEDED,
            attempt=current_attempt + 1,
            tokens_used_delta=tokens_used + outcome.tokens_used,
            result=outcome.result.model_dump(),
            model=outcome.model,
        )
        logger.info(
            "Job %s succeeded in %.1fs", job_id, time.monotonic() - started_at,
            extra={
                "job_type": kind,
                "attempt": current_attempt + 1,
                "tokens_used": tokens_used + outcome.tokens_used,
                "model": outcome.model,
            },
        )

    def _fail_precondition(
        self,
        repo: JobRepository,
        job_id: str,
        attempt: int,
        exc: PreconditionError,
        tokens_used: int = 0,
    ) -> None:
        logger.warning("Job %s failed precondition: %s", job_id, exc)
        repo.update_terminal(
            job_id,
            JobStatus.FAILED,
            attempt=min(attempt, self.max_attempts),
            tokens_used_delta=tokens_used,
            error=to_job_error(exc, JobErrorType.PRECONDITION, self.provider),
        )

    def _mark_uncaught(self, db: Session, repo: JobRepository, job_id: str, exc: BaseException) -> None:
        """Best-effort FAILED mark. A failure here is logged and dropped."""
        error = {
            "type": JobErrorType.WORKER_UNCAUGHT.value,
            "code": "WORKER_UNCAUGHT",
            "provider": self.provider,
            "message": str(exc) or type(exc).__name__,
        }
        try:
            db.rollback()
            repo.mark_failed(job_id, error)
        except Exception:
            logger.error("Could not mark job %s as failed", job_id, exc_info=True)
