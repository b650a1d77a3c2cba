"""Tests for JobRunner: retry bound, precondition failures, usage accounting,
uncaught errors and single-flight ticks.

The generation service is replaced by a scripted fake; sleeps are recorded
instead of slept.
"""

from unittest.mock import patch

import pytest

from sqlalchemy import update

from contentforge.database import SessionLocal
from contentforge.exceptions import (
    PreconditionError,
    ProviderRequestError,
    ResponseParseError,
    StoreUnavailableError,
    TransientProviderError,
)
from contentforge.models.job import Job, JobErrorType
from contentforge.repositories.job_repository import JobRepository
from contentforge.schemas.generation import (
    ArticleInput,
    ArticleTaskInput,
    GenerationOutcome,
    KeywordItem,
    KeywordsInput,
    KeywordsResult,
)
from contentforge.services.job_runner import JobRunner, build_input, to_job_error
from tests.conftest import make_job, reload_job


def _keywords_outcome(tokens_used=20):
    return GenerationOutcome(
        result=KeywordsResult(topic="electric bikes", keywords=[KeywordItem(keyword="e-bike")]),
        tokens_used=tokens_used,
        model="fake-model",
    )


class FakeGenerator:
    """Plays back a script of outcomes/exceptions; the last entry repeats."""

    provider = "fake"

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []

    def generate(self, kind, generation_input):
        self.calls.append((kind, generation_input))
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return item


def _runner(generator, sleeps=None, **kwargs):
    recorded = sleeps if sleeps is not None else []
    return JobRunner(
        session_factory=SessionLocal,
        generator=generator,
        instance_id="worker-test",
        max_attempts=kwargs.pop("max_attempts", 3),
        sleep=recorded.append,
        **kwargs,
    )


class TestBuildInput:

    def test_keywords_uses_seed_then_topic_then_untitled(self):
        assert build_input("KEYWORDS", {"seed": "bikes"}).seed == "bikes"
        assert build_input("KEYWORDS", {"topic": "cars"}).seed == "cars"
        assert build_input("KEYWORDS", {}).seed == "untitled"

    def test_numeric_seed_and_topic_become_text(self):
        assert build_input("KEYWORDS", {"seed": 2024}).seed == "2024"
        assert build_input("ARTICLE", {"topic": 3.5}).topic == "3.5"
        assert build_input("KEYWORDS", {"seed": 0, "topic": "cars"}).seed == "cars"

    def test_keywords_locale_defaults(self):
        assert build_input("KEYWORDS", {"seed": "x"}, default_locale="ro").locale == "ro"
        assert build_input("KEYWORDS", {"seed": "x", "locale": "en"}, default_locale="ro").locale == "en"

    def test_article_settings_and_keyword_normalization(self):
        inp = build_input("ARTICLE", {
            "topic": "bikes",
            "keywords": ["e-bike", {"keyword": "battery"}, {"term": "motor"}, {"other": 1}, 7],
            "settings": {"length": "short"},
        })
        assert isinstance(inp, ArticleInput)
        assert inp.keywords == ["e-bike", "battery", "motor"]
        assert inp.settings.length == "short"
        assert inp.settings.tone == "professional"

    def test_article_task_requires_title_and_content(self):
        with pytest.raises(PreconditionError) as exc_info:
            build_input("SEO", {"topic": "bikes", "title": "Bikes"})
        assert exc_info.value.missing == ["content"]

        with pytest.raises(PreconditionError):
            build_input("META", {"topic": "bikes", "content": "<p>x</p>"})

    def test_article_task_input(self):
        inp = build_input("HASHTAGS", {"topic": "bikes", "title": "Bikes", "content": "<p>Ride</p>"})
        assert isinstance(inp, ArticleTaskInput)
        assert inp.kind == "HASHTAGS"
        assert inp.article.title == "Bikes"


class TestToJobError:

    def test_parse_error_carries_capped_snippet(self):
        exc = ResponseParseError(raw_text="x" * 2000, parse_error="Expecting value", context="seo")
        record = to_job_error(exc, JobErrorType.PROVIDER, "gemini")
        assert record["type"] == "PROVIDER"
        assert record["code"] == "JSON_PARSE_FAILED"
        assert record["provider"] == "gemini"
        assert len(record["raw_snippet"]) == 500
        assert record["parse_error"] == "Expecting value"

    def test_plain_exception(self):
        record = to_job_error(RuntimeError("boom"), JobErrorType.PROVIDER, "gemini")
        assert record == {"type": "PROVIDER", "code": "AI_CALL_FAILED", "provider": "gemini", "message": "boom"}


class TestTick:

    def test_success_writes_result(self, db):
        job = make_job(db)
        generator = FakeGenerator(_keywords_outcome(tokens_used=20))

        assert _runner(generator).tick() == job.id

        stored = reload_job(job.id)
        assert stored.status == "SUCCEEDED"
        assert stored.result["topic"] == "electric bikes"
        assert stored.model == "fake-model"
        assert stored.attempt == 1
        assert stored.tokens_used == 20
        assert stored.error is None
        kind, inp = generator.calls[0]
        assert kind == "KEYWORDS"
        assert isinstance(inp, KeywordsInput)

    def test_no_job_returns_none(self):
        generator = FakeGenerator(_keywords_outcome())
        assert _runner(generator).tick() is None
        assert generator.calls == []

    def test_always_transient_hits_retry_bound(self, db):
        job = make_job(db)
        generator = FakeGenerator(TransientProviderError("503", code="PROVIDER_UNAVAILABLE", provider="gemini"))
        sleeps = []

        _runner(generator, sleeps).tick()

        stored = reload_job(job.id)
        assert len(generator.calls) == 3
        assert stored.status == "FAILED"
        assert stored.attempt == 3
        assert stored.error["type"] == "PROVIDER"
        assert stored.error["code"] == "PROVIDER_UNAVAILABLE"
        assert stored.error["provider"] == "gemini"
        # Linear backoff between attempts, none after the last.
        assert sleeps == pytest.approx([0.3, 0.6])

    def test_non_transient_provider_errors_are_retried_at_job_level(self, db):
        job = make_job(db)
        generator = FakeGenerator(ProviderRequestError("bad request"), _keywords_outcome())

        _runner(generator).tick()

        stored = reload_job(job.id)
        assert stored.status == "SUCCEEDED"
        assert stored.attempt == 2

    def test_missing_title_fails_immediately(self, db):
        job = make_job(db, job_type="SEO", payload={"topic": "bikes", "content": "<p>x</p>"})
        generator = FakeGenerator(_keywords_outcome())
        sleeps = []

        _runner(generator, sleeps).tick()

        stored = reload_job(job.id)
        assert stored.status == "FAILED"
        assert stored.error["type"] == "PRECONDITION"
        assert stored.error["code"] == "MISSING_REQUIRED_FIELDS"
        assert stored.attempt == 1
        assert generator.calls == []
        assert sleeps == []

    def test_precondition_from_generator_is_not_retried(self, db):
        job = make_job(db)
        generator = FakeGenerator(PreconditionError("seed required", missing=["seed"]))
        sleeps = []

        _runner(generator, sleeps).tick()

        stored = reload_job(job.id)
        assert stored.status == "FAILED"
        assert stored.error["type"] == "PRECONDITION"
        assert len(generator.calls) == 1
        assert sleeps == []

    def test_tokens_accumulate_across_attempts(self, db):
        job = make_job(db)
        generator = FakeGenerator(
            ResponseParseError(raw_text="not json", parse_error="err", context="keywords", tokens_used=11),
            _keywords_outcome(tokens_used=9),
        )

        _runner(generator).tick()

        stored = reload_job(job.id)
        assert stored.status == "SUCCEEDED"
        assert stored.tokens_used == 20
        assert stored.attempt == 2

    def test_failed_job_records_parse_diagnostics_and_usage(self, db):
        job = make_job(db)
        generator = FakeGenerator(
            ResponseParseError(raw_text="garbage", parse_error="Expecting value", context="keywords", tokens_used=4),
        )

        _runner(generator).tick()

        stored = reload_job(job.id)
        assert stored.status == "FAILED"
        assert stored.tokens_used == 12
        assert stored.error["raw_snippet"] == "garbage"
        assert stored.error["parse_error"] == "Expecting value"

    def test_resumes_from_existing_attempt(self, db):
        job = make_job(db)
        db.execute(update(Job).where(Job.id == job.id).values(attempt=1))
        db.commit()
        generator = FakeGenerator(TransientProviderError("timeout"))
        sleeps = []

        _runner(generator, sleeps).tick()

        stored = reload_job(job.id)
        assert len(generator.calls) == 2
        assert stored.attempt == 3
        assert sleeps == pytest.approx([0.6])

    def test_exhausted_attempts_fail_without_call(self, db):
        job = make_job(db)
        db.execute(update(Job).where(Job.id == job.id).values(attempt=3))
        db.commit()
        generator = FakeGenerator(_keywords_outcome())

        _runner(generator).tick()

        stored = reload_job(job.id)
        assert stored.status == "FAILED"
        assert stored.error["code"] == "ATTEMPTS_EXHAUSTED"
        assert stored.attempt == 3
        assert generator.calls == []

    def test_uncaught_error_marks_job_failed(self, db):
        job = make_job(db)
        generator = FakeGenerator(_keywords_outcome())

        with patch.object(JobRepository, "update_terminal", side_effect=RuntimeError("disk on fire")):
            assert _runner(generator).tick() == job.id

        stored = reload_job(job.id)
        assert stored.status == "FAILED"
        assert stored.error["type"] == "WORKER_UNCAUGHT"
        assert stored.error["message"] == "disk on fire"

    def test_failure_to_mark_uncaught_is_swallowed(self, db):
        make_job(db)
        generator = FakeGenerator(_keywords_outcome())

        with patch.object(JobRepository, "update_terminal", side_effect=RuntimeError("boom")), \
                patch.object(JobRepository, "mark_failed", side_effect=StoreUnavailableError()):
            runner = _runner(generator)
            runner.tick()

        # The run lock was released despite both failures.
        assert runner._run_lock.acquire(blocking=False)
        runner._run_lock.release()

    def test_store_unavailable_during_claim_aborts_tick(self, db):
        make_job(db)
        generator = FakeGenerator(_keywords_outcome())

        with patch.object(JobRepository, "claim_oldest_pending", side_effect=StoreUnavailableError()):
            assert _runner(generator).tick() is None

        assert generator.calls == []

    def test_busy_runner_skips_tick(self, db):
        job = make_job(db)
        generator = FakeGenerator(_keywords_outcome())
        runner = _runner(generator)

        runner._run_lock.acquire()
        try:
            assert runner.tick() is None
        finally:
            runner._run_lock.release()

        assert generator.calls == []
        assert reload_job(job.id).status == "PENDING"
        assert runner.tick() == job.id


class TestRecoverOrphans:

    def test_requeues_running_jobs_for_this_instance(self, db):
        job = make_job(db)
        JobRepository(db).try_claim(job.id, ["KEYWORDS"], "worker-test")

        runner = _runner(FakeGenerator(_keywords_outcome()))
        assert runner.recover_orphans() == 1
        assert reload_job(job.id).status == "PENDING"
        assert runner.tick() == job.id
        assert reload_job(job.id).status == "SUCCEEDED"
