"""
Polling worker for processing generation jobs.

Ticks every WORKER_POLL_INTERVAL_MS, claims at most one PENDING job per tick
and drives it to SUCCEEDED or FAILED through the job runner. Jobs left
RUNNING by a previous crash of this same instance are requeued at startup.

SIGINT/SIGTERM stop the loop after the in-flight tick finishes; the database
engine is disposed before exit.

Usage:
    python worker.py
"""

import logging
import signal
import threading

from contentforge.core.config import settings
from contentforge.core.logging_config import setup_logging
from contentforge.database import engine, init_db
from contentforge.services.job_runner import JobRunner

logger = logging.getLogger("worker")


def main() -> None:
    """Run the job runner until a shutdown signal arrives."""
    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        known_secrets=(settings.ai_api_key, settings.jwt_secret_key),
    )

    for problem in settings.insecure_settings():
        logger.warning(f"CONFIG: {problem}")

    init_db()

    stop_event = threading.Event()

    def _request_stop(signum, frame):
        logger.info(f"Received signal {signum}, finishing current tick before exit")
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    runner = JobRunner()
    try:
        runner.recover_orphans()
    except Exception as e:
        logger.error(f"Orphan recovery failed (non-fatal): {e}")

    try:
        runner.run_forever(stop_event, settings.worker_poll_interval_ms / 1000)
    finally:
        engine.dispose()
        logger.info("Worker shut down, database connections released")


if __name__ == "__main__":
    main()
