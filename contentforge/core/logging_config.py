"""Structured logging for the API and the worker.

Both processes call ``setup_logging`` once at startup. Output is one JSON
object per line (``log_format="json"``) or a plain text line (``"text"``).

Two contextvars tie log lines to the unit of work that produced them:
``request_id`` (set by the request context middleware) and ``job_id`` (set by
the job runner while a claimed job is being processed). ``_ContextFilter``
copies them onto every record so both formats can show them.
"""

import contextvars
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Iterable, Optional


request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
job_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("job_id", default="")

_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s%(context)s - %(message)s"

# Loggers that are chatty at INFO: HTTP access logs, SQL echo, provider SDKs.
_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "LiteLLM", "httpx")


class _ContextFilter(logging.Filter):
    """Attach ``request_id``/``job_id`` to the record, plus a rendered ``context`` suffix."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")
        record.job_id = job_id_var.get("")
        parts = []
        if record.request_id:
            parts.append(f"req={record.request_id}")
        if record.job_id:
            parts.append(f"job={record.job_id}")
        record.context = f" [{' '.join(parts)}]" if parts else ""
        return True


class _JsonFormatter(logging.Formatter):
    """Emit each record as a single JSON line.

    Any ``extra`` fields are merged into the top level, so
    ``logger.info("claimed", extra={"job_type": "SEO"})`` yields a
    ``"job_type"`` key next to the standard ones.
    """

    _RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()) | {"context"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in self._RESERVED or key in entry:
                continue
            if key in ("request_id", "job_id") and not value:
                continue
            entry[key] = value

        if record.exc_info:
            entry["exc_info"] = record.exc_text or self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


# ---------------------------------------------------------------------------
# Secret redaction
# ---------------------------------------------------------------------------

_SECRET_PATTERNS = [
    re.compile(r'\bAIza[0-9A-Za-z_\-]{30,}'),             # Google / Gemini keys
    re.compile(r'\bsk-[a-zA-Z0-9_\-]{20,}'),              # OpenAI-style keys
    re.compile(r'(?i)(bearer\s+)[a-zA-Z0-9._\-]{20,}'),   # Bearer tokens
    re.compile(r'(?i)((?:api_key|secret|password|token|authorization)["\']?\s*[=:]\s*["\']?)[^\s,\'"]{8,}'),
]

_REDACTED = "***REDACTED***"


class _SecretFilter(logging.Filter):
    """Redact provider keys and tokens from the final message and traceback text.

    Besides the generic patterns, any literal values passed in ``known_secrets``
    (the configured provider key, the JWT secret) are always masked.
    """

    def __init__(self, known_secrets: Iterable[str] = ()):
        super().__init__()
        self._literals = [s for s in known_secrets if s and len(s) >= 8]

    def filter(self, record: logging.LogRecord) -> bool:
        # Render %-args first so secrets passed as arguments are caught too.
        record.msg = self.redact(record.getMessage())
        record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)
        return True

    def redact(self, text: str) -> str:
        for literal in self._literals:
            text = text.replace(literal, _REDACTED)
        for pattern in _SECRET_PATTERNS:
            text = pattern.sub(
                lambda m: m.group(1) + _REDACTED if m.lastindex else _REDACTED,
                text,
            )
        return text


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    known_secrets: Iterable[str] = (),
) -> None:
    """Configure the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL. Defaults to INFO.
        log_format: ``"json"`` (default) or ``"text"``.
        known_secrets: Literal secret values to mask wherever they appear.
    """
    level = (log_level or "INFO").upper()
    fmt = (log_format or "json").lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_ContextFilter())
    handler.addFilter(_SecretFilter(known_secrets))
    if fmt == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging configured", extra={"level": level, "format": fmt})
