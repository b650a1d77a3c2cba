"""Parse JSON out of model output.

Models are asked for bare JSON but often wrap it in a markdown fence or put
prose around it. Two strategies are tried, in order:

1. strip a leading/trailing code fence and parse the whole text;
2. parse the first balanced ``{...}`` substring.

If both fail, ``ResponseParseError`` carries the raw text and both error
messages. No repair is attempted beyond that.
"""

import json
import logging
import re
from typing import Any, Optional

from ..exceptions import ResponseParseError

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?\s*```\s*$")

# How much raw output to include in log lines.
_LOG_SNIPPET = 500


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if present."""
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def find_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring of *text*, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def parse_json_response(text: str, context: str = "unknown", tokens_used: int = 0) -> Any:
    """Parse provider text as JSON using the fence-strip then brace-extraction strategy.

    Args:
        text: Raw model output.
        context: Generation kind, used in error messages and logs.
        tokens_used: Usage of the call that produced *text*; carried on the
            error so failed attempts still count toward the job's usage.

    Raises:
        ResponseParseError: if neither strategy yields valid JSON.
    """
    text = text or ""
    try:
        return json.loads(strip_code_fence(text))
    except json.JSONDecodeError as first_error:
        parse_error = str(first_error)

    candidate = find_balanced_object(text)
    if candidate is None:
        fallback_error = "no balanced JSON object found"
    else:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as second_error:
            fallback_error = str(second_error)

    logger.warning(
        "JSON_PARSE_FAILED for %s: %s",
        context,
        text[:_LOG_SNIPPET],
        extra={"parse_error": parse_error, "fallback_error": fallback_error},
    )
    raise ResponseParseError(
        raw_text=text,
        parse_error=parse_error,
        fallback_error=fallback_error,
        context=context,
        tokens_used=tokens_used,
    )
