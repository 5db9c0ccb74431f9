"""Extract a JSON object from free-form model output.

Models are told to answer with bare JSON, but they still wrap it in
markdown fences, add a sentence before or after it, or emit raw control
characters inside strings. `sanitize_response` undoes that on a best
effort basis; `parse_plan_json` then parses strictly and never hides
a failure.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from layr.errors import ParseError


logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```$")
# Greedy: first "{" through the last "}" that is followed only by whitespace.
_TRAILING_OBJECT = re.compile(r"\{.*\}(?=\s*$)", re.DOTALL)
# Raw control characters break strict parsing; escaped sequences like
# "\n" are two printable characters and are left alone.
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_response(content: str) -> str:
    """Return the most plausible JSON object text contained in `content`."""
    text = content.strip()

    if text.startswith("```"):
        text = _LEADING_FENCE.sub("", text, count=1)
    if text.endswith("```"):
        text = _TRAILING_FENCE.sub("", text, count=1)
    text = text.strip()

    if not (text.startswith("{") and text.endswith("}")):
        match = _TRAILING_OBJECT.search(text)
        if match:
            text = match.group(0)
        else:
            start, end = text.find("{"), text.rfind("}")
            if start != -1 and end > start:
                text = text[start:end + 1]

    return _CONTROL_CHARS.sub("", text)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse_plan_json(content: str, *, provider: str | None = None) -> dict[str, Any]:
    """Sanitize model output and parse it as a JSON object.

    Raises:
        ParseError: output is empty, is not valid JSON, or is not an object
    """
    if not content or not content.strip():
        raise ParseError("No content in response", provider=provider)

    candidate = sanitize_response(content)
    try:
        parsed = json.loads(candidate, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        logger.warning(f"JSON parsing failed for {provider or 'model'} output: {e}")
        raise ParseError(f"Failed to parse plan: {e}", provider=provider) from e

    if not isinstance(parsed, dict):
        raise ParseError(
            f"Failed to parse plan: expected a JSON object, got {type(parsed).__name__}",
            provider=provider,
        )
    return parsed
