# polaris/blueprint/parsing.py
from __future__ import annotations

import json
import re
from typing import Any

from polaris.app.errors import BlueprintValidationError
from polaris.app.logging import get_logger


logger = get_logger(__name__)

EMPTY_RESPONSE = "EMPTY_RESPONSE"
INVALID_JSON = "INVALID_JSON"

_OPEN_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_CLOSE_FENCE_RE = re.compile(r"\n?```\s*$")
_ANY_FENCE_RE = re.compile(r"```\s*\n?")


def strip_markdown_code_fences(text: str) -> str:
    # Handles ```json ... ```, bare ``` ... ``` and stray fences in the middle.
    s = _OPEN_FENCE_RE.sub("", text)
    s = _CLOSE_FENCE_RE.sub("", s)
    s = _ANY_FENCE_RE.sub("", s)
    return s.strip()


def _json_start(s: str) -> int:
    # Blueprints are objects, so an opening brace wins over an earlier bracket.
    brace = s.find("{")
    if brace != -1:
        return brace
    return s.find("[")


def _json_end(s: str) -> int:
    """
    Index just past the first balanced top-level JSON value in `s`, or -1.

    Braces and brackets inside string literals are ignored.
    """
    depth = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(s):
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if in_string:
            if ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


def parse_blueprint_json(text: Any) -> Any:
    """
    Extract and decode the JSON document from raw model output.

    Markdown fences, a leading preamble and trailing commentary are removed
    before decoding. Raises BlueprintValidationError with EMPTY_RESPONSE or
    INVALID_JSON.
    """
    if not isinstance(text, str) or not text.strip():
        raise BlueprintValidationError("Response text is empty or not a string", EMPTY_RESPONSE)

    original = text
    s = text.strip()

    has_fences = s.startswith("```") or s.endswith("```")
    if has_fences:
        logger.warning("Markdown code fences detected", extra={"preview": s[:200]})
        s = strip_markdown_code_fences(s)

    start = _json_start(s)
    if start > 0:
        logger.warning("Removing preamble text", extra={"removed": s[:start][:200], "length": start})
        s = s[start:]

    end = _json_end(s)
    if 0 < end < len(s) and s[end:].strip():
        trailing = s[end:].strip()
        logger.warning("Removing trailing text", extra={"removed": trailing[:200], "length": len(trailing)})
        s = s[:end]

    s = s.strip()
    try:
        parsed = json.loads(s)
    except json.JSONDecodeError as e:
        logger.error(
            "Failed to parse JSON",
            extra={"text_start": s[:200], "text_end": s[-200:], "error": str(e), "has_fences": has_fences},
        )
        raise BlueprintValidationError(
            "Response is not valid JSON",
            INVALID_JSON,
            details={
                "text_preview": s[:1000],
                "original_preview": original[:1000],
                "error": str(e),
            },
        ) from e

    logger.info(
        "JSON parsed",
        extra={"original_length": len(original), "cleaned_length": len(s)},
    )
    return parsed
