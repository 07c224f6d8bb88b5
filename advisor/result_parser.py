from __future__ import annotations
"""
Advisor — Result Extractor
===========================
Turns the accumulated generation text into a StreamingResult.

The model is asked to answer with one JSON object, but it sometimes prefixes
prose or drifts from the schema. parse_result() takes the single trailing
block running from the first ``{`` to the final ``}`` and decodes it:

  - content      decoded "content" if it is a non-empty string, else the raw text
  - suggestions  decoded string items if "suggestions" is a list, else []
  - analysis     kept only if it validates (rating in Buy/Sell/Hold), else None

Anything undecodable falls back to the raw text with no suggestions or
analysis. parse_result() never raises.
"""

import json
import logging

from pydantic import ValidationError

from advisor.errors import ParseError
from advisor.records import Analysis, StreamingResult

logger = logging.getLogger(__name__)


def _decode_trailing_object(text: str) -> dict:
    # Same span as matching /\{[\s\S]*\}$/ against the right-stripped text
    stripped = text.rstrip()
    start = stripped.find("{")
    if start == -1 or not stripped.endswith("}"):
        raise ParseError("no trailing object")
    try:
        decoded = json.loads(stripped[start:])
    except (ValueError, RecursionError) as e:
        raise ParseError(f"invalid JSON: {e}") from e
    if not isinstance(decoded, dict):
        raise ParseError(f"decoded {type(decoded).__name__}, expected object")
    return decoded


def _analysis(raw) -> Analysis | None:
    if not isinstance(raw, dict):
        return None
    try:
        return Analysis.model_validate(raw)
    except ValidationError as e:
        logger.info(f"[parser] Dropping invalid analysis: {e.error_count()} error(s)")
        return None


def parse_result(full_text: str) -> StreamingResult:
    """Extract the structured result, falling back to the raw text."""
    full_text = full_text or ""
    try:
        decoded = _decode_trailing_object(full_text)
    except ParseError as e:
        if full_text.strip():
            logger.info(f"[parser] Falling back to raw text: {e}")
        return StreamingResult(content=full_text)

    content = decoded.get("content")
    if not isinstance(content, str) or not content:
        content = full_text

    suggestions = decoded.get("suggestions")
    if isinstance(suggestions, list):
        suggestions = [s for s in suggestions if isinstance(s, str)]
    else:
        suggestions = []

    return StreamingResult(
        content=content,
        suggestions=suggestions,
        analysis=_analysis(decoded.get("analysis")),
    )
