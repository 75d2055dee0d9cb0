"""Structured output extraction from raw model completions.

Recovers a JSON object or array from free-form text using four strategies,
tried in a fixed order and returning on the first success:

1. direct   - the trimmed text is the whole document
2. markdown - a ```json fence, a generic ``` fence, then an inline `span`
3. balanced - the first bracketed region, scanned with string awareness
4. repaired - first opener to last matching closer, with lossy rewrites
              (single quotes, trailing commas, bare keys)

Earlier strategies never rewrite the text, so a document that is already
valid JSON can not be altered by the repair pass.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

STRATEGY_DIRECT = "direct"
STRATEGY_MARKDOWN = "markdown"
STRATEGY_BALANCED = "balanced"
STRATEGY_REPAIRED = "repaired"

DIRECT_PARSE_FAILED = "direct_parse_failed"
MARKDOWN_EXTRACTION_FAILED = "markdown_extraction_failed"
BALANCED_EXTRACTION_FAILED = "balanced_extraction_failed"
REPAIR_FAILED = "repair_failed"

_FENCE_PATTERNS = (
    re.compile(r"```json\s*([\s\S]*?)\s*```"),
    re.compile(r"```\s*([\s\S]*?)\s*```"),
    re.compile(r"`([^`]+)`"),
)

# A double-quoted JSON string literal; rewrites never touch these.
_STRING_LITERAL = r'"(?:\\.|[^"\\])*"'
_TRAILING_COMMA_RE = re.compile(rf"({_STRING_LITERAL})|(?:,\s*)+([}}\]])")
_BARE_KEY_RE = re.compile(rf"({_STRING_LITERAL})|([{{,])\s*([A-Za-z_][A-Za-z0-9_]*)\s*:")

_CLOSER = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class ObjectFound:
    value: Dict[str, Any]
    strategy: str


@dataclass(frozen=True)
class ArrayFound:
    value: List[Any]
    strategy: str


@dataclass(frozen=True)
class NotFound:
    attempts: Tuple[str, ...]


ExtractionResult = Union[ObjectFound, ArrayFound, NotFound]


def _wrap(candidate: str, strategy: str) -> Optional[ExtractionResult]:
    """Parse `candidate` and wrap it when it is an object or array."""
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, RecursionError):
        return None
    if isinstance(parsed, dict):
        return ObjectFound(parsed, strategy)
    if isinstance(parsed, list):
        return ArrayFound(parsed, strategy)
    return None


def _first_opener(text: str) -> int:
    starts = [index for index in (text.find("{"), text.find("[")) if index != -1]
    return min(starts) if starts else -1


def _try_direct(text: str) -> Optional[ExtractionResult]:
    if (text.startswith("{") and text.endswith("}")) or (
        text.startswith("[") and text.endswith("]")
    ):
        return _wrap(text, STRATEGY_DIRECT)
    return None


def _try_markdown(text: str) -> Optional[ExtractionResult]:
    for pattern in _FENCE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        content = match.group(1).strip()
        if content.startswith("{") or content.startswith("["):
            result = _wrap(content, STRATEGY_MARKDOWN)
            if result is not None:
                return result
    return None


def _try_balanced(text: str) -> Optional[ExtractionResult]:
    start = _first_opener(text)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif not in_string and char in "{[":
            depth += 1
        elif not in_string and char in "}]":
            depth -= 1
            if depth == 0:
                return _wrap(text[start : index + 1], STRATEGY_BALANCED)
    return None


def _rewrite_outside_strings(pattern: re.Pattern, text: str, replacement) -> str:
    def substitute(match: re.Match) -> str:
        if match.group(1) is not None:
            return match.group(1)
        return replacement(match)

    return pattern.sub(substitute, text)


def repair_json(text: str) -> Optional[str]:
    """Apply the lossy repair rewrites to the outermost bracketed region.

    Returns the rewritten candidate, or None when the text has no opening
    bracket followed by a matching closing bracket. Repairing a repaired
    candidate returns it unchanged.
    """
    start = _first_opener(text)
    if start == -1:
        return None
    end = text.rfind(_CLOSER[text[start]])
    if end <= start:
        return None

    repaired = text[start : end + 1]

    # Single-quoted documents
    if '"' not in repaired and "'" in repaired:
        repaired = repaired.replace("'", '"')

    # Runs of trailing commas before a closer
    repaired = _rewrite_outside_strings(_TRAILING_COMMA_RE, repaired, lambda m: m.group(2))

    # Bare object keys
    repaired = _rewrite_outside_strings(
        _BARE_KEY_RE, repaired, lambda m: f'{m.group(2)}"{m.group(3)}":'
    )
    return repaired


def _try_repair(text: str) -> Optional[ExtractionResult]:
    repaired = repair_json(text)
    if repaired is None:
        return None
    return _wrap(repaired, STRATEGY_REPAIRED)


_STRATEGIES = (
    (_try_direct, DIRECT_PARSE_FAILED),
    (_try_markdown, MARKDOWN_EXTRACTION_FAILED),
    (_try_balanced, BALANCED_EXTRACTION_FAILED),
    (_try_repair, REPAIR_FAILED),
)


def extract_json(text: str) -> ExtractionResult:
    """Recover a JSON object or array from model output.

    Args:
        text: Raw completion text.

    Returns:
        ObjectFound / ArrayFound naming the strategy that succeeded, or
        NotFound carrying one failure entry per strategy attempted.
    """
    trimmed = (text or "").strip()
    attempts: List[str] = []

    for strategy, failure_name in _STRATEGIES:
        result = strategy(trimmed)
        if result is not None:
            if attempts:
                logger.debug(f"JSON extracted via {result.strategy} after {attempts}")
            return result
        attempts.append(failure_name)

    logger.warning(f"All extraction strategies failed for: {trimmed[:100]}...")
    return NotFound(tuple(attempts))


def as_object(result: ExtractionResult) -> Dict[str, Any]:
    """Reduce an extraction result to a single object.

    An array yields its first element when that element is an object;
    anything else yields {}.
    """
    if isinstance(result, ObjectFound):
        return result.value
    if isinstance(result, ArrayFound) and result.value and isinstance(result.value[0], dict):
        return result.value[0]
    return {}
