"""
Parse language-model output into an Enhancement.

Model output is unreliable: the JSON object may be wrapped in commentary or
markdown fences, truncated, or use the wrong quoting. ``parse_enhancement``
never raises. It tries, in order:

1. strip a ```json / ``` fenced block
2. cut the text down to the outermost ``{...}``
3. strict JSON parse with per-field type validation
4. regex extraction of each field from the raw text

Anything not recovered stays empty.
"""

import json
import logging
import re
from typing import Any

from .types import Enhancement, to_link

logger = logging.getLogger(__name__)

_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

_ARRAY_FIELD_RES = {
    name: re.compile(rf'"{name}"\s*:\s*\[(.*?)\]', re.DOTALL)
    for name in ("tags", "keywords", "links")
}

# Tried in order; first match wins
_SUMMARY_RES = (
    re.compile(r'"summary"\s*:\s*"([^"]*)"'),
    re.compile(r"\"summary\"\s*:\s*'([^']*)'"),
    re.compile(r"summary[^:]*:\s*(.+?)(?:\n|$)", re.IGNORECASE),
)


def strip_code_fence(text: str) -> str:
    """Return the body of a ```json (or generic ```) block, or the trimmed text."""
    text = text.strip()
    for fence in ("```json", "```"):
        if fence in text:
            start = text.index(fence) + len(fence)
            end = text.rfind("```")
            if end > start:
                return text[start:end].strip()
            break
    return text


def _string_items(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _from_object(parsed: dict) -> Enhancement:
    summary = parsed.get("summary")
    return Enhancement(
        tags=_string_items(parsed.get("tags")),
        keywords=_string_items(parsed.get("keywords")),
        links=[to_link(link) for link in _string_items(parsed.get("links"))],
        summary=summary.strip() if isinstance(summary, str) else "",
    )


def _split_array_body(body: str) -> list[str]:
    items = []
    for piece in body.split(","):
        item = piece.strip().replace('"', "").replace("'", "")
        if item:
            items.append(item)
    return items


def extract_with_fallback(response: str) -> Enhancement:
    """Best-effort field extraction for output that is not valid JSON."""
    result = Enhancement()

    arrays = {}
    for name, pattern in _ARRAY_FIELD_RES.items():
        match = pattern.search(response)
        arrays[name] = _split_array_body(match.group(1)) if match else []
    result.tags = arrays["tags"]
    result.keywords = arrays["keywords"]
    result.links = [to_link(link) for link in arrays["links"]]

    for pattern in _SUMMARY_RES:
        match = pattern.search(response)
        if match:
            result.summary = match.group(1).strip()
            break

    return result


def parse_enhancement(raw: str) -> Enhancement:
    """
    Turn raw model text into a validated Enhancement. Total: never raises.

    Args:
        raw: Model output, expected to contain a JSON object

    Returns:
        Enhancement, possibly with every field empty
    """
    if not isinstance(raw, str) or not raw.strip():
        return Enhancement()

    candidate = strip_code_fence(raw)
    match = _OBJECT_RE.search(candidate)
    if match:
        candidate = match.group(0)

    try:
        parsed = json.loads(candidate)
    except (ValueError, RecursionError) as e:
        logger.debug("Failed to parse AI response as JSON: %s", e)
        logger.debug("Raw response: %s", raw)
    else:
        if isinstance(parsed, dict):
            return _from_object(parsed)
        logger.debug("AI response JSON is %s, not an object", type(parsed).__name__)

    logger.debug("Using fallback extraction")
    return extract_with_fallback(raw)
