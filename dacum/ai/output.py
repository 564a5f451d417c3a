"""
Parsing helpers for text returned by the generation service.

Generation output is untrusted: it may be wrapped in markdown fences, carry
prose around the JSON, or not be JSON at all. Anything that cannot be turned
into a JSON object raises ``MalformedExternalOutput`` so callers can fall back
to their deterministic path.
"""

import json
import re

from dacum.core.exceptions import MalformedExternalOutput


def parse_json_object(content: str | None, *, purpose: str = "") -> dict:
    """Return the first JSON object found in *content*."""
    if not content or not content.strip():
        raise MalformedExternalOutput(f"Empty generation output ({purpose or 'unknown'})")

    cleaned = content.strip()
    # Strip markdown code fences
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = _extract_braced(cleaned)

    if not isinstance(parsed, dict):
        raise MalformedExternalOutput(
            f"Generation output is not a JSON object ({purpose or 'unknown'})",
            details={"preview": cleaned[:200]},
        )
    return parsed


def _extract_braced(text: str):
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    for i, ch in enumerate(text[start:], start):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                try:
                    return json.loads(text[start:i + 1])
                except json.JSONDecodeError:
                    return None
    return None
