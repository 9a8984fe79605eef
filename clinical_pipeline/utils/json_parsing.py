"""
Parsing of raw model text into JSON.

Two policies are offered. The diagnose stage gets exactly one repair
attempt (code fences stripped); the extract stage also accepts the first
JSON object embedded in surrounding prose.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```json|```")


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` markers anywhere in the text."""
    return _FENCE_RE.sub("", text).strip()


def loads_with_fence_retry(raw: str) -> Any:
    """
    Parse raw text as JSON, retrying once with code fences stripped.

    Raises:
        ValueError: if neither attempt produces valid JSON
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    try:
        return json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise ValueError(f"Model did not return valid JSON: {e}") from e


def extract_json_object(raw: str) -> Any:
    """
    Parse JSON from a model response, handling fences and surrounding prose.

    Raises:
        ValueError: if no JSON object can be recovered
    """
    text = strip_code_fences(raw)

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"JSON parse error: {e}")

        json_match = re.search(r"\{.*\}", text, re.DOTALL)
        if json_match:
            try:
                return json.loads(json_match.group())
            except json.JSONDecodeError:
                pass

        logger.error(f"Failed to parse JSON response: {text[:500]}...")
        raise ValueError(f"Model did not return valid JSON: {e}") from e
