import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def parse_json_object(text: str | None) -> dict[str, Any] | None:
    """Parse generated text as a JSON object, tolerating a markdown code fence.

    Returns None for empty text, invalid JSON, or a top-level value that is not an object.
    """
    if not text:
        return None
    cleaned = text.strip()
    fenced = _FENCE_RE.match(cleaned)
    if fenced:
        cleaned = fenced.group(1)
    try:
        data = json.loads(cleaned)
    except (ValueError, TypeError, RecursionError):
        return None
    return data if isinstance(data, dict) else None
