"""Coercion helpers shared by the per-task schema repairs.

Each helper returns the repaired value; callers append a note to their own
notes list whenever the value had to be changed or defaulted.
"""
import math
from typing import Any


def as_number(value: Any) -> float | None:
    """Interpret a generated value as a finite number, or None."""
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def bounded(
    value: Any,
    default: float,
    notes: list[str],
    field: str,
    low: float = 0.0,
    high: float = 1.0,
) -> float:
    """Coerce ``value`` into [low, high]; missing or non-numeric values take ``default``."""
    number = as_number(value)
    if number is None:
        notes.append(f"{field}: missing or non-numeric, defaulted to {default}")
        return default
    clamped = clamp(number, low, high)
    if clamped != number:
        notes.append(f"{field}: {number} clamped to {clamped}")
    return clamped


def label_list(value: Any, default: list[str], notes: list[str], field: str) -> list[str]:
    """Ordered, de-duplicated list of non-empty strings."""
    if not isinstance(value, list):
        notes.append(f"{field}: missing, defaulted")
        return list(default)
    labels: list[str] = []
    for item in value:
        if isinstance(item, str) and item.strip() and item.strip() not in labels:
            labels.append(item.strip())
    if len(labels) != len(value):
        notes.append(f"{field}: dropped {len(value) - len(labels)} invalid or duplicate entries")
    return labels


def text(value: Any, default: str = "") -> str:
    return value.strip() if isinstance(value, str) else default


def object_list(value: Any, notes: list[str], field: str) -> list[dict[str, Any]]:
    """The dict entries of a generated array; a missing array is an empty one."""
    if value is None:
        notes.append(f"{field}: missing, defaulted to []")
        return []
    if not isinstance(value, list):
        notes.append(f"{field}: not an array, defaulted to []")
        return []
    items = [item for item in value if isinstance(item, dict)]
    if len(items) != len(value):
        notes.append(f"{field}: dropped {len(value) - len(items)} non-object entries")
    return items


def non_negative_int(value: Any, notes: list[str], field: str) -> int:
    number = as_number(value)
    if number is None:
        if value is not None:
            notes.append(f"{field}: non-numeric, defaulted to 0")
        return 0
    if number < 0:
        notes.append(f"{field}: {number} clamped to 0")
        return 0
    return int(number)
