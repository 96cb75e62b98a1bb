"""Deterministic statistics over raw behaviour records, embedded into generation prompts."""
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable

SELECTION_OPTIONS = ("A", "B", "C")


def option_counts(
    selections: Iterable[dict[str, Any]],
    options: tuple[str, ...] = SELECTION_OPTIONS,
) -> dict[str, int]:
    """Count selections per option. A selection without an option id counts as the first option;
    ids outside ``options`` are ignored."""
    counts: Counter = Counter({option: 0 for option in options})
    for selection in selections:
        option_id = selection.get("option_id") or options[0]
        if isinstance(option_id, str) and option_id in counts:
            counts[option_id] += 1
    return {option: counts[option] for option in options}


def selection_consistency(selections: list[dict[str, Any]], options: tuple[str, ...] = SELECTION_OPTIONS) -> float:
    """max(count per option) / total selections; 0 when there are none."""
    if not selections:
        return 0.0
    counts = option_counts(selections, options)
    return max(counts.values()) / len(selections)


def completion_rate(records: list[dict[str, Any]]) -> float:
    if not records:
        return 0.0
    return sum(1 for r in records if r.get("completed")) / len(records)


def _parse_ts(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def recency_marker(records: list[dict[str, Any]], field: str = "created_at") -> str | None:
    """ISO timestamp of the most recent record, or None for an empty sequence."""
    stamps = [ts for ts in (_parse_ts(r.get(field)) for r in records) if ts is not None]
    if not stamps:
        return None
    return max(stamps).isoformat()


def selection_patterns(selections: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "option_preferences": option_counts(selections),
        "total_selections": len(selections),
        "consistency_score": selection_consistency(selections),
    }


def fear_indicators(
    reflections: list[dict[str, Any]],
    sessions: list[dict[str, Any]],
    quiz_sessions: list[dict[str, Any]],
) -> dict[str, Any]:
    return {
        "total_data_points": len(reflections) + len(sessions) + len(quiz_sessions),
        "wimts_completion_rate": completion_rate(quiz_sessions),
        "profile_evolution_count": sum(1 for s in quiz_sessions if s.get("profile_snapshot")),
    }


def insight_patterns(quiz_sessions: list[dict[str, Any]], selections: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "total_sessions": len(quiz_sessions),
        "total_selections": len(selections),
        "completion_rate": completion_rate(quiz_sessions),
        "recent_activity": recency_marker(quiz_sessions),
    }
