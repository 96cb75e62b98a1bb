"""Reflection-history tasks: weekly summary, recurring patterns, mirror moments and tips."""
from datetime import datetime
from typing import Any

from mirror_lens.llm.base import TextGenerationService
from mirror_lens.models import DetectedPattern, MirrorMoment, Tip, WeeklyInsight, WeeklyInsights
from mirror_lens.synthesis.policy import synthesize
from mirror_lens.synthesis.repair import as_number, clamp, label_list, non_negative_int, object_list, text
from mirror_lens.synthesis.result import SynthesisResult

TEMPERATURE = 0.7

MIN_WEEKLY_REFLECTIONS = 3
MIN_PATTERN_REFLECTIONS = 5
MAX_MIRROR_MOMENTS = 3

WEEKLY_CATEGORIES = ("pattern", "breakthrough", "blind_spot", "strength")
PATTERN_FREQUENCIES = ("common", "occasional", "rare")

NOT_ENOUGH_DATA = "Not enough data yet. Complete a few more reflections to see your weekly insights!"
MISSING_SUMMARY = "Keep reflecting to build your communication mirror!"

WEEKLY_PROMPT = """You are an AI communication coach analyzing a user's weekly communication patterns.

Here are their {count} reflections from the past 7 days:

{reflections}

Analyze these reflections and provide:
1. A weekly summary (2-3 sentences) highlighting their main communication patterns and any growth observed
2. Top 3 themes: recurring topics or emotions (single words or short phrases like "clarity", "boundaries")
3. The number of mirror moments: breakthroughs or significant self-awareness (be conservative)
4. 3-5 specific insights, each with a category:
   "pattern" (recurring behavior), "breakthrough" (moment of growth),
   "blind_spot" (area for improvement), "strength" (what they are doing well)

Be encouraging but honest. Focus on patterns, not individual events.

Return valid JSON:
{{
  "summary": "2-3 sentence summary",
  "top_themes": ["theme1", "theme2", "theme3"],
  "mirror_moments": 0,
  "insights": [{{"title": "4-6 word title", "content": "1-2 sentences", "category": "pattern"}}]
}}"""

PATTERNS_PROMPT = """Analyze these {count} communication examples and identify 3-5 recurring patterns:

{texts}

Be specific and actionable. Return JSON:
{{
  "patterns": [
    {{"pattern": "Brief description", "frequency": "common|occasional|rare", "insight": "What this reveals about their communication style"}}
  ]
}}"""

MOMENTS_PROMPT = """Identify "mirror moments": times when the user had a significant breakthrough in
self-awareness or communication.

{comparisons}

Look for:
- Major shifts from reactive to thoughtful communication
- Recognition of patterns they weren't aware of
- Growth in emotional intelligence
- Breakthroughs in clarity or directness

Return only the most significant moments (0-3 max):
{{
  "moments": [
    {{"reflection_number": 1, "insight": "What they realized or shifted", "significance": "Why this matters for their growth"}}
  ]
}}
reflection_number is between 1 and {count}."""

TIPS_PROMPT = """Based on these communication patterns, generate 3 actionable tips for improvement:

{patterns}

Return JSON:
{{
  "tips": [{{"tip": "Specific, actionable advice (1 sentence)", "why": "Brief explanation of the benefit"}}]
}}"""


def _date(value: Any) -> str:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
        except ValueError:
            return value
    return "unknown date"


def _chosen(reflection: dict[str, Any]) -> str:
    return reflection.get("translation_text") or reflection.get("base_intake_text") or ""


# ── Weekly summary ───────────────────────────────────────────────────────────

def threshold_response(count: int) -> WeeklyInsights | None:
    """The response for a week with too few reflections, or None when synthesis should run."""
    if count < 1:
        return WeeklyInsights(summary=NOT_ENOUGH_DATA)
    if count < MIN_WEEKLY_REFLECTIONS:
        plural = "s" if count != 1 else ""
        return WeeklyInsights(
            summary=(
                f"You've made {count} reflection{plural} this week. Keep going! "
                "Your insights will become richer with more data."
            )
        )
    return None


def repair_weekly(data: dict[str, Any]) -> tuple[WeeklyInsights, list[str]]:
    notes: list[str] = []
    summary = text(data.get("summary"))
    if not summary:
        notes.append("summary: missing, defaulted")
        summary = MISSING_SUMMARY
    insights = []
    for entry in object_list(data.get("insights"), notes, "insights"):
        title, content = text(entry.get("title")), text(entry.get("content"))
        if not title or not content:
            notes.append("insights: entry without title or content dropped")
            continue
        category = entry.get("category")
        if category not in WEEKLY_CATEGORIES:
            notes.append(f"insights.category: {category!r} replaced with 'pattern'")
            category = "pattern"
        insights.append(WeeklyInsight(title=title, content=content, category=category))
    weekly = WeeklyInsights(
        summary=summary,
        top_themes=label_list(data.get("top_themes"), [], notes, "top_themes"),
        mirror_moments=non_negative_int(data.get("mirror_moments"), notes, "mirror_moments"),
        insights=insights,
    )
    return weekly, notes


def build_weekly_prompt(reflections: list[dict[str, Any]]) -> str:
    blocks = "\n\n".join(
        f"Reflection {i} ({_date(r.get('created_at'))}):\n"
        f"Original: \"{r.get('base_intake_text', '')}\"\n"
        f"Chosen: \"{_chosen(r)}\""
        for i, r in enumerate(reflections, start=1)
    )
    return WEEKLY_PROMPT.format(count=len(reflections), reflections=blocks)


async def synthesize_weekly(
    llm: TextGenerationService,
    reflections: list[dict[str, Any]],
    *,
    timeout: float | None = None,
) -> SynthesisResult[WeeklyInsights]:
    count = len(reflections)

    def fallback() -> WeeklyInsights:
        return WeeklyInsights(
            summary=f"You've created {count} reflections this week. Your communication mirror is building!"
        )

    return await synthesize(
        llm,
        build_weekly_prompt(reflections),
        task="weekly_insights",
        temperature=TEMPERATURE,
        repair=repair_weekly,
        default=fallback,
        timeout=timeout,
    )


# ── Patterns ─────────────────────────────────────────────────────────────────

def repair_patterns(data: dict[str, Any]) -> tuple[list[DetectedPattern], list[str]]:
    notes: list[str] = []
    patterns = []
    for entry in object_list(data.get("patterns"), notes, "patterns"):
        description = text(entry.get("pattern"))
        if not description:
            notes.append("patterns: entry without description dropped")
            continue
        frequency = entry.get("frequency")
        if frequency not in PATTERN_FREQUENCIES:
            notes.append(f"patterns.frequency: {frequency!r} replaced with 'occasional'")
            frequency = "occasional"
        patterns.append(DetectedPattern(pattern=description, frequency=frequency, insight=text(entry.get("insight"))))
    return patterns, notes


async def synthesize_patterns(
    llm: TextGenerationService,
    reflections: list[dict[str, Any]],
    *,
    timeout: float | None = None,
) -> SynthesisResult[list[DetectedPattern]]:
    texts = "\n".join(f"{i}. {r.get('base_intake_text', '')}" for i, r in enumerate(reflections, start=1))
    return await synthesize(
        llm,
        PATTERNS_PROMPT.format(count=len(reflections), texts=texts),
        task="detect_patterns",
        temperature=TEMPERATURE,
        repair=repair_patterns,
        default=list,
        required_keys=("patterns",),
        timeout=timeout,
    )


# ── Mirror moments ───────────────────────────────────────────────────────────

def make_moments_repair(count: int):
    def repair_moments(data: dict[str, Any]) -> tuple[list[MirrorMoment], list[str]]:
        notes: list[str] = []
        moments = []
        for entry in object_list(data.get("moments"), notes, "moments"):
            insight = text(entry.get("insight"))
            number = as_number(entry.get("reflection_number"))
            if not insight or number is None:
                notes.append("moments: entry without insight or reflection number dropped")
                continue
            position = int(clamp(number, 1, max(count, 1)))
            if position != number:
                notes.append(f"moments.reflection_number: {number} clamped to {position}")
            moments.append(
                MirrorMoment(reflection_number=position, insight=insight, significance=text(entry.get("significance")))
            )
        if len(moments) > MAX_MIRROR_MOMENTS:
            notes.append(f"moments: truncated to {MAX_MIRROR_MOMENTS}")
        return moments[:MAX_MIRROR_MOMENTS], notes

    return repair_moments


async def synthesize_mirror_moments(
    llm: TextGenerationService,
    reflections: list[dict[str, Any]],
    *,
    timeout: float | None = None,
) -> SynthesisResult[list[MirrorMoment]]:
    comparisons = "\n".join(
        f"{i}. Original: \"{r.get('base_intake_text', '')}\"\n   Chosen: \"{_chosen(r)}\""
        for i, r in enumerate(reflections, start=1)
    )
    return await synthesize(
        llm,
        MOMENTS_PROMPT.format(comparisons=comparisons, count=len(reflections)),
        task="mirror_moments",
        temperature=TEMPERATURE,
        repair=make_moments_repair(len(reflections)),
        default=list,
        required_keys=("moments",),
        timeout=timeout,
    )


# ── Tips ─────────────────────────────────────────────────────────────────────

def repair_tips(data: dict[str, Any]) -> tuple[list[Tip], list[str]]:
    notes: list[str] = []
    tips = []
    for entry in object_list(data.get("tips"), notes, "tips"):
        tip = text(entry.get("tip"))
        if not tip:
            notes.append("tips: empty tip dropped")
            continue
        tips.append(Tip(tip=tip, why=text(entry.get("why"))))
    return tips, notes


async def synthesize_tips(
    llm: TextGenerationService,
    patterns: list[DetectedPattern],
    *,
    timeout: float | None = None,
) -> SynthesisResult[list[Tip]]:
    listing = "\n".join(f"{i}. {p.pattern} ({p.frequency})" for i, p in enumerate(patterns, start=1))
    return await synthesize(
        llm,
        TIPS_PROMPT.format(patterns=listing),
        task="generate_tips",
        temperature=TEMPERATURE,
        repair=repair_tips,
        default=list,
        required_keys=("tips",),
        timeout=timeout,
    )
