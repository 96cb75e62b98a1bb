"""Insights snapshot synthesis. Produces drafts; stored identities and liked flags
are attached afterwards by the reconciler."""
import json
from typing import Any

from mirror_lens.aggregation import ProfileSources
from mirror_lens.analyzers.patterns import insight_patterns
from mirror_lens.llm.base import TextGenerationService
from mirror_lens.models import DialogueReplay, InsightDraft, InsightsDraft
from mirror_lens.synthesis.policy import synthesize
from mirror_lens.synthesis.repair import non_negative_int, object_list, text
from mirror_lens.synthesis.result import SynthesisResult

TEMPERATURE = 0.2

TYPE_ICONS = {
    "trigger": "🔥",
    "pattern": "💡",
    "breakthrough": "✨",
    "mirror": "🪞",
}

SYSTEM_PROMPT = """You are a communication coach writing short insights about a user's
communication journey. Focus on growth, patterns, and actionable insights.

Return a JSON object with:
- feed: array of 3-5 insights, each {"type", "icon", "title", "snippet", "tags"}
    type: one of trigger, pattern, breakthrough, mirror
    icon: 🔥 for trigger, 💡 for pattern, ✨ for breakthrough, 🪞 for mirror
    title: 3-6 words
    snippet: one or two sentences
    tags: short lowercase keywords
- mirror_moments: count of self-awareness breakthroughs (integer)
- inner_dialogue_replay: array of {"script", "reframe"} pairs"""


def default_insights_draft() -> InsightsDraft:
    return InsightsDraft(feed=[], mirror_moments=0, inner_dialogue_replay=[])


def _repair_draft(entry: dict[str, Any], index: int, notes: list[str]) -> InsightDraft | None:
    title = text(entry.get("title"))
    snippet = text(entry.get("snippet"))
    if not title or not snippet:
        notes.append(f"feed[{index}]: missing title or snippet, dropped")
        return None
    kind = entry.get("type")
    if not isinstance(kind, str) or kind not in TYPE_ICONS:
        notes.append(f"feed[{index}].type: {kind!r} replaced with 'pattern'")
        kind = "pattern"
    icon = text(entry.get("icon")) or TYPE_ICONS[kind]
    raw_tags = entry.get("tags")
    tags: list[str] = []
    for tag in raw_tags if isinstance(raw_tags, list) else []:
        if isinstance(tag, str) and tag.strip() and tag.strip() not in tags:
            tags.append(tag.strip())
    return InsightDraft(type=kind, icon=icon, title=title, snippet=snippet, tags=tags)


def repair_insights(data: dict[str, Any]) -> tuple[InsightsDraft, list[str]]:
    notes: list[str] = []
    feed = []
    for index, entry in enumerate(object_list(data.get("feed"), notes, "feed")):
        draft = _repair_draft(entry, index, notes)
        if draft is not None:
            feed.append(draft)

    replay = []
    for entry in object_list(data.get("inner_dialogue_replay"), notes, "inner_dialogue_replay"):
        script, reframe = text(entry.get("script")), text(entry.get("reframe"))
        if script and reframe:
            replay.append(DialogueReplay(script=script, reframe=reframe))
        else:
            notes.append("inner_dialogue_replay: incomplete pair dropped")

    draft = InsightsDraft(
        feed=feed,
        mirror_moments=non_negative_int(data.get("mirror_moments"), notes, "mirror_moments"),
        inner_dialogue_replay=replay,
    )
    return draft, notes


def build_prompt(sources: ProfileSources) -> str:
    patterns = insight_patterns(sources.wimts_sessions, sources.wimts_selections)
    return (
        "Communication journey:\n"
        f"- {len(sources.reflections)} reflections\n"
        f"- {len(sources.intake_sessions)} intake sessions\n"
        f"- {len(sources.wimts_sessions)} WIMTS sessions\n"
        f"- {len(sources.wimts_selections)} selections\n\n"
        f"Patterns: {json.dumps(patterns)}\n\n"
        "Generate the insights."
    )


async def synthesize_insights(
    llm: TextGenerationService,
    sources: ProfileSources,
    *,
    timeout: float | None = None,
) -> SynthesisResult[InsightsDraft]:
    return await synthesize(
        llm,
        build_prompt(sources),
        task="insights_snapshot",
        temperature=TEMPERATURE,
        repair=repair_insights,
        default=default_insights_draft,
        required_keys=("feed",),
        system=SYSTEM_PROMPT,
        timeout=timeout,
    )
