import json
from typing import Any

from mirror_lens.aggregation import ProfileSources
from mirror_lens.analyzers.patterns import selection_patterns
from mirror_lens.llm.base import TextGenerationService
from mirror_lens.models import AxisScores, CognitiveSnapshot, CommunicationLens
from mirror_lens.synthesis.policy import synthesize
from mirror_lens.synthesis.repair import bounded, label_list
from mirror_lens.synthesis.result import SynthesisResult

TEMPERATURE = 0.3
MAX_HISTORY_SNAPSHOTS = 3
AXES = ("N", "S", "T", "F")

DEFAULT_INCOMING = {"N": 0.6, "S": 0.4, "T": 0.4, "F": 0.7}
DEFAULT_OUTGOING = {"N": 0.5, "S": 0.5, "T": 0.5, "F": 0.6}
DEFAULT_DOMINANT = ["Feeling", "Intuition"]
DEFAULT_SHADOW = ["Thinking", "Sensing"]
DEFAULT_TENDENCIES = ["empathetic", "intuitive", "pattern-seeking"]
DEFAULT_BLIND_SPOTS = ["details", "direct confrontation"]
DEFAULT_TRIGGER_INDEX = 0.5

SYSTEM_PROMPT = """You are a communication-style analyst. From a user's communication history
you infer how they process information along four axes: N (intuition), S (sensing),
T (thinking) and F (feeling).

Return a JSON object with EXACTLY this structure:
{
  "dominant_streams": ["Feeling", "Intuition"],
  "shadow_streams": ["Thinking", "Sensing"],
  "processing_tendencies": ["empathetic", "pattern-seeking", "abstract thinking"],
  "blind_spots": ["details", "direct feedback"],
  "trigger_probability_index": 0.5,
  "communication_lens": {
    "incoming": {"N": 0.6, "S": 0.4, "T": 0.4, "F": 0.7},
    "outgoing": {"N": 0.5, "S": 0.5, "T": 0.5, "F": 0.6}
  }
}

communication_lens MUST have both "incoming" and "outgoing" objects, each with N, S, T, F
keys valued between 0 and 1. trigger_probability_index is between 0 and 1.
Be practical and non-judgmental."""


def default_cognitive_snapshot() -> CognitiveSnapshot:
    return CognitiveSnapshot(
        dominant_streams=list(DEFAULT_DOMINANT),
        shadow_streams=list(DEFAULT_SHADOW),
        processing_tendencies=list(DEFAULT_TENDENCIES),
        blind_spots=list(DEFAULT_BLIND_SPOTS),
        trigger_probability_index=DEFAULT_TRIGGER_INDEX,
        communication_lens=CommunicationLens(
            incoming=AxisScores(**DEFAULT_INCOMING),
            outgoing=AxisScores(**DEFAULT_OUTGOING),
        ),
    )


def _axes(raw: dict[str, Any], defaults: dict[str, float], notes: list[str], field: str) -> AxisScores:
    return AxisScores(**{
        axis: bounded(raw.get(axis), defaults[axis], notes, f"{field}.{axis}")
        for axis in AXES
    })


def repair_lens(raw: Any, notes: list[str]) -> CommunicationLens:
    """Always returns a lens with both directions populated.

    Nested input is clamped per axis; one missing side is copied from the other;
    a flat {N, S, T, F} object is promoted to ``incoming`` and reused for ``outgoing``.
    """
    if not isinstance(raw, dict):
        notes.append("communication_lens: missing, using neutral default")
        return default_cognitive_snapshot().communication_lens

    incoming = raw.get("incoming")
    outgoing = raw.get("outgoing")
    has_in = isinstance(incoming, dict)
    has_out = isinstance(outgoing, dict)

    if has_in and has_out:
        return CommunicationLens(
            incoming=_axes(incoming, DEFAULT_INCOMING, notes, "communication_lens.incoming"),
            outgoing=_axes(outgoing, DEFAULT_OUTGOING, notes, "communication_lens.outgoing"),
        )
    if has_in or has_out:
        present = incoming if has_in else outgoing
        missing_side = "outgoing" if has_in else "incoming"
        notes.append(f"communication_lens: {missing_side} missing, derived from the other side")
        in_scores = _axes(present, DEFAULT_INCOMING, notes, "communication_lens.incoming")
        out_scores = _axes(present, DEFAULT_OUTGOING, notes, "communication_lens.outgoing")
        return CommunicationLens(incoming=in_scores, outgoing=out_scores)
    if any(axis in raw for axis in AXES):
        notes.append("communication_lens: flat structure promoted to incoming, outgoing derived")
        return CommunicationLens(
            incoming=_axes(raw, DEFAULT_INCOMING, notes, "communication_lens.incoming"),
            outgoing=_axes(raw, DEFAULT_OUTGOING, notes, "communication_lens.outgoing"),
        )

    notes.append("communication_lens: no usable values, using neutral default")
    return default_cognitive_snapshot().communication_lens


def repair_cognitive(data: dict[str, Any]) -> tuple[CognitiveSnapshot, list[str]]:
    notes: list[str] = []
    snapshot = CognitiveSnapshot(
        dominant_streams=label_list(data.get("dominant_streams"), DEFAULT_DOMINANT, notes, "dominant_streams"),
        shadow_streams=label_list(data.get("shadow_streams"), DEFAULT_SHADOW, notes, "shadow_streams"),
        processing_tendencies=label_list(
            data.get("processing_tendencies"), DEFAULT_TENDENCIES, notes, "processing_tendencies"
        ),
        blind_spots=label_list(data.get("blind_spots"), DEFAULT_BLIND_SPOTS, notes, "blind_spots"),
        trigger_probability_index=bounded(
            data.get("trigger_probability_index"), DEFAULT_TRIGGER_INDEX, notes, "trigger_probability_index"
        ),
        communication_lens=repair_lens(data.get("communication_lens"), notes),
    )
    return snapshot, notes


def build_prompt(sources: ProfileSources) -> str:
    history = [s["profile_snapshot"] for s in sources.wimts_sessions if s.get("profile_snapshot")]
    return (
        "Communication history:\n"
        f"- {len(sources.reflections)} reflections\n"
        f"- {len(sources.intake_sessions)} intake sessions\n"
        f"- {len(sources.wimts_sessions)} WIMTS sessions\n"
        f"- {len(sources.wimts_selections)} WIMTS selections\n"
        f"- {len(history)} historical profile snapshots\n\n"
        f"WIMTS selection patterns: {json.dumps(selection_patterns(sources.wimts_selections))}\n\n"
        f"Historical profile data: {json.dumps(history[:MAX_HISTORY_SNAPSHOTS], ensure_ascii=False, default=str)}\n\n"
        "Generate the cognitive snapshot."
    )


async def synthesize_cognitive(
    llm: TextGenerationService,
    sources: ProfileSources,
    *,
    timeout: float | None = None,
) -> SynthesisResult[CognitiveSnapshot]:
    return await synthesize(
        llm,
        build_prompt(sources),
        task="cognitive_snapshot",
        temperature=TEMPERATURE,
        repair=repair_cognitive,
        default=default_cognitive_snapshot,
        system=SYSTEM_PROMPT,
        timeout=timeout,
    )
