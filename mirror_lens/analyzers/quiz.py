"""Relationship quiz analysis: slider recommendations and insights for one contact."""
import json
from typing import Any

from mirror_lens.llm.base import TextGenerationService
from mirror_lens.models import SLIDER_NAMES, CommunicationStyle, QuizAnalysis, QuizResponse
from mirror_lens.synthesis.policy import synthesize
from mirror_lens.synthesis.repair import bounded, label_list
from mirror_lens.synthesis.result import SynthesisResult

TEMPERATURE = 0.3
NEUTRAL_SLIDER = 50

SYSTEM_PROMPT = """You are an expert relationship communication analyst. Based on the user's quiz
responses about a specific relationship, generate personalized communication slider
recommendations and insights.

Slider values are integers from 0 to 100:
- directness (0=cushioning, 100=direct)
- formality (0=casual, 100=formal)
- warmth (0=neutral, 100=warm)
- supportMode (0=solution-focused, 100=empathy-focused)
- humor (0=serious, 100=playful)
- teasing (0=gentle, 100=edgy)
- metaCommunication (0=implicit, 100=explicit)
- boundaryStrength (0=flexible, 100=firm)
- structureVsStory (0=structured, 100=narrative)
- validationVsSolutioning (0=validate first, 100=solve first)
- encouragementVsChallenge (0=encourage, 100=challenge)
- detailDepth (0=high-level, 100=detailed)
- concreteVsAbstract (0=concrete, 100=abstract)
- questionDensity (0=few questions, 100=many questions)
- complimentRequestRatio (0=more compliments, 100=more requests)

Return ONLY a JSON object:
{
  "communicationStyle": {"directness": 50, "formality": 40, ...all 15 sliders...},
  "keyInsights": ["3-5 observations about the relationship dynamics"],
  "patterns": ["2-4 recurring themes or tendencies"],
  "suggestions": ["2-4 actionable communication tips"]
}"""


def default_quiz_analysis() -> QuizAnalysis:
    return QuizAnalysis(
        communicationStyle=CommunicationStyle(**{name: NEUTRAL_SLIDER for name in SLIDER_NAMES}),
        keyInsights=["Analysis in progress - try again in a moment"],
        patterns=[],
        suggestions=[],
    )


def repair_quiz_analysis(data: dict[str, Any]) -> tuple[QuizAnalysis, list[str]]:
    notes: list[str] = []
    style = data.get("communicationStyle")
    if not isinstance(style, dict):
        raise ValueError("communicationStyle is not an object")
    sliders = {
        name: round(bounded(style.get(name), NEUTRAL_SLIDER, notes, f"communicationStyle.{name}", 0, 100))
        for name in SLIDER_NAMES
    }
    analysis = QuizAnalysis(
        communicationStyle=CommunicationStyle(**sliders),
        keyInsights=label_list(data.get("keyInsights"), [], notes, "keyInsights"),
        patterns=label_list(data.get("patterns"), [], notes, "patterns"),
        suggestions=label_list(data.get("suggestions"), [], notes, "suggestions"),
    )
    return analysis, notes


def build_prompt(user_profile: Any, responses: list[QuizResponse]) -> str:
    answers = "\n".join(
        f"Q: {r.question}\nType: {r.cardType}\nAnswer: {json.dumps(r.answer, ensure_ascii=False, default=str)}\n"
        for r in responses
    )
    profile = json.dumps(user_profile, indent=2, ensure_ascii=False, default=str)
    return f"User profile: {profile}\n\nQuiz responses:\n{answers}"


async def synthesize_quiz_analysis(
    llm: TextGenerationService,
    user_profile: Any,
    responses: list[QuizResponse],
    *,
    model: str | None = None,
    timeout: float | None = None,
) -> SynthesisResult[QuizAnalysis]:
    return await synthesize(
        llm,
        build_prompt(user_profile, responses),
        task="quiz_analysis",
        temperature=TEMPERATURE,
        repair=repair_quiz_analysis,
        default=default_quiz_analysis,
        required_keys=("communicationStyle",),
        system=SYSTEM_PROMPT,
        model=model,
        timeout=timeout,
    )
