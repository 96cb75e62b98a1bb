from typing import Any, Literal

from pydantic import BaseModel, Field

InsightType = Literal["trigger", "pattern", "breakthrough", "mirror"]
WeeklyCategory = Literal["pattern", "breakthrough", "blind_spot", "strength"]
PatternFrequency = Literal["common", "occasional", "rare"]


# ── Cognitive ────────────────────────────────────────────────────────────────

class AxisScores(BaseModel):
    N: float = Field(ge=0.0, le=1.0)
    S: float = Field(ge=0.0, le=1.0)
    T: float = Field(ge=0.0, le=1.0)
    F: float = Field(ge=0.0, le=1.0)


class CommunicationLens(BaseModel):
    incoming: AxisScores
    outgoing: AxisScores


class CognitiveSnapshot(BaseModel):
    dominant_streams: list[str]
    shadow_streams: list[str]
    processing_tendencies: list[str]
    blind_spots: list[str]
    trigger_probability_index: float = Field(ge=0.0, le=1.0)
    communication_lens: CommunicationLens


# ── Fear ─────────────────────────────────────────────────────────────────────

class FearItem(BaseModel):
    key: str
    pct: float = Field(ge=0.0, le=1.0)


class Cube(BaseModel):
    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    z: float = Field(ge=0.0, le=1.0)
    d: float = Field(ge=0.0, le=1.0)


class Geometry(BaseModel):
    cube: Cube


class FearSnapshot(BaseModel):
    fears: list[FearItem]
    heat_map: list[list[float]]  # 3x3, every cell in [0, 1]
    geometry: Geometry
    top3: list[str]


# ── Insights ─────────────────────────────────────────────────────────────────

class InsightDraft(BaseModel):
    """An insight as generated, before it has a stored identity."""
    type: InsightType
    icon: str
    title: str
    snippet: str
    tags: list[str] = []


class InsightItem(InsightDraft):
    insight_id: str
    liked: bool = False
    ts: str


class DialogueReplay(BaseModel):
    script: str
    reframe: str


class InsightsDraft(BaseModel):
    feed: list[InsightDraft] = []
    mirror_moments: int = Field(default=0, ge=0)
    inner_dialogue_replay: list[DialogueReplay] = []


class InsightsSnapshot(BaseModel):
    feed: list[InsightItem] = []
    mirror_moments: int = Field(default=0, ge=0)
    inner_dialogue_replay: list[DialogueReplay] = []


# ── Profile ──────────────────────────────────────────────────────────────────

class SnapshotMetadata(BaseModel):
    generated_at: str
    config_version: str


class ProfileSnapshot(BaseModel):
    user_id: str
    cognitive_snapshot: CognitiveSnapshot
    fear_snapshot: FearSnapshot
    insights_snapshot: InsightsSnapshot
    metadata: SnapshotMetadata


# ── Weekly / patterns / moments / tips ───────────────────────────────────────

class WeeklyInsight(BaseModel):
    title: str
    content: str
    category: WeeklyCategory = "pattern"


class WeeklyInsights(BaseModel):
    summary: str
    top_themes: list[str] = []
    mirror_moments: int = Field(default=0, ge=0)
    insights: list[WeeklyInsight] = []


class DetectedPattern(BaseModel):
    pattern: str
    frequency: PatternFrequency = "occasional"
    insight: str = ""


class MirrorMoment(BaseModel):
    reflection_number: int = Field(ge=1)
    insight: str
    significance: str = ""


class Tip(BaseModel):
    tip: str
    why: str = ""


# ── Relationship quiz ────────────────────────────────────────────────────────

SLIDER_NAMES: tuple[str, ...] = (
    "directness",
    "formality",
    "warmth",
    "supportMode",
    "humor",
    "teasing",
    "metaCommunication",
    "boundaryStrength",
    "structureVsStory",
    "validationVsSolutioning",
    "encouragementVsChallenge",
    "detailDepth",
    "concreteVsAbstract",
    "questionDensity",
    "complimentRequestRatio",
)


class CommunicationStyle(BaseModel):
    directness: int = Field(ge=0, le=100)
    formality: int = Field(ge=0, le=100)
    warmth: int = Field(ge=0, le=100)
    supportMode: int = Field(ge=0, le=100)
    humor: int = Field(ge=0, le=100)
    teasing: int = Field(ge=0, le=100)
    metaCommunication: int = Field(ge=0, le=100)
    boundaryStrength: int = Field(ge=0, le=100)
    structureVsStory: int = Field(ge=0, le=100)
    validationVsSolutioning: int = Field(ge=0, le=100)
    encouragementVsChallenge: int = Field(ge=0, le=100)
    detailDepth: int = Field(ge=0, le=100)
    concreteVsAbstract: int = Field(ge=0, le=100)
    questionDensity: int = Field(ge=0, le=100)
    complimentRequestRatio: int = Field(ge=0, le=100)


class QuizAnalysis(BaseModel):
    communicationStyle: CommunicationStyle
    keyInsights: list[str] = []
    patterns: list[str] = []
    suggestions: list[str] = []


class QuizResponse(BaseModel):
    cardNumber: int
    cardType: str
    question: str
    inputType: str
    answer: Any = None


class SliderLabels(BaseModel):
    min: str
    max: str


class QuizCard(BaseModel):
    cardNumber: int
    cardType: Literal["reflexes", "frustrations", "fears", "hopes", "derails", "conditional"]
    question: str
    inputType: Literal["text", "multi_select", "single_select", "slider"]
    options: list[str] | None = None
    placeholder: str | None = None
    sliderLabels: SliderLabels | None = None


class ProfileStats(BaseModel):
    reflection_count: int = 0
    quiz_count: int = 0
    contact_count: int = 0
    wimts_count: int = 0
    insight_count: int = 0
    member_since: str | None = None
