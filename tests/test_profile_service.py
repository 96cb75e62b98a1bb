"""End-to-end tests of the public operations against a real SQLite store and a scripted LLM."""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from mirror_lens.analyzers.cognitive import default_cognitive_snapshot
from mirror_lens.analyzers.fear import default_fear_snapshot
from mirror_lens.analyzers.quiz import default_quiz_analysis
from mirror_lens.analyzers.weekly import NOT_ENOUGH_DATA
from mirror_lens.config import Settings
from mirror_lens.llm.base import GenerationError
from mirror_lens.models import QuizResponse
from mirror_lens.service import ProfileService
from mirror_lens.store.base import StoreError

pytestmark = pytest.mark.asyncio

COGNITIVE = {
    "dominant_streams": ["Intuition"],
    "shadow_streams": ["Sensing"],
    "processing_tendencies": ["big-picture"],
    "blind_spots": ["logistics"],
    "trigger_probability_index": 0.4,
    "communication_lens": {"N": 0.8, "S": 0.2, "T": 0.5, "F": 0.6},
}
FEAR = {
    "fears": [{"key": "betrayal", "pct": 0.6}, {"key": "unworthiness", "pct": 0.3}, {"key": "unsafety", "pct": 0.1}],
    "heat_map": [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6], [0.7, 0.8, 0.9]],
    "geometry": {"cube": {"x": 0.6, "y": 0.3, "z": 0.1, "d": 0.2}},
    "top3": ["betrayal", "unworthiness", "unsafety"],
}
INSIGHTS = {
    "feed": [
        {"type": "trigger", "icon": "🔥", "title": "Criticism stings", "snippet": "Feedback lands hard.", "tags": ["work"]},
        {"type": "breakthrough", "icon": "✨", "title": "Naming feelings", "snippet": "You said it plainly.", "tags": []},
    ],
    "mirror_moments": 1,
    "inner_dialogue_replay": [],
}
WEEKLY = {
    "summary": "You leaned into clarity this week.",
    "top_themes": ["clarity", "boundaries"],
    "mirror_moments": 1,
    "insights": [
        {"title": "Clearer asks", "content": "Requests got shorter.", "category": "strength"},
        {"title": "Evening spirals", "content": "Late replies run hot.", "category": "pattern"},
    ],
}
PATTERNS = {"patterns": [
    {"pattern": "Apologizes before asking", "frequency": "common", "insight": "Fear of imposing."},
    {"pattern": "Hedges opinions", "frequency": "sometimes", "insight": "Seeks safety."},
]}
MOMENTS = {"moments": [
    {"reflection_number": n, "insight": f"shift {n}", "significance": "growth"} for n in (1, 2, 3, 99)
]}
TIPS = {"tips": [{"tip": "Ask directly.", "why": "Saves both of you time."}]}
QUIZ = {"communicationStyle": {"directness": 150, "warmth": -20}, "keyInsights": ["Warm but guarded"]}

ROUTES = [
    ("Generate the cognitive snapshot.", COGNITIVE),
    ("Generate the fear snapshot.", FEAR),
    ("Generate the insights.", INSIGHTS),
    ("past 7 days", WEEKLY),
    ("identify 3-5 recurring patterns", PATTERNS),
    ('Identify "mirror moments"', MOMENTS),
    ("actionable tips", TIPS),
    ("Quiz responses:", QUIZ),
]


def _routed_llm(overrides=None):
    routes = dict(ROUTES)
    routes.update(overrides or {})

    async def complete(prompt, **kwargs):
        for marker, payload in routes.items():
            if marker in prompt:
                return payload if isinstance(payload, str) else json.dumps(payload)
        raise AssertionError(f"unexpected prompt: {prompt[:80]}")

    llm = MagicMock()
    llm.complete = AsyncMock(side_effect=complete)
    return llm


def _failing_llm():
    llm = MagicMock()
    llm.complete = AsyncMock(side_effect=GenerationError("service unreachable"))
    return llm


def _ago(**delta):
    return (datetime.now(timezone.utc) - timedelta(**delta)).isoformat()


async def _seed_reflections(store, user_id, count, **age):
    for i in range(count):
        await store.insert("reflections", {
            "user_id": user_id,
            "base_intake_text": f"message {i}",
            "translation_text": f"gentler message {i}",
            "created_at": _ago(**age) if age else _ago(hours=i + 1),
        })


def _service(store, llm):
    return ProfileService(store, llm, Settings(config_version="cfg_test"))


# ── Profile snapshot ─────────────────────────────────────────────────────────

async def test_profile_snapshot_has_every_section(store):
    await _seed_reflections(store, "u1", 3)
    await store.insert("wimts_selections", {"user_id": "u1", "option_id": "B", "selected_at": _ago(hours=1)})
    snapshot = await _service(store, _routed_llm()).generate_profile_snapshot("u1")

    assert snapshot.user_id == "u1"
    assert snapshot.metadata.config_version == "cfg_test"
    lens = snapshot.cognitive_snapshot.communication_lens
    assert lens.incoming.N == 0.8
    assert lens.outgoing.N == 0.8
    assert snapshot.fear_snapshot.top3 == ["betrayal", "unworthiness", "unsafety"]
    assert [i.title for i in snapshot.insights_snapshot.feed] == ["Criticism stings", "Naming feelings"]
    assert snapshot.insights_snapshot.mirror_moments == 1


async def test_profile_snapshot_is_total_when_generation_fails(store):
    snapshot = await _service(store, _failing_llm()).generate_profile_snapshot("u1")
    assert snapshot.cognitive_snapshot == default_cognitive_snapshot()
    assert snapshot.fear_snapshot == default_fear_snapshot()
    assert snapshot.insights_snapshot.feed == []
    assert snapshot.insights_snapshot.mirror_moments == 0


async def test_regenerated_profile_keeps_ids_and_likes(store):
    service = _service(store, _routed_llm())
    first = await service.generate_profile_snapshot("u1")
    liked_id = first.insights_snapshot.feed[0].insight_id
    await service.like_insight("u1", liked_id)

    second = await service.generate_profile_snapshot("u1")
    assert [i.insight_id for i in second.insights_snapshot.feed] == [i.insight_id for i in first.insights_snapshot.feed]
    assert [i.liked for i in second.insights_snapshot.feed] == [True, False]
    assert await store.count("insights", {"user_id": "u1"}) == 2


async def test_profile_snapshot_survives_unreadable_store():
    broken = MagicMock()
    broken.find = AsyncMock(side_effect=StoreError("connection refused"))
    broken.insert = AsyncMock(side_effect=StoreError("connection refused"))
    snapshot = await _service(broken, _routed_llm()).generate_profile_snapshot("u1")
    assert snapshot.cognitive_snapshot.dominant_streams == ["Intuition"]
    assert snapshot.insights_snapshot.feed == []


# ── Weekly insights ──────────────────────────────────────────────────────────

async def test_weekly_with_no_reflections(store):
    llm = _routed_llm()
    result = await _service(store, llm).generate_weekly_insights("u1")
    assert result.summary == NOT_ENOUGH_DATA
    assert result.insights == []
    llm.complete.assert_not_awaited()


async def test_weekly_with_two_reflections_encourages(store):
    await _seed_reflections(store, "u1", 2)
    llm = _routed_llm()
    result = await _service(store, llm).generate_weekly_insights("u1")
    assert "2 reflections" in result.summary
    assert result.mirror_moments == 0
    llm.complete.assert_not_awaited()


async def test_weekly_ignores_reflections_outside_window(store):
    await _seed_reflections(store, "u1", 5, days=10)
    await _seed_reflections(store, "u1", 1)
    result = await _service(store, _routed_llm()).generate_weekly_insights("u1")
    assert "1 reflection " in result.summary


async def test_weekly_synthesizes_and_stores_insights(store):
    await _seed_reflections(store, "u1", 3)
    result = await _service(store, _routed_llm()).generate_weekly_insights("u1")
    assert result.summary == WEEKLY["summary"]
    assert result.top_themes == ["clarity", "boundaries"]
    stored = await store.find("insights", {"user_id": "u1", "source": "weekly_analysis"})
    assert len(stored) == 2
    assert stored[0]["metadata"]["reflection_count"] == 3


async def test_weekly_fallback_mentions_count(store):
    await _seed_reflections(store, "u1", 4)
    result = await _service(store, _failing_llm()).generate_weekly_insights("u1")
    assert result.summary == "You've created 4 reflections this week. Your communication mirror is building!"
    assert await store.count("insights", {"user_id": "u1"}) == 0


# ── Patterns, mirror moments, tips ───────────────────────────────────────────

async def test_patterns_need_five_reflections(store):
    await _seed_reflections(store, "u1", 4)
    llm = _routed_llm()
    assert await _service(store, llm).detect_patterns("u1") == []
    llm.complete.assert_not_awaited()


async def test_patterns_repair_frequency(store):
    await _seed_reflections(store, "u1", 5)
    patterns = await _service(store, _routed_llm()).detect_patterns("u1")
    assert [p.frequency for p in patterns] == ["common", "occasional"]


async def test_mirror_moments_are_capped_and_in_range(store):
    await _seed_reflections(store, "u1", 4)
    moments = await _service(store, _routed_llm()).detect_mirror_moments("u1")
    assert len(moments) <= 3
    assert all(1 <= m.reflection_number <= 4 for m in moments)


async def test_mirror_moments_without_reflections(store):
    assert await _service(store, _routed_llm()).detect_mirror_moments("u1") == []


async def test_tips_follow_patterns(store):
    await _seed_reflections(store, "u1", 6)
    tips = await _service(store, _routed_llm()).generate_tips("u1")
    assert tips[0].tip == "Ask directly."


async def test_tips_empty_without_patterns(store):
    await _seed_reflections(store, "u1", 2)
    assert await _service(store, _routed_llm()).generate_tips("u1") == []


async def test_tips_default_on_failure(store):
    await _seed_reflections(store, "u1", 6)
    llm = _routed_llm({"actionable tips": "not json"})
    assert await _service(store, llm).generate_tips("u1") == []


# ── Relationship quiz ────────────────────────────────────────────────────────

RESPONSES = [
    QuizResponse(cardNumber=1, cardType="reflexes", question="q", inputType="multi_select", answer=["Lead with humor"]),
]


async def test_quiz_analysis_clamps_sliders(store):
    llm = _routed_llm()
    analysis = await _service(store, llm).analyze_quiz_responses("u1", "c1", RESPONSES)
    assert analysis.communicationStyle.directness == 100
    assert analysis.communicationStyle.warmth == 0
    assert analysis.communicationStyle.humor == 50
    assert llm.complete.await_args.kwargs["model"] == "gpt-4o"


async def test_quiz_analysis_default_on_failure(store):
    analysis = await _service(store, _failing_llm()).analyze_quiz_responses("u1", "c1", RESPONSES)
    assert analysis == default_quiz_analysis()


async def test_quiz_cards_follow_intake_profile(store):
    await store.insert("intake_sessions", {
        "user_id": "u1",
        "completed_at": _ago(days=1),
        "profile_snapshot": {"cognitive": {"processing_fingerprint": "intuitive"}},
    })
    cards = await _service(store, _routed_llm()).quiz_questions("u1")
    assert cards[0].question.startswith("When you're communicating with this person, how's")


async def test_submit_and_next_card(store):
    service = _service(store, _routed_llm())
    answer = QuizResponse(cardNumber=3, cardType="fears", question="q", inputType="multi_select", answer=["Causing conflict"])
    await service.submit_quiz_response("u1", "c1", answer)
    assert await store.count("relationship_quiz_responses", {"user_id": "u1", "contact_id": "c1"}) == 1
    card = await service.next_quiz_card("u1", [answer])
    assert card.cardNumber == 6
    assert card.inputType == "single_select"


# ── Stats ────────────────────────────────────────────────────────────────────

async def test_profile_stats(store):
    await _seed_reflections(store, "u1", 2)
    await store.insert("intake_sessions", {"user_id": "u1", "created_at": "2024-01-02T00:00:00+00:00", "completed_at": "x"})
    await store.insert("intake_sessions", {"user_id": "u1", "created_at": "2024-03-01T00:00:00+00:00", "completed_at": None})
    await store.insert("contacts", {"user_id": "u1", "name": "Sam"})
    stats = await _service(store, _routed_llm()).profile_stats("u1")
    assert stats.reflection_count == 2
    assert stats.quiz_count == 1
    assert stats.contact_count == 1
    assert stats.wimts_count == 0
    assert stats.member_since == "2024-01-02T00:00:00+00:00"


async def test_profile_stats_degrade_to_zero():
    broken = MagicMock()
    broken.find = AsyncMock(side_effect=StoreError("down"))
    broken.count = AsyncMock(side_effect=StoreError("down"))
    stats = await _service(broken, _routed_llm()).profile_stats("u1")
    assert stats.reflection_count == 0
    assert stats.member_since is None


async def test_completed_intake_count_treats_missing_field_as_open(store):
    await store.insert("intake_sessions", {"user_id": "u1", "created_at": "2024-01-02T00:00:00+00:00"})
    await store.insert("intake_sessions", {"user_id": "u1", "created_at": "2024-01-03T00:00:00+00:00", "completed_at": "y"})
    await store.insert("intake_sessions", {"user_id": "u2", "created_at": "2024-01-03T00:00:00+00:00", "completed_at": "z"})
    stats = await _service(store, _routed_llm()).profile_stats("u1")
    assert stats.quiz_count == 1


async def test_stored_quiz_answers_and_completion(store):
    service = _service(store, _routed_llm())
    for n, card_type in enumerate(["reflexes", "frustrations", "fears", "hopes"], start=1):
        await service.submit_quiz_response(
            "u1", "c1", QuizResponse(cardNumber=n, cardType=card_type, question="q", inputType="multi_select", answer=[])
        )
    assert await service.quiz_completed("u1", "c1") is False
    await service.submit_quiz_response(
        "u1", "c1", QuizResponse(cardNumber=5, cardType="derails", question="q", inputType="multi_select", answer=[])
    )
    assert await service.quiz_completed("u1", "c1") is True
    answers = await service.quiz_responses("u1", "c1")
    assert [a.cardNumber for a in answers] == [1, 2, 3, 4, 5]
    assert await service.quiz_responses("u1", "other") == []


async def test_weekly_without_summary_keeps_insights(store):
    await _seed_reflections(store, "u1", 3)
    payload = {k: v for k, v in WEEKLY.items() if k != "summary"}
    llm = _routed_llm({"past 7 days": payload})
    result = await _service(store, llm).generate_weekly_insights("u1")
    assert result.summary == "Keep reflecting to build your communication mirror!"
    assert [i.title for i in result.insights] == ["Clearer asks", "Evening spirals"]
    assert llm.complete.await_count == 1


ALL_OPERATIONS = [
    ("generate_profile_snapshot", ()),
    ("generate_weekly_insights", ()),
    ("detect_patterns", ()),
    ("detect_mirror_moments", ()),
    ("generate_tips", ()),
    ("analyze_quiz_responses", ("c1", RESPONSES)),
]


@pytest.mark.parametrize("operation,args", ALL_OPERATIONS, ids=[name for name, _ in ALL_OPERATIONS])
async def test_every_operation_survives_a_failing_service(store, operation, args):
    await _seed_reflections(store, "u1", 6)
    llm = _failing_llm()
    result = await getattr(_service(store, llm), operation)("u1", *args)
    llm.complete.assert_awaited()
    if isinstance(result, list):
        assert result == []
    else:
        type(result).model_validate(result.model_dump())
