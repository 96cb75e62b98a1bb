"""Public operations of the communication-profile core.

Every operation resolves internal failures (store reads, generation, persistence
of generated insights) to a degraded but schema-valid result; none of them raise
for those reasons.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from mirror_lens.aggregation import (
    CONTACTS,
    INSIGHTS,
    INTAKE_SESSIONS,
    REFLECTIONS,
    WIMTS_SESSIONS,
    Aggregator,
    ProfileSources,
)
from mirror_lens.analyzers.cognitive import synthesize_cognitive
from mirror_lens.analyzers.fear import synthesize_fear
from mirror_lens.analyzers.insight_feed import synthesize_insights
from mirror_lens.analyzers.quiz import synthesize_quiz_analysis
from mirror_lens.analyzers.weekly import (
    MIN_PATTERN_REFLECTIONS,
    synthesize_mirror_moments,
    synthesize_patterns,
    synthesize_tips,
    synthesize_weekly,
    threshold_response,
)
from mirror_lens.composer import compose_profile_snapshot
from mirror_lens.config import Settings
from mirror_lens.llm.base import TextGenerationService
from mirror_lens.models import (
    DetectedPattern,
    InsightsSnapshot,
    MirrorMoment,
    ProfileSnapshot,
    ProfileStats,
    QuizAnalysis,
    QuizCard,
    QuizResponse,
    Tip,
    WeeklyInsights,
)
from mirror_lens.quiz_cards import (
    conditional_card,
    get_quiz_responses,
    has_completed_quiz,
    quiz_cards,
    store_quiz_response,
)
from mirror_lens.reconciler import InsightReconciler
from mirror_lens.store.base import RecordStore, StoreError
from mirror_lens.synthesis.result import Defaulted

_log = logging.getLogger(__name__)

DEFAULT_PATTERN_LIMIT = 50
DEFAULT_MOMENT_LIMIT = 20
TIP_PATTERN_LIMIT = 30


class ProfileService:
    def __init__(
        self,
        store: RecordStore,
        llm: TextGenerationService,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._store = store
        self._llm = llm
        self._aggregator = Aggregator(store, timeout=self._settings.store_timeout_seconds)
        self._reconciler = InsightReconciler(store)

    @property
    def _timeout(self) -> float:
        return self._settings.llm_timeout_seconds

    # ── Profile snapshot ─────────────────────────────────────────────────────

    async def _insights_snapshot(self, user_id: str, sources: ProfileSources) -> InsightsSnapshot:
        result = await synthesize_insights(self._llm, sources, timeout=self._timeout)
        draft = result.value
        feed = await self._reconciler.reconcile(user_id, draft.feed)
        return InsightsSnapshot(
            feed=feed,
            mirror_moments=draft.mirror_moments,
            inner_dialogue_replay=draft.inner_dialogue_replay,
        )

    async def generate_profile_snapshot(self, user_id: str) -> ProfileSnapshot:
        sources = await self._aggregator.profile_sources(user_id)
        cognitive, fear, insights = await asyncio.gather(
            synthesize_cognitive(self._llm, sources, timeout=self._timeout),
            synthesize_fear(self._llm, sources, timeout=self._timeout),
            self._insights_snapshot(user_id, sources),
        )
        return compose_profile_snapshot(
            user_id,
            cognitive.value,
            fear.value,
            insights,
            config_version=self._settings.config_version,
        )

    # ── Weekly insights ──────────────────────────────────────────────────────

    async def _store_weekly_insights(
        self,
        user_id: str,
        weekly: WeeklyInsights,
        week_start: datetime,
        reflection_count: int,
    ) -> None:
        now = datetime.now(timezone.utc).isoformat()
        metadata = {
            "week_start": week_start.isoformat(),
            "week_end": now,
            "reflection_count": reflection_count,
            "generated_at": now,
        }
        for insight in weekly.insights:
            try:
                await self._store.insert(INSIGHTS, {
                    "user_id": user_id,
                    "title": insight.title,
                    "content": insight.content,
                    "category": insight.category,
                    "source": "weekly_analysis",
                    "metadata": metadata,
                    "created_at": now,
                })
            except StoreError as exc:
                _log.warning("could not store weekly insights for %s: %s", user_id, exc)
                return

    async def generate_weekly_insights(self, user_id: str) -> WeeklyInsights:
        reflections, week_start = await self._aggregator.weekly_reflections(user_id)
        early = threshold_response(len(reflections))
        if early is not None:
            return early

        result = await synthesize_weekly(self._llm, reflections, timeout=self._timeout)
        weekly = result.value
        if not isinstance(result, Defaulted) and weekly.insights:
            await self._store_weekly_insights(user_id, weekly, week_start, len(reflections))
        return weekly

    # ── Patterns, mirror moments, tips ───────────────────────────────────────

    async def detect_patterns(self, user_id: str, limit: int = DEFAULT_PATTERN_LIMIT) -> list[DetectedPattern]:
        reflections = await self._aggregator.latest_reflections(user_id, limit)
        if len(reflections) < MIN_PATTERN_REFLECTIONS:
            return []
        result = await synthesize_patterns(self._llm, reflections, timeout=self._timeout)
        return result.value

    async def detect_mirror_moments(self, user_id: str, limit: int = DEFAULT_MOMENT_LIMIT) -> list[MirrorMoment]:
        reflections = await self._aggregator.latest_reflections(user_id, limit)
        if not reflections:
            return []
        result = await synthesize_mirror_moments(self._llm, reflections, timeout=self._timeout)
        return result.value

    async def generate_tips(self, user_id: str) -> list[Tip]:
        patterns = await self.detect_patterns(user_id, TIP_PATTERN_LIMIT)
        if not patterns:
            return []
        result = await synthesize_tips(self._llm, patterns, timeout=self._timeout)
        return result.value

    # ── Relationship quiz ────────────────────────────────────────────────────

    async def _intake_context(self, user_id: str) -> tuple[Any, str]:
        profile = await self._aggregator.latest_intake_profile(user_id)
        cognitive = profile.get("cognitive") if isinstance(profile, dict) else None
        fingerprint = cognitive.get("processing_fingerprint") if isinstance(cognitive, dict) else None
        return profile, fingerprint if isinstance(fingerprint, str) else "balanced"

    async def quiz_questions(self, user_id: str) -> list[QuizCard]:
        _, processing_type = await self._intake_context(user_id)
        return quiz_cards(processing_type)

    async def next_quiz_card(self, user_id: str, responses: list[QuizResponse]) -> QuizCard:
        _, processing_type = await self._intake_context(user_id)
        return conditional_card(responses, processing_type)

    async def submit_quiz_response(self, user_id: str, contact_id: str, response: QuizResponse) -> None:
        await store_quiz_response(self._store, user_id, contact_id, response)

    async def quiz_responses(self, user_id: str, contact_id: str) -> list[QuizResponse]:
        return await get_quiz_responses(self._store, user_id, contact_id)

    async def quiz_completed(self, user_id: str, contact_id: str) -> bool:
        return await has_completed_quiz(self._store, user_id, contact_id)

    async def analyze_quiz_responses(
        self,
        user_id: str,
        contact_id: str,
        responses: list[QuizResponse],
    ) -> QuizAnalysis:
        profile, _ = await self._intake_context(user_id)
        _log.debug("analyzing %d quiz responses for %s/%s", len(responses), user_id, contact_id)
        result = await synthesize_quiz_analysis(
            self._llm,
            profile,
            responses,
            model=self._settings.quiz_model,
            timeout=self._timeout,
        )
        return result.value

    # ── Likes and stats ──────────────────────────────────────────────────────

    async def like_insight(self, user_id: str, insight_id: str) -> None:
        await self._reconciler.like(user_id, insight_id)

    async def unlike_insight(self, user_id: str, insight_id: str) -> None:
        await self._reconciler.unlike(user_id, insight_id)

    async def _safe_count(self, collection: str, filters: dict[str, Any]) -> int:
        try:
            return await self._store.count(collection, filters)
        except StoreError as exc:
            _log.warning("count of %s failed, reporting 0: %s", collection, exc)
            return 0

    async def _member_since(self, user_id: str) -> str | None:
        try:
            rows = await self._store.find(
                INTAKE_SESSIONS, {"user_id": user_id}, order_by="created_at", descending=False, limit=1
            )
        except StoreError as exc:
            _log.warning("could not read first intake session for %s: %s", user_id, exc)
            return None
        return rows[0].get("created_at") if rows else None

    async def _completed_intake_count(self, user_id: str) -> int:
        # A missing completed_at matches the null filter too.
        try:
            total = await self._store.count(INTAKE_SESSIONS, {"user_id": user_id})
            open_sessions = await self._store.count(INTAKE_SESSIONS, {"user_id": user_id, "completed_at": None})
        except StoreError as exc:
            _log.warning("count of completed intake sessions failed, reporting 0: %s", exc)
            return 0
        return max(total - open_sessions, 0)

    async def profile_stats(self, user_id: str) -> ProfileStats:
        by_user = {"user_id": user_id}
        reflections, quizzes, contacts, wimts, insights, member_since = await asyncio.gather(
            self._safe_count(REFLECTIONS, by_user),
            self._completed_intake_count(user_id),
            self._safe_count(CONTACTS, by_user),
            self._safe_count(WIMTS_SESSIONS, by_user),
            self._safe_count(INSIGHTS, by_user),
            self._member_since(user_id),
        )
        return ProfileStats(
            reflection_count=reflections,
            quiz_count=quizzes,
            contact_count=contacts,
            wimts_count=wimts,
            insight_count=insights,
            member_since=member_since,
        )
