"""Aggregator: bounded, newest-first reads of the behaviour records a task needs.

Independent sources are read concurrently. A failed or timed-out source
degrades to an empty list so the rest of the pipeline sees "not enough data"
rather than an error.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from mirror_lens.store.base import Gte, RecordStore, StoreError

_log = logging.getLogger(__name__)

# Collections
REFLECTIONS = "reflections"
INTAKE_SESSIONS = "intake_sessions"
WIMTS_SESSIONS = "wimts_sessions"
WIMTS_SELECTIONS = "wimts_selections"
INSIGHTS = "insights"
INSIGHT_LIKES = "insight_likes"
CONTACTS = "contacts"
QUIZ_RESPONSES = "relationship_quiz_responses"

# Row limits for the profile snapshot fan-out
PROFILE_REFLECTION_LIMIT = 50
PROFILE_INTAKE_LIMIT = 20
PROFILE_WIMTS_SESSION_LIMIT = 30
PROFILE_WIMTS_SELECTION_LIMIT = 50

WEEKLY_WINDOW_DAYS = 7


@dataclass
class ProfileSources:
    reflections: list[dict[str, Any]] = field(default_factory=list)
    intake_sessions: list[dict[str, Any]] = field(default_factory=list)
    wimts_sessions: list[dict[str, Any]] = field(default_factory=list)
    wimts_selections: list[dict[str, Any]] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "reflections": len(self.reflections),
            "intake_sessions": len(self.intake_sessions),
            "wimts_sessions": len(self.wimts_sessions),
            "wimts_selections": len(self.wimts_selections),
        }


class Aggregator:
    def __init__(self, store: RecordStore, *, timeout: float | None = 10.0) -> None:
        self._store = store
        self._timeout = timeout

    async def _safe_find(
        self,
        collection: str,
        filters: dict[str, Any],
        *,
        order_by: str = "created_at",
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        try:
            return await asyncio.wait_for(
                self._store.find(collection, filters, order_by=order_by, descending=True, limit=limit),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            _log.warning("read of %s timed out after %ss, treating as empty", collection, self._timeout)
        except StoreError as exc:
            _log.warning("read of %s failed, treating as empty: %s", collection, exc)
        return []

    async def profile_sources(self, user_id: str) -> ProfileSources:
        reflections, sessions, wimts_sessions, wimts_selections = await asyncio.gather(
            self._safe_find(REFLECTIONS, {"user_id": user_id}, limit=PROFILE_REFLECTION_LIMIT),
            self._safe_find(INTAKE_SESSIONS, {"user_id": user_id}, limit=PROFILE_INTAKE_LIMIT),
            self._safe_find(WIMTS_SESSIONS, {"user_id": user_id}, limit=PROFILE_WIMTS_SESSION_LIMIT),
            self._safe_find(
                WIMTS_SELECTIONS,
                {"user_id": user_id},
                order_by="selected_at",
                limit=PROFILE_WIMTS_SELECTION_LIMIT,
            ),
        )
        sources = ProfileSources(reflections, sessions, wimts_sessions, wimts_selections)
        _log.debug("profile sources for %s: %s", user_id, sources.counts())
        return sources

    async def weekly_reflections(self, user_id: str, now: datetime | None = None) -> tuple[list[dict[str, Any]], datetime]:
        """Reflections from the trailing window, plus the window start."""
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=WEEKLY_WINDOW_DAYS)
        rows = await self._safe_find(REFLECTIONS, {"user_id": user_id, "created_at": Gte(since.isoformat())})
        return rows, since

    async def latest_reflections(self, user_id: str, limit: int) -> list[dict[str, Any]]:
        return await self._safe_find(REFLECTIONS, {"user_id": user_id}, limit=limit)

    async def latest_intake_profile(self, user_id: str) -> dict[str, Any] | None:
        """The profile snapshot of the most recently completed intake session, if any."""
        rows = await self._safe_find(INTAKE_SESSIONS, {"user_id": user_id}, order_by="completed_at", limit=1)
        if not rows:
            return None
        return rows[0].get("profile_snapshot")
