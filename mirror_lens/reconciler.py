"""Insight reconciler: gives generated insights stable stored identities.

Identity is the natural key (user_id, title, snippet), exact and case-sensitive.
Items are reconciled one at a time: the lookup-then-write sequence is not atomic,
so concurrent reconciliation for the same user could still insert duplicates.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from mirror_lens.aggregation import INSIGHT_LIKES, INSIGHTS
from mirror_lens.models import InsightDraft, InsightItem
from mirror_lens.store.base import RecordStore, StoreError

_log = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InsightReconciler:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def _upsert(self, user_id: str, draft: InsightDraft, now: str) -> str:
        existing = await self._store.find(
            INSIGHTS,
            {"user_id": user_id, "title": draft.title, "snippet": draft.snippet},
            limit=1,
        )
        if existing:
            insight_id = existing[0]["id"]
            await self._store.update(INSIGHTS, insight_id, {
                "type": draft.type,
                "icon": draft.icon,
                "tags": draft.tags,
                "metadata": {},
                "updated_at": now,
            })
            return insight_id
        created = await self._store.insert(INSIGHTS, {
            "user_id": user_id,
            "type": draft.type,
            "icon": draft.icon,
            "title": draft.title,
            "snippet": draft.snippet,
            "tags": draft.tags,
            "created_at": now,
            "updated_at": now,
        })
        return created["id"]

    async def liked_ids(self, user_id: str, insight_ids: list[str]) -> set[str]:
        """Ids among ``insight_ids`` the user has liked, in one batched lookup."""
        if not insight_ids:
            return set()
        rows = await self._store.find(INSIGHT_LIKES, {"user_id": user_id, "insight_id": insight_ids})
        return {row["insight_id"] for row in rows}

    async def reconcile(self, user_id: str, drafts: list[InsightDraft]) -> list[InsightItem]:
        """Upsert each draft by natural key and attach liked flags. Order is preserved;
        drafts whose store operation fails are skipped."""
        now = _now()
        reconciled: list[tuple[str, InsightDraft]] = []
        for draft in drafts:
            try:
                insight_id = await self._upsert(user_id, draft, now)
            except StoreError as exc:
                _log.warning("skipping insight %r for %s: %s", draft.title, user_id, exc)
                continue
            reconciled.append((insight_id, draft))

        try:
            liked = await self.liked_ids(user_id, [insight_id for insight_id, _ in reconciled])
        except StoreError as exc:
            _log.warning("could not load liked insights for %s: %s", user_id, exc)
            liked = set()

        return [
            InsightItem(**draft.model_dump(), insight_id=insight_id, liked=insight_id in liked, ts=now)
            for insight_id, draft in reconciled
        ]

    async def like(self, user_id: str, insight_id: str) -> None:
        await self._store.upsert_by_key(
            INSIGHT_LIKES,
            ("user_id", "insight_id"),
            {"user_id": user_id, "insight_id": insight_id, "created_at": _now()},
        )

    async def unlike(self, user_id: str, insight_id: str) -> None:
        await self._store.delete(INSIGHT_LIKES, {"user_id": user_id, "insight_id": insight_id})
