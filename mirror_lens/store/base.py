"""Record store protocol: keyed document access used by every component.

Records are plain dicts; the store assigns an ``id`` on insert. Filters are
equality matches, with two extensions:

  value is a list/tuple/set  -> field must be one of the values
  value is ``Gte(x)``        -> field must be >= x (time windows)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


class StoreError(Exception):
    """Raised by a RecordStore for any failed read or write."""


@dataclass(frozen=True)
class Gte:
    value: Any


@runtime_checkable
class RecordStore(Protocol):
    async def find(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        """Store a new record and return it with its assigned ``id``."""
        ...

    async def update(self, collection: str, record_id: str, patch: dict[str, Any]) -> None:
        """Shallow-merge ``patch`` into the record. Raises StoreError if it does not exist."""
        ...

    async def upsert_by_key(
        self,
        collection: str,
        key_fields: tuple[str, ...],
        record: dict[str, Any],
    ) -> dict[str, Any]:
        """Update the record matching ``record`` on ``key_fields``, or insert it.

        Read-then-write: not atomic against concurrent writers of the same key.
        """
        ...

    async def delete(self, collection: str, filters: dict[str, Any]) -> int:
        ...

    async def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        ...
