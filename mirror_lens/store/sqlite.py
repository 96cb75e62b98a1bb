"""SQLite-backed RecordStore: every collection lives in one JSON document table."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from typing import Any

import aiosqlite

from mirror_lens.store.base import Gte, StoreError

_log = logging.getLogger(__name__)

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _path(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise StoreError(f"Invalid field name: {field!r}")
    return f"$.{field}"


def _where(collection: str, filters: dict[str, Any] | None) -> tuple[str, list[Any]] | None:
    """Build the WHERE clause. Returns None when the filters can never match."""
    clauses = ["collection = ?"]
    params: list[Any] = [collection]
    for field, value in (filters or {}).items():
        if field == "id":
            column = "id"
        else:
            column = "json_extract(body, ?)"
            params.append(_path(field))
        if isinstance(value, Gte):
            clauses.append(f"{column} >= ?")
            params.append(value.value)
        elif isinstance(value, (list, tuple, set, frozenset)):
            values = list(value)
            if not values:
                return None
            clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        elif value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ?")
            params.append(value)
    return " AND ".join(clauses), params


def _row_to_record(row: tuple[str, str]) -> dict[str, Any]:
    record = json.loads(row[1])
    record["id"] = row[0]
    return record


class SQLiteRecordStore:
    """Opens one short-lived connection per operation."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ready = False

    async def initialize(self) -> None:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS records (
                        id         TEXT PRIMARY KEY,
                        collection TEXT NOT NULL,
                        body       TEXT NOT NULL
                    )
                """)
                await db.execute(
                    "CREATE INDEX IF NOT EXISTS records_collection ON records (collection)"
                )
                await db.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not initialise store at {self._db_path}: {exc}") from exc
        self._ready = True

    async def _ensure_ready(self) -> None:
        if not self._ready:
            await self.initialize()

    async def find(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        await self._ensure_ready()
        where = _where(collection, filters)
        if where is None:
            return []
        clause, params = where
        sql = f"SELECT id, body FROM records WHERE {clause}"
        if order_by:
            sql += f" ORDER BY json_extract(body, ?) {'DESC' if descending else 'ASC'}"
            params.append(_path(order_by))
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"find on {collection} failed: {exc}") from exc
        return [_row_to_record(row) for row in rows]

    async def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        await self._ensure_ready()
        body = {k: v for k, v in record.items() if k != "id"}
        record_id = str(record.get("id") or uuid.uuid4())
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    "INSERT INTO records (id, collection, body) VALUES (?, ?, ?)",
                    (record_id, collection, json.dumps(body, ensure_ascii=False)),
                )
                await db.commit()
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise StoreError(f"insert into {collection} failed: {exc}") from exc
        return {**body, "id": record_id}

    async def update(self, collection: str, record_id: str, patch: dict[str, Any]) -> None:
        await self._ensure_ready()
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute(
                    "SELECT body FROM records WHERE collection = ? AND id = ?",
                    (collection, record_id),
                ) as cursor:
                    row = await cursor.fetchone()
                if row is None:
                    raise StoreError(f"No {collection} record with id {record_id}")
                body = json.loads(row[0])
                body.update({k: v for k, v in patch.items() if k != "id"})
                await db.execute(
                    "UPDATE records SET body = ? WHERE collection = ? AND id = ?",
                    (json.dumps(body, ensure_ascii=False), collection, record_id),
                )
                await db.commit()
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise StoreError(f"update of {collection}/{record_id} failed: {exc}") from exc

    async def upsert_by_key(
        self,
        collection: str,
        key_fields: tuple[str, ...],
        record: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            key = {field: record[field] for field in key_fields}
        except KeyError as exc:
            raise StoreError(f"upsert into {collection} is missing key field {exc}") from exc
        existing = await self.find(collection, key, limit=1)
        if existing:
            record_id = existing[0]["id"]
            await self.update(collection, record_id, record)
            return {**existing[0], **record, "id": record_id}
        return await self.insert(collection, record)

    async def delete(self, collection: str, filters: dict[str, Any]) -> int:
        await self._ensure_ready()
        where = _where(collection, filters)
        if where is None:
            return 0
        clause, params = where
        try:
            async with aiosqlite.connect(self._db_path) as db:
                cursor = await db.execute(f"DELETE FROM records WHERE {clause}", params)
                deleted = cursor.rowcount
                await db.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"delete from {collection} failed: {exc}") from exc
        _log.debug("deleted %d %s records", deleted, collection)
        return deleted

    async def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        await self._ensure_ready()
        where = _where(collection, filters)
        if where is None:
            return 0
        clause, params = where
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute(f"SELECT COUNT(*) FROM records WHERE {clause}", params) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"count on {collection} failed: {exc}") from exc
        return int(row[0]) if row else 0
