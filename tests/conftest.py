import pytest_asyncio

from mirror_lens.store.sqlite import SQLiteRecordStore


@pytest_asyncio.fixture
async def store(tmp_path):
    """A fresh SQLite record store backed by a temp file."""
    s = SQLiteRecordStore(str(tmp_path / "records.db"))
    await s.initialize()
    return s
