"""Tests for the SQL-backed timer store."""

import pytest
from sqlalchemy import inspect

from potty_timer.errors import InvalidArgument, NotFound, StorageError
from potty_timer.store import TimerStore

START_MS = 1_700_000_000_000


def fields(duration=1800, **overrides):
    base = {
        "duration": duration,
        "start_time": START_MS,
        "is_active": False,
        "remaining_time": duration,
        "is_notification_mode": False,
    }
    base.update(overrides)
    return base


# ============================================================
# LIFECYCLE
# ============================================================


class TestStoreLifecycle:
    async def test_open_is_idempotent(self, store):
        assert store.is_open
        await store.open()
        assert store.is_open

    async def test_closed_store_raises_storage_error(self, db_url):
        s = TimerStore(db_url)
        with pytest.raises(StorageError, match="not open"):
            await s.list_all()

    async def test_close_then_use_raises(self, store):
        await store.close()
        assert not store.is_open
        with pytest.raises(StorageError):
            await store.create(fields())

    async def test_open_failure_is_storage_error(self, tmp_path):
        s = TimerStore(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'timers.db'}")
        with pytest.raises(StorageError, match="Failed to open"):
            await s.open()
        assert not s.is_open

    @pytest.mark.parametrize("url", ["not a url", "sqlite+nosuchdriver:///timers.db"])
    async def test_bad_url_is_storage_error(self, url):
        s = TimerStore(url)
        with pytest.raises(StorageError, match="Failed to open"):
            await s.open()
        assert not s.is_open

    async def test_non_sqlite_backend_rejected(self):
        s = TimerStore("postgresql+asyncpg://user:pw@localhost/timers")
        with pytest.raises(StorageError, match="only sqlite"):
            await s.open()
        assert not s.is_open

    async def test_records_survive_reopen(self, db_url, clock):
        first = TimerStore(db_url, clock=clock.seconds)
        await first.open()
        timer = await first.create(fields(600))
        await first.close()

        second = TimerStore(db_url, clock=clock.seconds)
        await second.open()
        try:
            assert await second.get(timer.id) == timer
        finally:
            await second.close()

    async def test_schema(self, store):
        def describe(conn):
            insp = inspect(conn)
            return (
                {c["name"] for c in insp.get_columns("timers")},
                {i["name"]: i["column_names"] for i in insp.get_indexes("timers")},
            )

        async with store._engine.connect() as conn:
            columns, indexes = await conn.run_sync(describe)

        assert columns == {
            "id",
            "duration",
            "start_time",
            "is_active",
            "remaining_time",
            "is_notification_mode",
            "created_at",
            "updated_at",
        }
        assert indexes["idx_timers_active"] == ["is_active"]


# ============================================================
# CRUD
# ============================================================


class TestStoreCreateAndGet:
    async def test_create(self, store, clock):
        timer = await store.create(fields())
        assert timer.id.startswith("timer_")
        assert timer.duration == 1800
        assert timer.remaining_time == 1800
        assert timer.is_active is False
        assert timer.created_at == timer.updated_at == START_MS // 1000

    async def test_ids_are_unique(self, store):
        a = await store.create(fields())
        b = await store.create(fields())
        assert a.id != b.id

    async def test_get_round_trip(self, store):
        timer = await store.create(fields(900, is_active=True))
        assert await store.get(timer.id) == timer

    async def test_get_missing(self, store):
        with pytest.raises(NotFound, match="Timer not found"):
            await store.get("nonexistent")

    async def test_create_unknown_field(self, store):
        with pytest.raises(InvalidArgument, match="color"):
            await store.create({**fields(), "color": "red"})


class TestStoreCurrent:
    async def test_empty(self, store):
        with pytest.raises(NotFound, match="No timer found"):
            await store.get_current()

    async def test_newest_by_created_at(self, store, clock):
        await store.create(fields(100))
        clock.advance(5)
        newest = await store.create(fields(200))
        assert (await store.get_current()).id == newest.id

    async def test_same_second_ties_use_insertion_order(self, store):
        await store.create(fields(100))
        await store.create(fields(200))
        last = await store.create(fields(300))
        assert (await store.get_current()).id == last.id


class TestStoreUpdate:
    async def test_merges_only_given_fields(self, store, clock):
        timer = await store.create(fields())
        clock.advance(10)
        updated = await store.update(timer.id, {"is_active": True})
        assert updated.is_active is True
        assert updated.duration == timer.duration
        assert updated.remaining_time == timer.remaining_time
        assert updated.start_time == timer.start_time
        assert updated.created_at == timer.created_at
        assert updated.updated_at == timer.updated_at + 10
        assert await store.get(timer.id) == updated

    async def test_empty_update_refreshes_updated_at(self, store, clock):
        timer = await store.create(fields())
        clock.advance(3)
        updated = await store.update(timer.id, {})
        assert updated.updated_at == timer.updated_at + 3

    async def test_missing(self, store):
        with pytest.raises(NotFound):
            await store.update("nonexistent", {"is_active": True})

    async def test_unknown_field(self, store):
        timer = await store.create(fields())
        with pytest.raises(InvalidArgument):
            await store.update(timer.id, {"created_at": 0})


class TestStoreDelete:
    async def test_delete_then_get(self, store):
        timer = await store.create(fields())
        await store.delete(timer.id)
        with pytest.raises(NotFound):
            await store.get(timer.id)

    async def test_delete_missing(self, store):
        with pytest.raises(NotFound):
            await store.delete("nonexistent")

    async def test_clear_all(self, store):
        await store.create(fields())
        await store.create(fields())
        assert await store.clear_all() == 2
        assert await store.list_all() == []


class TestStoreListing:
    async def test_list_all_newest_first(self, store, clock):
        a = await store.create(fields(100))
        clock.advance(1)
        b = await store.create(fields(200))
        c = await store.create(fields(300))
        assert [t.id for t in await store.list_all()] == [c.id, b.id, a.id]

    async def test_list_empty(self, store):
        assert await store.list_all() == []

    async def test_list_active(self, store):
        await store.create(fields(100))
        running = await store.create(fields(200, is_active=True))
        active = await store.list_active()
        assert [t.id for t in active] == [running.id]
