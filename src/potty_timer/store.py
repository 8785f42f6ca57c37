"""
Timer Store

Durable timer records in a SQL database through SQLAlchemy's asyncio layer.
Every operation runs in its own transaction and touches a single record,
except ``clear_all``.
"""

import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import Boolean, Column, Index, Integer, String, delete, literal_column, make_url, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import DATABASE_URL
from .errors import InvalidArgument, NotFound, StorageError
from .models import MUTABLE_FIELDS, Timer

logger = logging.getLogger(__name__)

Base = declarative_base()


# ============================================================
# SCHEMA
# ============================================================


class TimerRow(Base):
    """One row per timer. Booleans are stored as 0/1."""

    __tablename__ = "timers"

    id = Column(String, primary_key=True)
    duration = Column(Integer, nullable=False)
    start_time = Column(Integer, nullable=False)  # epoch ms
    is_active = Column(Boolean, nullable=False, default=False)
    remaining_time = Column(Integer, nullable=False)
    is_notification_mode = Column(Boolean, nullable=False, default=False)
    created_at = Column(Integer, nullable=False)  # epoch s
    updated_at = Column(Integer, nullable=False)  # epoch s

    __table_args__ = (Index("idx_timers_active", "is_active"),)


# SQLite's implicit row id keeps insertion order for records created in the same second
_NEWEST_FIRST = (TimerRow.created_at.desc(), literal_column("rowid").desc())


def _to_timer(row: TimerRow) -> Timer:
    return Timer(
        id=row.id,
        duration=row.duration,
        start_time=row.start_time,
        is_active=bool(row.is_active),
        remaining_time=row.remaining_time,
        is_notification_mode=bool(row.is_notification_mode),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - set(MUTABLE_FIELDS)
    if unknown:
        raise InvalidArgument(f"Unknown timer field(s): {', '.join(sorted(unknown))}")


# ============================================================
# STORE
# ============================================================


class TimerStore:
    """Timer persistence with an explicit open/close lifecycle."""

    def __init__(self, url: str = DATABASE_URL, clock: Callable[[], float] = time.time):
        self.url = url
        self._clock = clock
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self) -> None:
        """Connect and create the schema. Safe to call twice."""
        if self._engine is not None:
            return

        try:
            backend = make_url(self.url).get_backend_name()
            if backend != "sqlite":
                raise StorageError(f"Unsupported database backend: {backend} (only sqlite)")
            engine = create_async_engine(self.url)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to open timer store: {e}") from e

        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            await engine.dispose()
            raise StorageError(f"Failed to open timer store: {e}") from e

        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)
        logger.info("Timer store opened (%s)", self.url)

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Timer store closed")

    def _now(self) -> int:
        return int(self._clock())

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        if self._sessions is None:
            raise StorageError("Timer store is not open")
        try:
            async with self._sessions() as session, session.begin():
                yield session
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(str(e)) from e

    async def create(self, fields: dict[str, Any]) -> Timer:
        """Insert a new record with a fresh id and audit timestamps."""
        _check_fields(fields)
        now = self._now()
        row = TimerRow(
            id=f"timer_{uuid.uuid4().hex[:12]}",
            created_at=now,
            updated_at=now,
            **fields,
        )
        async with self._transaction() as session:
            session.add(row)
        logger.debug("Stored timer %s", row.id)
        return _to_timer(row)

    async def get(self, timer_id: str) -> Timer:
        async with self._transaction() as session:
            row = await session.get(TimerRow, timer_id)
            if row is None:
                raise NotFound()
            return _to_timer(row)

    async def get_current(self) -> Timer:
        """The most recently created timer."""
        async with self._transaction() as session:
            result = await session.execute(select(TimerRow).order_by(*_NEWEST_FIRST).limit(1))
            row = result.scalars().first()
            if row is None:
                raise NotFound("No timer found")
            return _to_timer(row)

    async def update(self, timer_id: str, fields: dict[str, Any]) -> Timer:
        """Merge ``fields`` onto the stored record and refresh ``updated_at``."""
        _check_fields(fields)
        async with self._transaction() as session:
            row = await session.get(TimerRow, timer_id)
            if row is None:
                raise NotFound()
            for name, value in fields.items():
                setattr(row, name, value)
            row.updated_at = self._now()
        return _to_timer(row)

    async def delete(self, timer_id: str) -> None:
        async with self._transaction() as session:
            result = await session.execute(delete(TimerRow).where(TimerRow.id == timer_id))
            if result.rowcount == 0:
                raise NotFound()

    async def list_all(self) -> list[Timer]:
        """All timers, newest first."""
        async with self._transaction() as session:
            result = await session.execute(select(TimerRow).order_by(*_NEWEST_FIRST))
            return [_to_timer(row) for row in result.scalars()]

    async def list_active(self) -> list[Timer]:
        async with self._transaction() as session:
            result = await session.execute(
                select(TimerRow).where(TimerRow.is_active.is_(True)).order_by(*_NEWEST_FIRST)
            )
            return [_to_timer(row) for row in result.scalars()]

    async def clear_all(self) -> int:
        """Delete every record. Returns how many were removed."""
        async with self._transaction() as session:
            result = await session.execute(delete(TimerRow))
            count = result.rowcount
        logger.info("Cleared %d timer(s)", count)
        return count
