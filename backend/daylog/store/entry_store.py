"""
Daylog Backend — Entry Store
==============================

What:  Durable store of journal entries with insert and a live, time-ordered
       listing.
How:   Async SQLAlchemy for persistence; one asyncio.Lock as the single
       serialization point for id assignment, commits and subscription
       registration; a ChangeNotifier for fan-out to subscribers.
Who:   Constructed explicitly (application lifespan, tests, scripts) and passed
       to EntryService and the route dependencies.
When:  open() once at startup, close() once at shutdown.

Lifecycle:
    created ──open()──▶ open ──close()──▶ closed
    Every operation on a store that is not open raises StorageUnavailableError.
    A closed store stays closed; build a new one to reconnect.

Insert protocol (all under the lock):
    1. Take id = next_id, stamp the timestamp unless the draft carries one
    2. Add + commit in one transaction; on failure roll back and raise
       StorageUnavailableError with the counter untouched
    3. Advance the counter, place the entry in the ordered in-memory view
    4. Publish the new full snapshot (enqueue only, never waits on subscribers)

Ordering:
    timestamp DESC, then id DESC. Millisecond timestamps collide under rapid
    inserts; the id tie-break makes the later insert come first.

The store must be the only writer of its table: the ordered view is loaded
once at open() and maintained by insert().
"""

import asyncio
import bisect
import logging
import time
from typing import AsyncIterator, Callable, List, Optional, Tuple

from sqlalchemy import desc, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from daylog.config import Settings
from daylog.database import (
    SCHEMA_RECREATE,
    build_engine,
    build_session_factory,
    ensure_schema,
)
from daylog.exceptions import StorageUnavailableError, ValidationError
from daylog.models.entry import TABLE_NAME, JournalEntryRecord
from daylog.schemas.entry import (
    MAX_TIMESTAMP_MS,
    MIN_TIMESTAMP_MS,
    EntryDraft,
    JournalEntry,
)
from daylog.store.notifier import ChangeNotifier, Snapshot, SnapshotCallback, Subscription

logger = logging.getLogger(__name__)

STATE_CREATED = "created"
STATE_OPEN = "open"
STATE_CLOSED = "closed"


def current_time_millis() -> int:
    return time.time_ns() // 1_000_000


def _order_key(entry: JournalEntry) -> Tuple[int, int]:
    return (-entry.timestamp, -entry.id)


class EntryStore:
    """
    Durable journal entry store.

    Example:
        async with EntryStore("sqlite+aiosqlite:///./daylog.db") as store:
            entry_id = await store.insert(EntryDraft(title="Day 1", description="Hiked"))
            subscription = await store.subscribe(print)
            ...
            subscription.unsubscribe()

    Args:
        database_url: Async SQLAlchemy URL.
        clock: Returns "now" in milliseconds since the epoch. Injected by tests.
        schema_mismatch_policy: "recreate" or "fail" (see daylog.database).
        subscriber_queue_size: Pending snapshots kept per subscriber.
        echo: Log every SQL statement.
    """

    def __init__(
        self,
        database_url: str,
        *,
        clock: Optional[Callable[[], int]] = None,
        schema_mismatch_policy: str = SCHEMA_RECREATE,
        subscriber_queue_size: int = 16,
        echo: bool = False,
    ):
        self.database_url = database_url
        self.schema_mismatch_policy = schema_mismatch_policy
        self._clock = clock or current_time_millis
        self._echo = echo

        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._lock = asyncio.Lock()
        self._notifier = ChangeNotifier(queue_size=subscriber_queue_size)
        self._entries: List[JournalEntry] = []
        self._next_id = 1
        self._state = STATE_CREATED

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "EntryStore":
        return cls(
            settings.database_url,
            schema_mismatch_policy=settings.schema_mismatch_policy,
            subscriber_queue_size=settings.subscriber_queue_size,
            echo=settings.log_level == "DEBUG",
            **kwargs,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────────
    @property
    def is_open(self) -> bool:
        return self._state == STATE_OPEN

    @property
    def subscriber_count(self) -> int:
        return self._notifier.subscriber_count

    async def open(self) -> "EntryStore":
        """
        Connect, verify the schema and load the ordered view and id counter.

        Raises:
            StorageUnavailableError: database unreachable, schema refused, or
                the store was already closed.
        """
        async with self._lock:
            if self._state == STATE_OPEN:
                return self
            if self._state == STATE_CLOSED:
                raise StorageUnavailableError(
                    message="The journal store has been closed",
                    context={"state": self._state},
                )

            engine = build_engine(self.database_url, echo=self._echo)
            session_factory = build_session_factory(engine)
            try:
                await ensure_schema(engine, TABLE_NAME, self.schema_mismatch_policy)
                async with session_factory() as session:
                    result = await session.execute(
                        select(JournalEntryRecord).order_by(
                            desc(JournalEntryRecord.timestamp),
                            desc(JournalEntryRecord.id),
                        )
                    )
                    records = result.scalars().all()
            except StorageUnavailableError:
                await engine.dispose()
                raise
            except (SQLAlchemyError, OSError) as e:
                await engine.dispose()
                logger.error("Could not open journal store: %s", e, exc_info=True)
                raise StorageUnavailableError(
                    message="Could not open the journal storage",
                    context={"error_type": type(e).__name__},
                ) from e

            self._entries = [JournalEntry.model_validate(record) for record in records]
            self._next_id = max((entry.id for entry in self._entries), default=0) + 1
            self._engine = engine
            self._session_factory = session_factory
            self._state = STATE_OPEN

        logger.info(
            "Journal store open: %d entries, next id %d", len(self._entries), self._next_id
        )
        return self

    async def close(self) -> None:
        """Stop all subscriptions and release the connection pool. Idempotent."""
        async with self._lock:
            if self._state == STATE_CLOSED:
                return
            was_open = self._state == STATE_OPEN
            self._state = STATE_CLOSED

        # Outside the lock: a subscriber callback may itself be waiting on it
        await self._notifier.close()
        if was_open and self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Journal store closed")

    async def __aenter__(self) -> "EntryStore":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_open(self) -> None:
        if self._state != STATE_OPEN:
            raise StorageUnavailableError(
                message="The journal store is not open",
                context={"state": self._state},
            )

    # ── Operations ────────────────────────────────────────────────────────
    async def insert(self, draft: EntryDraft) -> int:
        """
        Persist a new entry and return its id.

        The insert either fully commits (id consumed, row durable, subscribers
        notified) or has no effect at all.

        Raises:
            StorageUnavailableError: the write or commit failed, or the store
                is not open. Not retried here.
            ValidationError: the timestamp is outside the supported range
                (drafts built without validation, or a broken clock).
        """
        async with self._lock:
            self._require_open()

            entry_id = self._next_id
            timestamp = draft.timestamp if draft.timestamp is not None else self._clock()
            if not MIN_TIMESTAMP_MS <= timestamp <= MAX_TIMESTAMP_MS:
                raise ValidationError(
                    message="Entry timestamp is outside the supported range",
                    field="timestamp",
                    context={"timestamp": timestamp},
                )
            record = JournalEntryRecord(
                id=entry_id,
                title=draft.title,
                description=draft.description,
                image_reference=draft.image_reference,
                audio_reference=draft.audio_reference,
                weather=draft.weather,
                timestamp=timestamp,
            )

            async with self._session_factory() as session:
                try:
                    session.add(record)
                    await session.commit()
                except (SQLAlchemyError, OSError) as e:
                    await session.rollback()
                    logger.error("Insert of entry %d failed: %s", entry_id, e)
                    raise StorageUnavailableError(
                        message="Could not save the journal entry",
                        context={"entry_id": entry_id, "error_type": type(e).__name__},
                    ) from e

            self._next_id = entry_id + 1
            entry = JournalEntry.model_validate(record)
            bisect.insort(self._entries, entry, key=_order_key)
            self._notifier.publish(tuple(self._entries))

        logger.info("Entry %d committed (timestamp=%d)", entry_id, timestamp)
        return entry_id

    async def list_all(self) -> Snapshot:
        """Current entries, newest first (timestamp DESC, id DESC)."""
        self._require_open()
        return tuple(self._entries)

    async def subscribe(self, on_snapshot: SnapshotCallback) -> Subscription:
        """
        Register a live listener.

        `on_snapshot` receives the current snapshot first, then a fresh full
        snapshot after every successful insert. Call the returned
        Subscription (or its unsubscribe()) to stop.
        """
        return await self._register(on_snapshot)

    async def snapshots(self) -> AsyncIterator[Snapshot]:
        """Async-iterator form of subscribe(); leaving the loop unsubscribes."""
        subscription = await self._register(None)
        try:
            async for snapshot in subscription:
                yield snapshot
        finally:
            subscription.unsubscribe()

    async def _register(self, callback: Optional[SnapshotCallback]) -> Subscription:
        # Under the lock: no insert can commit between snapshot and registration
        async with self._lock:
            self._require_open()
            return self._notifier.subscribe(tuple(self._entries), callback)

    async def ping(self) -> bool:
        """Round-trip to the database. Used by the health endpoint."""
        if self._state != STATE_OPEN or self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Journal store ping failed: %s", e)
            return False
