"""
Daylog Backend — Database Engine and Schema Management
========================================================

What:  Async SQLAlchemy engine/session factories, the declarative Base, and the
       schema check that runs when the entry store opens.
How:   `build_engine()` and `build_session_factory()` create per-store objects;
       `ensure_schema()` compares the stored `journal_entries` table with the
       ORM definition and applies the configured mismatch policy.
Who:   Used by EntryStore (daylog.store.entry_store) during open().
When:  Once per store lifetime; sessions are created per operation.

Schema policy:
    There is no versioned migration chain. If the stored table shape does not
    match the expected one, the store either recreates it empty ("recreate",
    the default) or refuses to open ("fail") so the data can be rescued by hand.
"""

import logging
from typing import Set

from sqlalchemy import inspect
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from daylog.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

SCHEMA_RECREATE = "recreate"
SCHEMA_FAIL = "fail"


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class so they share one metadata object,
    which ensure_schema() uses to create and verify tables.
    """
    pass


# ── Engine & Session Factories ────────────────────────────────────────────
def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    What:  Creates the async engine that owns the connection pool.
    Note:  pool_pre_ping validates pooled connections before use.
    """
    return create_async_engine(
        database_url,
        pool_pre_ping=True,
        echo=echo,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows stay readable after the transaction ends
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Schema Check ──────────────────────────────────────────────────────────
def _expected_columns(table_name: str) -> Set[str]:
    return {column.name for column in Base.metadata.tables[table_name].columns}


def _check_and_create(connection: Connection, table_name: str, policy: str) -> None:
    """
    Runs inside `AsyncConnection.run_sync`: inspection is a sync-only API.

    Steps:
        1. Table missing → create everything from metadata
        2. Table present with the expected columns → nothing to do
        3. Table present with other columns → apply policy
    """
    inspector = inspect(connection)
    table = Base.metadata.tables[table_name]

    if not inspector.has_table(table_name):
        logger.info("Creating table '%s'", table_name)
        Base.metadata.create_all(connection)
        return

    found = {column["name"] for column in inspector.get_columns(table_name)}
    expected = _expected_columns(table_name)
    if found == expected:
        # create_all adds any missing index
        Base.metadata.create_all(connection)
        return

    if policy == SCHEMA_FAIL:
        raise StorageUnavailableError(
            message="Stored journal schema does not match the expected schema",
            context={
                "table": table_name,
                "found": sorted(found),
                "expected": sorted(expected),
            },
        )

    logger.warning(
        "Schema mismatch on '%s' (found=%s, expected=%s): dropping and recreating. "
        "All stored entries are discarded.",
        table_name,
        sorted(found),
        sorted(expected),
    )
    table.drop(connection)
    Base.metadata.create_all(connection)


async def ensure_schema(
    engine: AsyncEngine,
    table_name: str,
    policy: str = SCHEMA_RECREATE,
) -> None:
    """
    Verify or create the persisted schema for `table_name`.

    Raises:
        StorageUnavailableError: policy is "fail" and the shapes differ.
        sqlalchemy.exc.SQLAlchemyError / OSError: the database is unreachable;
            the caller translates these.
    """
    async with engine.begin() as conn:
        await conn.run_sync(_check_and_create, table_name, policy)
