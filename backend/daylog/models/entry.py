"""
Daylog Backend — Journal Entry SQLAlchemy Model
=================================================

What:  ORM model representing the `journal_entries` table.
How:   Inherits from the shared DeclarativeBase; ensure_schema() reads this
       definition to create and verify the stored table.
Who:   Used by EntryStore for inserts and ordered listings.
When:  Instantiated once per insert; queried for every snapshot.

Table Design:
    - id: integer primary key, assigned by the store's own counter (never by
      the database) so a failed insert cannot consume an id
    - imageReference / audioReference: opaque media locators, never interpreted
    - weather: display text captured at creation time
    - timestamp: milliseconds since the epoch

    Index on (timestamp DESC, id DESC) serves the only read pattern: the full
    listing, newest first, equal timestamps broken by the later insert.
"""

from typing import Optional

from sqlalchemy import BigInteger, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from daylog.database import Base

TABLE_NAME = "journal_entries"


class JournalEntryRecord(Base):
    """
    One persisted journal entry.

    Lifecycle:
        1. Created by EntryStore.insert() with id and timestamp already assigned
        2. Never updated and never deleted individually
        3. Removed only when the whole table is erased
    """

    __tablename__ = TABLE_NAME

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
    )

    title: Mapped[str] = mapped_column(Text, nullable=False, default="")

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Python attribute names are snake_case; stored column names match the
    # persisted layout used by existing journal databases
    image_reference: Mapped[Optional[str]] = mapped_column(
        "imageReference",
        Text,
        nullable=True,
        default=None,
    )

    audio_reference: Mapped[Optional[str]] = mapped_column(
        "audioReference",
        Text,
        nullable=True,
        default=None,
    )

    weather: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_journal_entries_timestamp_id", timestamp.desc(), id.desc()),
    )

    def __repr__(self) -> str:
        return f"<JournalEntryRecord(id={self.id}, timestamp={self.timestamp})>"
