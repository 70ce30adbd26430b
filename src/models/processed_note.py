"""Dedup ledger: notes that were already sent to the chat."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime

from src.database import Base


class ProcessedNote(Base):
    __tablename__ = "processed_notes"

    note_id = Column(BigInteger, primary_key=True, autoincrement=False)
    notified_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
