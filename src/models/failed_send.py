"""Consecutive send failures per change item, used to cap retries across cycles."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from src.database import Base


def note_send_key(note_id: int) -> str:
    return f"note:{note_id}"


def pipeline_send_key(key: str) -> str:
    return f"pipeline:{key}"


class FailedSend(Base):
    __tablename__ = "failed_sends"

    item_key = Column(String, primary_key=True)
    send_attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    last_attempt_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
