"""User settings document, stored as validated JSON in a single row."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, Text

from src.database import Base

SETTINGS_ROW_ID = 1


class NotifierSettingsRow(Base):
    __tablename__ = "notifier_settings"

    id = Column(Integer, primary_key=True, autoincrement=False)
    payload_json = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
