"""Singleton row with the GitLab connection status and the unread counter."""

from sqlalchemy import Boolean, Column, DateTime, Integer, Text

from src.database import Base

STATE_ROW_ID = 1


class NotifierState(Base):
    __tablename__ = "notifier_state"

    id = Column(Integer, primary_key=True, autoincrement=False)
    available = Column(Boolean, default=True, nullable=False)
    last_check = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)
    unread_count = Column(Integer, default=0, nullable=False)
