"""Per-stream checkpoint of the last clean detection cycle."""

from sqlalchemy import Column, DateTime, String

from src.database import Base

STREAM_COMMENTS = "comments"
STREAM_PIPELINES = "pipelines"


class Watermark(Base):
    __tablename__ = "watermarks"

    stream = Column(String, primary_key=True)
    checked_at = Column(DateTime(timezone=True), nullable=False)
