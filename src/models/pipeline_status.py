"""Last observed status of each relevant pipeline."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, String

from src.database import Base


def pipeline_key(project_id: str, pipeline_id: int) -> str:
    return f"{project_id}_{pipeline_id}"


class PipelineStatus(Base):
    __tablename__ = "pipeline_statuses"

    pipeline_key = Column(String, primary_key=True)
    project_id = Column(String, nullable=False)
    pipeline_id = Column(BigInteger, nullable=False)
    status = Column(String, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
