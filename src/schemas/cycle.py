"""Results and change items produced by a poll cycle."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from src.schemas.gitlab import MergeRequest, Note, Pipeline
from src.schemas.settings import NotifierSettings

CycleStatus = Literal["completed", "skipped", "unavailable", "busy", "failed"]


class AvailabilityResult(BaseModel):
    available: bool
    error: Optional[str] = None


class CommentChange(BaseModel):
    """A new note on a relevant merge request."""

    project_id: str
    merge_request: MergeRequest
    note: Note


class PipelineChange(BaseModel):
    """A relevant pipeline whose status moved into a terminal state."""

    project_id: str
    pipeline: Pipeline
    previous_status: str


class StreamResult(BaseModel):
    stream: str
    checked: int = 0
    relevant: int = 0
    notified: int = 0
    failed: int = 0
    watermark_advanced: bool = False
    error: Optional[str] = None


class CycleResult(BaseModel):
    status: CycleStatus
    reason: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    streams: list[StreamResult] = Field(default_factory=list)


class ConnectionStatusResponse(BaseModel):
    available: bool
    last_check: Optional[datetime] = None
    error: Optional[str] = None


class StatusResponse(BaseModel):
    connection: ConnectionStatusResponse
    unread_count: int
    watermarks: dict[str, Optional[datetime]]
    settings: NotifierSettings


class ConnectionTestRequest(BaseModel):
    """Credentials to test; empty fields fall back to the stored settings."""

    bot_token: str = ""
    chat_id: str = ""
    gitlab_url: str = ""
    gitlab_token: str = ""


class ConnectionTestResponse(BaseModel):
    success: bool
    username: Optional[str] = None
    error: Optional[str] = None
