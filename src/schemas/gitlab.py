"""Pydantic models for the GitLab REST payloads the notifier reads."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

TERMINAL_PIPELINE_STATUSES = frozenset({"success", "failed", "canceled"})


class GitLabUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    username: str = ""
    name: str = ""


class MergeRequestReferences(BaseModel):
    model_config = ConfigDict(extra="ignore")

    short: str = ""
    full: str = ""


class MergeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    iid: int
    project_id: Optional[int] = None
    title: str = ""
    state: str = "opened"
    web_url: str = ""
    author: Optional[GitLabUser] = None
    assignee: Optional[GitLabUser] = None
    assignees: list[GitLabUser] = Field(default_factory=list)
    reviewers: list[GitLabUser] = Field(default_factory=list)
    references: Optional[MergeRequestReferences] = None
    updated_at: Optional[datetime] = None

    @property
    def project_path(self) -> str:
        """``group/project`` taken from the full reference, if present."""
        if self.references and self.references.full:
            return self.references.full.split("!")[0].strip()
        return ""


class Note(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    body: str = ""
    author: GitLabUser = Field(default_factory=GitLabUser)
    created_at: datetime
    system: bool = False


class Pipeline(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    status: str
    ref: str = ""
    sha: str = ""
    source: str = ""
    user: Optional[GitLabUser] = None
    web_url: str = ""
    created_at: Optional[datetime] = None
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PIPELINE_STATUSES
