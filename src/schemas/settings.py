"""User settings consumed by each poll cycle."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.config import parse_project_list

MIN_CHECK_INTERVAL = 1
MAX_CHECK_INTERVAL = 60
DEFAULT_CHECK_INTERVAL = 2


class NotifierSettings(BaseModel):
    """Strongly typed settings document with every default spelled out.

    Written by an external UI through ``PUT /settings``; the poll cycle only
    ever reads it.
    """

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    gitlab_url: str = ""
    gitlab_token: str = ""
    gitlab_username: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    projects: list[str] = Field(default_factory=list)
    notify_mr_comments: bool = True
    notify_pipelines: bool = True
    notify_own_comments: bool = False
    show_local_alerts: bool = True
    check_interval_minutes: int = Field(
        default=DEFAULT_CHECK_INTERVAL, ge=MIN_CHECK_INTERVAL, le=MAX_CHECK_INTERVAL
    )

    @field_validator("projects", mode="before")
    @classmethod
    def _parse_projects(cls, value: object) -> object:
        return parse_project_list(value)

    @field_validator("gitlab_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("gitlab_username")
    @classmethod
    def _strip_username(cls, value: str) -> str:
        return value.strip().lstrip("@")

    def missing_configuration(self) -> str | None:
        """Return why a cycle cannot run, or None when it can."""
        if not self.gitlab_url or not self.gitlab_token:
            return "GitLab is not configured"
        if not self.telegram_bot_token or not self.telegram_chat_id:
            return "Telegram is not configured"
        if not self.enabled:
            return "notifications are disabled"
        return None

    def masked(self) -> "NotifierSettings":
        """Copy with credentials hidden, for API responses."""
        return self.model_copy(update={
            "gitlab_token": _mask(self.gitlab_token),
            "telegram_bot_token": _mask(self.telegram_bot_token),
        })


def _mask(secret: str) -> str:
    if not secret:
        return ""
    return f"***{secret[-4:]}" if len(secret) > 8 else "***"
