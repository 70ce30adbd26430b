"""Configuration for gitlab-notifier."""

import json
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


def parse_project_list(value: object) -> object:
    """Accept a list, a JSON array string or a comma-separated string."""
    if value in (None, ""):
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            return [str(item).strip() for item in json.loads(stripped) if str(item).strip()]
        return [part.strip() for part in stripped.split(",") if part.strip()]
    raise TypeError("projects must be a list or a comma-separated string")


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./notifier.db"
    api_prefix: str = "/api/v1"
    debug: bool = False

    # Scheduler
    scheduler_enabled: bool = True
    startup_delay_seconds: float = 6.0

    # Timeouts (seconds); no call is retried inside a cycle
    probe_timeout_seconds: float = 5.0
    gitlab_timeout_seconds: float = 15.0
    telegram_timeout_seconds: float = 10.0

    # Detection limits
    parallel_batch_size: int = 10
    processed_notes_retention_days: int = 30
    comment_max_age_days: int = 7
    max_send_attempts: int = 5

    # Seeds for the user settings row, applied once on first start
    default_gitlab_url: str = ""
    default_gitlab_token: str = ""
    default_gitlab_username: str = ""
    default_telegram_bot_token: str = ""
    default_telegram_chat_id: str = ""
    default_projects: Annotated[list[str], NoDecode] = []
    default_check_interval_minutes: int = 2

    model_config = {"env_prefix": "NOTIFIER_"}

    @field_validator("default_projects", mode="before")
    @classmethod
    def _parse_default_projects(cls, value: object) -> object:
        return parse_project_list(value)


settings = Settings()
