"""Error taxonomy for the poll cycle."""

from __future__ import annotations


class NotifierError(RuntimeError):
    """Base class for notifier failures."""


class ConfigurationMissing(NotifierError):
    """A required credential or toggle is absent; the cycle is a no-op."""


class SourceUnavailable(NotifierError):
    """The availability probe failed; the whole cycle is aborted."""


class SourceAPIError(NotifierError):
    """A GitLab call returned a non-success status or failed in transport."""

    def __init__(self, message: str, status_code: int | None = None, url: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class SinkAPIError(NotifierError):
    """Telegram refused or failed to deliver one message."""
