"""Telegram HTML message builders."""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape

from src.schemas.cycle import CommentChange, PipelineChange

COMMENT_EXCERPT_LIMIT = 300

_MR_STATE_MARKERS = {
    "opened": "🟢",
    "merged": "🟣",
    "closed": "🔴",
}

_PIPELINE_STATUS = {
    "success": ("✅", "SUCCESS"),
    "failed": ("❌", "FAILED"),
    "canceled": ("🚫", "CANCELED"),
    "running": ("🔄", "RUNNING"),
    "pending": ("⏳", "PENDING"),
    "skipped": ("⏭️", "SKIPPED"),
    "manual": ("👆", "MANUAL"),
}

_PIPELINE_SOURCES = {
    "push": "📤",
    "web": "🌐",
    "schedule": "⏰",
    "api": "🔧",
    "merge_request_event": "🔀",
    "trigger": "⚡",
}


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "N/A"
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%d.%m %H:%M UTC")


def truncate_comment(body: str, limit: int = COMMENT_EXCERPT_LIMIT) -> str:
    text = body.strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def merge_request_url(change: CommentChange, gitlab_url: str) -> str:
    mr = change.merge_request
    if mr.web_url:
        return mr.web_url
    return f"{gitlab_url}/{mr.project_path}/-/merge_requests/{mr.iid}"


def build_mr_comment_message(change: CommentChange, gitlab_url: str) -> str:
    """Build the message for a new note on a merge request."""
    mr = change.merge_request
    note = change.note
    mr_url = merge_request_url(change, gitlab_url)
    comment_url = f"{mr_url}#note_{note.id}"
    state_marker = _MR_STATE_MARKERS.get(mr.state, "⚪")
    project_name = mr.project_path or f"Project {change.project_id}"
    mr_author = mr.author.name if mr.author and mr.author.name else "Unknown"
    note_author = note.author.name or note.author.username or "Unknown"

    lines = [
        "💬 <b>New comment in merge request</b>",
        "",
        f'{state_marker} <b>MR:</b> <a href="{escape(mr_url)}">!{mr.iid} {escape(mr.title)}</a>',
        f"📁 <b>Project:</b> <code>{escape(project_name)}</code>",
        f"👤 <b>MR author:</b> {escape(mr_author)}",
        f"💭 <b>Comment by:</b> {escape(note_author)}",
        f"🕒 <b>Time:</b> {format_timestamp(note.created_at)}",
        "",
        "<b>📝 Comment:</b>",
        f"<i>{escape(truncate_comment(note.body))}</i>",
        "",
        f'<a href="{escape(comment_url)}">➡️ Open comment</a>',
    ]
    return "\n".join(lines)


def build_pipeline_message(change: PipelineChange, gitlab_url: str) -> str:
    """Build the message for a pipeline that reached a terminal status."""
    pipeline = change.pipeline
    pipeline_url = pipeline.web_url or f"{gitlab_url}/-/pipelines/{pipeline.id}"
    emoji, label = _PIPELINE_STATUS.get(pipeline.status, ("📊", pipeline.status.upper()))
    source = pipeline.source or "unknown"
    source_marker = _PIPELINE_SOURCES.get(source, "📋")
    short_sha = pipeline.sha[:8] if pipeline.sha else "N/A"
    actor = pipeline.user.name if pipeline.user and pipeline.user.name else "N/A"

    lines = [
        f"{emoji} <b>Pipeline: {escape(label)}</b>",
        "",
        f"📁 <b>Project:</b> <code>{escape(str(change.project_id))}</code>",
        f'🔢 <b>Pipeline:</b> <a href="{escape(pipeline_url)}">#{pipeline.id}</a>',
        f"🌿 <b>Branch:</b> <code>{escape(pipeline.ref)}</code>",
        f"💾 <b>Commit:</b> <code>{escape(short_sha)}</code>",
        f"{source_marker} <b>Source:</b> {escape(source)}",
        f"👤 <b>Triggered by:</b> {escape(actor)}",
        f"🕒 <b>Updated:</b> {format_timestamp(pipeline.updated_at)}",
        "",
        f'<a href="{escape(pipeline_url)}">➡️ Open pipeline</a>',
    ]
    return "\n".join(lines)


def build_connection_test_message() -> str:
    return "🎉 <b>Connection test succeeded!</b>\n\nGitLab Notifier is configured correctly."
