"""Decides whether a merge request or pipeline concerns the configured user.

Tier 1 looks only at fields already present on the merge request. Tier 2
asks GitLab for the participant list and is only reached when Tier 1 is
inconclusive. A Tier 2 failure counts as irrelevant for this cycle.
"""

from __future__ import annotations

import asyncio
import enum
import logging

from src.clients.gitlab_client import GitLabClient
from src.schemas.gitlab import GitLabUser, MergeRequest, Pipeline

logger = logging.getLogger(__name__)


class Relevance(str, enum.Enum):
    RELEVANT = "definitely-relevant"
    IRRELEVANT = "definitely-irrelevant"
    NEEDS_DEEPER_CHECK = "needs-deeper-check"


def _matches(user: GitLabUser | None, username: str) -> bool:
    return user is not None and user.username == username


def classify_merge_request(mr: MergeRequest, username: str) -> Relevance:
    if not username:
        return Relevance.RELEVANT
    if _matches(mr.author, username) or _matches(mr.assignee, username):
        return Relevance.RELEVANT
    if any(_matches(user, username) for user in mr.assignees):
        return Relevance.RELEVANT
    if any(_matches(user, username) for user in mr.reviewers):
        return Relevance.RELEVANT
    return Relevance.NEEDS_DEEPER_CHECK


async def resolve_relevance(
    gitlab: GitLabClient,
    project_id: str,
    mr: MergeRequest,
    username: str,
) -> Relevance:
    verdict = classify_merge_request(mr, username)
    if verdict is not Relevance.NEEDS_DEEPER_CHECK:
        return verdict
    try:
        participants = await gitlab.get_merge_request_participants(project_id, mr.iid)
    except Exception as exc:
        logger.warning(
            "Participant lookup failed for %s!%d, treating as irrelevant: %s",
            project_id, mr.iid, exc,
        )
        return Relevance.IRRELEVANT
    if any(_matches(user, username) for user in participants):
        return Relevance.RELEVANT
    return Relevance.IRRELEVANT


async def filter_relevant_merge_requests(
    gitlab: GitLabClient,
    project_id: str,
    merge_requests: list[MergeRequest],
    username: str,
    batch_size: int = 10,
) -> list[MergeRequest]:
    """Keep the relevant merge requests, preserving input order.

    Participant lookups run concurrently in batches of ``batch_size``.
    """
    batch_size = max(1, batch_size)
    verdicts: list[Relevance] = []
    for start in range(0, len(merge_requests), batch_size):
        batch = merge_requests[start:start + batch_size]
        verdicts.extend(await asyncio.gather(*(
            resolve_relevance(gitlab, project_id, mr, username) for mr in batch
        )))
    return [
        mr for mr, verdict in zip(merge_requests, verdicts)
        if verdict is Relevance.RELEVANT
    ]


def is_relevant_pipeline(pipeline: Pipeline, username: str) -> bool:
    return not username or _matches(pipeline.user, username)
