"""GitLab REST API v4 client (private token auth, first page only)."""

from __future__ import annotations

import logging
from typing import TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from src.config import settings
from src.errors import SourceAPIError
from src.schemas.cycle import AvailabilityResult
from src.schemas.gitlab import GitLabUser, MergeRequest, Note, Pipeline

logger = logging.getLogger(__name__)

_TIMEOUT_ERROR = "timeout: check VPN connection"

ModelT = TypeVar("ModelT", bound=BaseModel)


class GitLabClient:
    """Read-only access to merge requests, notes and pipelines."""

    def __init__(self, base_url: str, token: str) -> None:
        if not base_url or not token:
            raise RuntimeError("GitLab not configured — set gitlab_url and gitlab_token")
        self._base_url = base_url.rstrip("/")
        self._api_url = f"{self._base_url}/api/v4"
        self._headers = {
            "PRIVATE-TOKEN": token,
            "Accept": "application/json",
        }
        self._client = httpx.AsyncClient(timeout=settings.gitlab_timeout_seconds)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get(self, endpoint: str, params: dict | None = None):
        """GET one endpoint and return the decoded JSON body."""
        url = f"{self._api_url}{endpoint}"
        try:
            resp = await self._client.get(url, params=params, headers=self._headers)
        except httpx.HTTPError as exc:
            raise SourceAPIError(f"GitLab request failed: {exc}", url=url) from exc
        if resp.status_code >= 400:
            raise SourceAPIError(
                f"GitLab API error: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
                url=url,
            )
        try:
            return resp.json()
        except ValueError as exc:
            # Usually an SSO or VPN login page served with 200.
            raise SourceAPIError(
                f"GitLab returned a non-JSON response ({resp.headers.get('content-type', 'unknown')})",
                status_code=resp.status_code,
                url=url,
            ) from exc

    @staticmethod
    def _parse(model: type[ModelT], data, endpoint: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise SourceAPIError(
                f"Unexpected GitLab payload from {endpoint}: {exc.error_count()} invalid field(s)",
                url=endpoint,
            ) from exc

    @classmethod
    def _parse_list(cls, model: type[ModelT], data, endpoint: str) -> list[ModelT]:
        if not isinstance(data, list):
            raise SourceAPIError(f"Unexpected GitLab payload from {endpoint}: expected a list", url=endpoint)
        return [cls._parse(model, item, endpoint) for item in data]

    @staticmethod
    def _project(project_id: str) -> str:
        return quote(str(project_id), safe="")

    async def check_availability(self) -> AvailabilityResult:
        """Probe ``/version`` with a hard timeout. Never raises."""
        url = f"{self._api_url}/version"
        try:
            resp = await self._client.get(
                url,
                headers=self._headers,
                timeout=settings.probe_timeout_seconds,
            )
        except httpx.TimeoutException:
            return AvailabilityResult(available=False, error=_TIMEOUT_ERROR)
        except httpx.HTTPError as exc:
            return AvailabilityResult(available=False, error=str(exc) or type(exc).__name__)
        except Exception as exc:
            # e.g. httpx.InvalidURL for a malformed stored gitlab_url
            logger.warning("GitLab probe failed unexpectedly: %r", exc)
            return AvailabilityResult(available=False, error=str(exc) or type(exc).__name__)
        if resp.is_success:
            return AvailabilityResult(available=True)
        return AvailabilityResult(available=False, error=f"HTTP {resp.status_code}")

    async def get_current_user(self) -> GitLabUser:
        return self._parse(GitLabUser, await self._get("/user"), "/user")

    async def get_merge_requests(self, project_id: str, state: str = "opened") -> list[MergeRequest]:
        endpoint = f"/projects/{self._project(project_id)}/merge_requests"
        data = await self._get(
            endpoint,
            params={"state": state, "order_by": "updated_at", "sort": "desc", "per_page": 20},
        )
        return self._parse_list(MergeRequest, data, endpoint)

    async def get_merge_request_participants(self, project_id: str, mr_iid: int) -> list[GitLabUser]:
        endpoint = f"/projects/{self._project(project_id)}/merge_requests/{mr_iid}/participants"
        return self._parse_list(GitLabUser, await self._get(endpoint), endpoint)

    async def get_merge_request_notes(self, project_id: str, mr_iid: int) -> list[Note]:
        endpoint = f"/projects/{self._project(project_id)}/merge_requests/{mr_iid}/notes"
        data = await self._get(
            endpoint,
            params={"order_by": "created_at", "sort": "desc", "per_page": 50},
        )
        return self._parse_list(Note, data, endpoint)

    async def get_pipelines(self, project_id: str, per_page: int = 20) -> list[Pipeline]:
        endpoint = f"/projects/{self._project(project_id)}/pipelines"
        try:
            data = await self._get(
                endpoint,
                params={"order_by": "updated_at", "sort": "desc", "per_page": per_page},
            )
        except SourceAPIError as exc:
            if exc.status_code == 403:
                logger.warning(
                    "No access to pipelines of project %s; the token may need the 'api' scope",
                    project_id,
                )
            raise
        return self._parse_list(Pipeline, data, endpoint)

    async def close(self) -> None:
        await self._client.aclose()
