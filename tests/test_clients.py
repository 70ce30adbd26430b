"""Tests for the GitLab and Telegram clients against a mocked transport."""

import json

import httpx
import pytest

from src.clients.gitlab_client import GitLabClient
from src.clients.telegram_client import TelegramClient
from src.errors import SinkAPIError, SourceAPIError


def _gitlab(handler) -> GitLabClient:
    client = GitLabClient("https://gitlab.example.com/", "glpat-token")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


def _telegram(handler) -> TelegramClient:
    client = TelegramClient("123:abc", "-100")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


async def test_availability_ok():
    def handler(request):
        assert request.url.path == "/api/v4/version"
        assert request.headers["PRIVATE-TOKEN"] == "glpat-token"
        return httpx.Response(200, json={"version": "17.0.0"})

    result = await _gitlab(handler).check_availability()

    assert result.available is True
    assert result.error is None


async def test_availability_reports_http_status():
    result = await _gitlab(lambda request: httpx.Response(502)).check_availability()

    assert result.available is False
    assert result.error == "HTTP 502"


async def test_availability_reports_timeout_distinctly():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    result = await _gitlab(handler).check_availability()

    assert result.available is False
    assert result.error.startswith("timeout")


async def test_availability_reports_transport_error():
    def handler(request):
        raise httpx.ConnectError("Name or service not known", request=request)

    result = await _gitlab(handler).check_availability()

    assert result.available is False
    assert result.error == "Name or service not known"


async def test_merge_requests_are_requested_first_page_by_update_time():
    seen = {}

    def handler(request):
        seen["path"] = request.url.raw_path.decode().split("?")[0]
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[{
            "id": 1, "iid": 4, "title": "Fix", "author": {"username": "bob", "name": "Bob"},
            "reviewers": [{"username": "alice", "name": "Alice"}],
        }])

    mrs = await _gitlab(handler).get_merge_requests("team/app")

    assert seen["path"] == "/api/v4/projects/team%2Fapp/merge_requests"
    assert seen["params"]["state"] == "opened"
    assert seen["params"]["order_by"] == "updated_at"
    assert seen["params"]["sort"] == "desc"
    assert mrs[0].iid == 4
    assert mrs[0].reviewers[0].username == "alice"


async def test_listing_error_raises_source_api_error():
    client = _gitlab(lambda request: httpx.Response(500))

    with pytest.raises(SourceAPIError) as excinfo:
        await client.get_pipelines("42")

    assert excinfo.value.status_code == 500


async def test_login_page_served_as_200_raises_source_api_error():
    def handler(request):
        return httpx.Response(200, text="<html>Sign in</html>", headers={"content-type": "text/html"})

    with pytest.raises(SourceAPIError, match="non-JSON"):
        await _gitlab(handler).get_merge_request_notes("42", 4)


async def test_malformed_payload_raises_source_api_error():
    def handler(request):
        return httpx.Response(200, json=[{"id": 9, "body": "hi"}])

    with pytest.raises(SourceAPIError, match="Unexpected GitLab payload"):
        await _gitlab(handler).get_merge_request_notes("42", 4)


async def test_error_object_instead_of_list_raises_source_api_error():
    client = _gitlab(lambda request: httpx.Response(200, json={"message": "404 Project Not Found"}))

    with pytest.raises(SourceAPIError, match="expected a list"):
        await client.get_pipelines("42")


async def test_availability_never_raises_on_invalid_url():
    def handler(request):
        raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")

    result = await _gitlab(handler).check_availability()

    assert result.available is False
    assert result.error == "Invalid non-printable ASCII character in URL"


async def test_notes_are_parsed():
    def handler(request):
        assert request.url.params["order_by"] == "created_at"
        return httpx.Response(200, json=[{
            "id": 9, "body": "hi", "author": {"username": "carol", "name": "Carol"},
            "created_at": "2026-03-10T11:00:00.000Z", "system": False,
        }])

    notes = await _gitlab(handler).get_merge_request_notes("42", 4)

    assert notes[0].id == 9
    assert notes[0].created_at.tzinfo is not None


async def test_telegram_send_message_payload():
    sent = {}

    def handler(request):
        sent["url"] = str(request.url)
        sent["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 3}})

    result = await _telegram(handler).send_message("<b>hi</b>")

    assert sent["url"] == "https://api.telegram.org/bot123:abc/sendMessage"
    assert sent["body"]["chat_id"] == "-100"
    assert sent["body"]["parse_mode"] == "HTML"
    assert sent["body"]["disable_web_page_preview"] is True
    assert result == {"message_id": 3}


async def test_telegram_error_raises_sink_api_error():
    def handler(request):
        return httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})

    with pytest.raises(SinkAPIError, match="chat not found"):
        await _telegram(handler).send_message("hi")


def test_clients_require_credentials():
    with pytest.raises(RuntimeError):
        GitLabClient("", "token")
    with pytest.raises(RuntimeError):
        TelegramClient("token", "")
