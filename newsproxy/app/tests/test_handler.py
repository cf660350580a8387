"""
Unit Tests for the Invocation Entry Point
=========================================

Tests for newsproxy/app/handler.py

Test Coverage:
--------------
1. Response contract: 405, 500, 400, 200, 502
2. No outbound call before validation passes
3. Settings (max retries, backoff) flow into the dispatcher
4. Unexpected errors never escape the entry point

Run tests:
----------
    pytest newsproxy/app/tests/test_handler.py -v
"""

import json
import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from newsproxy.app.config import Settings
from newsproxy.app.handler import INTERNAL_ERROR, handle_invocation
from newsproxy.app.models import InvocationRequest


API_KEY = "handler-test-key-abcdef"

GEMINI_BODY = {
    "candidates": [{"content": {"parts": [{"text": "Summary."}], "role": "model"}}],
}


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    return Settings(GEMINI_API_KEY=API_KEY, MAX_RETRIES=3, BACKOFF_BASE_SECONDS=1.0)


@pytest.fixture
def settings_without_key():
    return Settings(GEMINI_API_KEY=None)


@pytest.fixture
def mock_client():
    client = AsyncMock()
    client.post = AsyncMock(return_value=httpx.Response(200, json=GEMINI_BODY))
    return client


@pytest.fixture
def sleep():
    return RecordingSleep()


def post(body) -> InvocationRequest:
    return InvocationRequest(method="POST", body=json.dumps(body))


# ============================================================================
# Rejection Tests
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "PATCH", "HEAD"])
async def test_non_post_returns_405(method, settings, mock_client):
    result = await handle_invocation(
        InvocationRequest(method=method, body='{"type": "fetch"}'), settings, mock_client
    )

    assert result.status_code == 405
    assert "error" in result.body
    assert result.headers["Allow"] == "POST"
    mock_client.post.assert_not_called()


@pytest.mark.asyncio
async def test_non_post_wins_over_missing_credential(settings_without_key, mock_client):
    result = await handle_invocation(InvocationRequest(method="GET"), settings_without_key, mock_client)

    assert result.status_code == 405


@pytest.mark.asyncio
@pytest.mark.parametrize("api_key", [None, "", "   "])
async def test_missing_credential_returns_500(api_key, mock_client):
    """Test that a missing key is rejected before any network attempt"""
    result = await handle_invocation(
        post({"type": "fetch"}), Settings(GEMINI_API_KEY=api_key), mock_client
    )

    assert result.status_code == 500
    assert result.body == {"error": "API Key is not configured on the server."}
    mock_client.post.assert_not_called()


@pytest.mark.asyncio
async def test_unparseable_body_returns_400(settings, mock_client):
    result = await handle_invocation(
        InvocationRequest(method="POST", body="{'type': fetch"), settings, mock_client
    )

    assert result.status_code == 400
    assert "error" in result.body
    mock_client.post.assert_not_called()


@pytest.mark.asyncio
async def test_invalid_type_returns_400(settings, mock_client):
    result = await handle_invocation(post({"type": "headlines"}), settings, mock_client)

    assert result.status_code == 400
    assert result.body == {"error": "Invalid API type specified."}
    mock_client.post.assert_not_called()


# ============================================================================
# Dispatch Tests
# ============================================================================

@pytest.mark.asyncio
async def test_fetch_success_returns_upstream_body(settings, mock_client, sleep):
    result = await handle_invocation(post({"type": "fetch"}), settings, mock_client, sleep=sleep)

    assert result.status_code == 200
    assert result.body == GEMINI_BODY

    call_args = mock_client.post.call_args
    assert call_args.args[0].endswith(f":generateContent?key={API_KEY}")
    assert call_args.kwargs["json"]["tools"] == [{"google_search": {}}]


@pytest.mark.asyncio
async def test_summarize_sends_text_verbatim(settings, mock_client, sleep):
    text = "Oil fell 3% as inventories rose."
    result = await handle_invocation(
        post({"type": "summarize", "textToSummarize": text}), settings, mock_client, sleep=sleep
    )

    assert result.status_code == 200
    sent = mock_client.post.call_args.kwargs["json"]
    assert sent["contents"] == [{"parts": [{"text": text}]}]
    assert "tools" not in sent


@pytest.mark.asyncio
async def test_retries_follow_settings(mock_client, sleep):
    settings = Settings(GEMINI_API_KEY=API_KEY, MAX_RETRIES=4, BACKOFF_BASE_SECONDS=0.5)
    mock_client.post = AsyncMock(return_value=httpx.Response(500, json={"error": {"message": "boom"}}))

    result = await handle_invocation(post({"type": "fetch"}), settings, mock_client, sleep=sleep)

    assert result.status_code == 502
    assert set(result.body) == {"error", "details"}
    assert mock_client.post.await_count == 4
    assert sleep.delays == [0.5, 1.0, 2.0]
    assert API_KEY not in json.dumps(result.body)


@pytest.mark.asyncio
async def test_forward_status_policy_from_settings(mock_client, sleep):
    settings = Settings(GEMINI_API_KEY=API_KEY, RETRY_POLICY="forward_status")
    mock_client.post = AsyncMock(return_value=httpx.Response(400, json={"error": {"message": "bad"}}))

    result = await handle_invocation(post({"type": "fetch"}), settings, mock_client, sleep=sleep)

    assert result.status_code == 400
    assert mock_client.post.await_count == 1


@pytest.mark.asyncio
async def test_unexpected_error_returns_500(settings, mock_client):
    """Test that an unexpected failure is converted instead of raised"""
    with patch("newsproxy.app.handler.translate", side_effect=RuntimeError("kaboom")):
        result = await handle_invocation(post({"type": "fetch"}), settings, mock_client)

    assert result.status_code == 500
    assert result.body == {"error": INTERNAL_ERROR}
    assert "kaboom" not in json.dumps(result.body)


# ============================================================================
# Credential Logging Tests
# ============================================================================

@pytest.mark.asyncio
async def test_credential_absent_from_all_log_records(caplog, sleep):
    """Test that a real httpx client logs the request URL with the key masked"""
    attempts = []

    def upstream(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            return httpx.Response(503, json={"error": {"message": "overloaded"}})
        return httpx.Response(200, json=GEMINI_BODY)

    settings = Settings(GEMINI_API_KEY=API_KEY)

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        with caplog.at_level(logging.DEBUG), caplog.at_level(logging.DEBUG, logger="httpx"):
            result = await handle_invocation(post({"type": "fetch"}), settings, client, sleep=sleep)

    assert result.status_code == 200
    assert attempts[0].url.params["key"] == API_KEY

    httpx_records = [
        record for record in caplog.records
        if record.name == "httpx" and record.getMessage().startswith("HTTP Request")
    ]
    assert len(httpx_records) == 2
    assert all("key=***" in record.getMessage() for record in httpx_records)

    for record in caplog.records:
        assert API_KEY not in record.getMessage()
    assert API_KEY not in caplog.text
