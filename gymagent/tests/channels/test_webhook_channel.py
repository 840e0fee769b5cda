"""Tests for the webhook dispatch channel."""

import json

import httpx
import pytest

from gymagent.app import create_channel
from gymagent.channels import LoggingChannel, WebhookChannel

RELAY_URL = "http://relay.test/send"


def _channel(handler, max_retries: int = 2) -> WebhookChannel:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookChannel(RELAY_URL, max_retries=max_retries, retry_delay=0.0, http_client=client)


@pytest.mark.asyncio
async def test_send_posts_destination_and_text():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "msg-1"})

    channel = _channel(handler)
    result = await channel.send("sam@example.com", "See you Thursday!")
    await channel.close()

    assert result.ok
    assert result.external_id == "msg-1"
    assert str(requests[0].url) == RELAY_URL
    assert json.loads(requests[0].content) == {
        "destination": "sam@example.com",
        "text": "See you Thursday!",
    }


@pytest.mark.asyncio
async def test_send_without_response_body():
    channel = _channel(lambda request: httpx.Response(204))
    result = await channel.send("sam@example.com", "hi")
    assert result.ok
    assert result.external_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [500, 502, 503, 504])
async def test_transient_errors_are_retried(status):
    calls = [0]

    def handler(request: httpx.Request) -> httpx.Response:
        calls[0] += 1
        if calls[0] < 3:
            return httpx.Response(status, text="busy")
        return httpx.Response(200, json={"id": 7})

    result = await _channel(handler).send("sam@example.com", "hi")

    assert result.ok
    assert result.external_id == "7"
    assert calls[0] == 3


@pytest.mark.asyncio
async def test_retries_exhausted():
    calls = [0]

    def handler(request: httpx.Request) -> httpx.Response:
        calls[0] += 1
        return httpx.Response(429, text="slow down")

    result = await _channel(handler, max_retries=1).send("sam@example.com", "hi")

    assert not result.ok
    assert result.error == "HTTP 429"
    assert calls[0] == 2


@pytest.mark.asyncio
async def test_client_errors_fail_immediately():
    calls = [0]

    def handler(request: httpx.Request) -> httpx.Response:
        calls[0] += 1
        return httpx.Response(400, text="bad destination")

    result = await _channel(handler).send("nowhere", "hi")

    assert not result.ok
    assert result.error == "HTTP 400"
    assert calls[0] == 1


@pytest.mark.asyncio
async def test_connection_errors_are_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _channel(handler).send("sam@example.com", "hi")

    assert not result.ok
    assert result.error == "connection refused"


@pytest.mark.asyncio
async def test_logging_channel_always_succeeds():
    result = await LoggingChannel().send("sam@example.com", "hi")
    assert result.ok


def test_create_channel(make_config):
    assert isinstance(create_channel(make_config()), LoggingChannel)
    assert isinstance(
        create_channel(make_config(dispatch_webhook_url=RELAY_URL)), WebhookChannel
    )
