"""Tests for the webhook relay notification adapter."""

import json

import httpx
import pytest

from cuckoo.adapters.notification.webhook import WebhookNotifier

RELAY_URL = "http://relay.local/deliver"


@pytest.mark.asyncio
async def test_deliver_posts_json() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(204)

    notifier = WebhookNotifier(RELAY_URL, transport=httpx.MockTransport(handler))
    try:
        await notifier.deliver("libera", "#chan", "tea time")
    finally:
        await notifier.close()

    assert len(requests) == 1
    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == RELAY_URL
    assert json.loads(request.content) == {
        "connection": "libera",
        "target": "#chan",
        "text": "tea time",
    }
    assert "authorization" not in request.headers


@pytest.mark.asyncio
async def test_bearer_token_sent() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("authorization", ""))
        return httpx.Response(200)

    notifier = WebhookNotifier(
        RELAY_URL, token="s3cret", transport=httpx.MockTransport(handler)
    )
    try:
        await notifier.deliver("libera", "bob", "hi")
    finally:
        await notifier.close()

    assert seen == ["Bearer s3cret"]


@pytest.mark.asyncio
async def test_rejected_delivery_raises() -> None:
    notifier = WebhookNotifier(
        RELAY_URL,
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="down")),
    )
    try:
        with pytest.raises(httpx.HTTPStatusError):
            await notifier.deliver("libera", "#chan", "x")
    finally:
        await notifier.close()


@pytest.mark.asyncio
async def test_unreachable_relay_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    notifier = WebhookNotifier(RELAY_URL, transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(httpx.RequestError):
            await notifier.deliver("libera", "#chan", "x")
    finally:
        await notifier.close()


@pytest.mark.asyncio
async def test_client_reused_and_closed() -> None:
    notifier = WebhookNotifier(
        RELAY_URL, transport=httpx.MockTransport(lambda request: httpx.Response(200))
    )

    await notifier.deliver("libera", "#chan", "one")
    client = notifier._client
    await notifier.deliver("libera", "#chan", "two")

    assert notifier._client is client
    await notifier.close()
    assert notifier._client is None
    await notifier.close()
