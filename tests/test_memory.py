"""Tests for the memory client and best-effort memory sync."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from conversai.services.memory import MemoryClient, MemoryService


def _memory_client(handler) -> MemoryClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MemoryClient(http_client, api_key="secret", base_url="https://mem.example/")


@pytest.mark.asyncio
async def test_client_add_posts_messages() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "m1", "event": "ADD"}])

    client = _memory_client(handler)
    await client.add([{"role": "user", "content": "I like tea"}], user_id="u1")

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://mem.example/v1/memories/"
    assert request.headers["Authorization"] == "Token secret"
    assert json.loads(request.content) == {
        "messages": [{"role": "user", "content": "I like tea"}],
        "user_id": "u1",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        [{"id": "m1", "memory": "likes tea"}],
        {"results": [{"id": "m1", "memory": "likes tea"}]},
    ],
)
async def test_client_get_all_handles_both_shapes(payload: object) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["user_id"] == "u1"
        return httpx.Response(200, json=payload)

    records = await _memory_client(handler).get_all("u1")
    assert records == [{"id": "m1", "memory": "likes tea"}]


@pytest.mark.asyncio
async def test_client_delete_raises_on_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/memories/m1/"
        return httpx.Response(404, json={"detail": "not found"})

    with pytest.raises(httpx.HTTPStatusError):
        await _memory_client(handler).delete("m1")


@pytest.mark.asyncio
async def test_sync_flattens_messages() -> None:
    client = AsyncMock()
    service = MemoryService(client)
    messages = [
        {"role": "user", "content": [
            {"type": "text", "text": "Summarize this"},
            {"type": "file", "data": [1], "mimeType": "application/pdf", "name": "q3.pdf"},
        ]},
        {"role": "assistant", "content": "  "},
        {"role": "assistant", "content": "Here is the summary"},
    ]

    await service.sync_to_memory("u1", messages)

    client.add.assert_awaited_once_with(
        [
            {"role": "user", "content": "Summarize this\n[file attached: q3.pdf]"},
            {"role": "assistant", "content": "Here is the summary"},
        ],
        user_id="u1",
    )


@pytest.mark.asyncio
async def test_sync_skips_empty_batch() -> None:
    client = AsyncMock()
    await MemoryService(client).sync_to_memory("u1", [{"role": "user", "content": ""}])
    client.add.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_swallows_errors() -> None:
    client = AsyncMock()
    client.add.side_effect = httpx.ConnectError("down")
    await MemoryService(client).sync_to_memory("u1", [{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_fetch_memory_context_joins_memories() -> None:
    client = AsyncMock()
    client.get_all.return_value = [{"id": "1", "memory": "likes tea"}, {"id": "2", "memory": "lives in Porto"}]
    assert await MemoryService(client).fetch_memory_context("u1") == "likes tea\nlives in Porto"


@pytest.mark.asyncio
async def test_fetch_memory_context_empty_on_error() -> None:
    client = AsyncMock()
    client.get_all.side_effect = httpx.ReadTimeout("slow")
    assert await MemoryService(client).fetch_memory_context("u1") == ""


@pytest.mark.asyncio
async def test_disabled_service_is_inert() -> None:
    service = MemoryService(None)
    assert not service.is_configured()
    await service.sync_to_memory("u1", [{"role": "user", "content": "hi"}])
    assert await service.fetch_memory_context("u1") == ""
    assert await service.list_memories("u1") == []
