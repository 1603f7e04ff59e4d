"""Shared test fixtures and configuration."""

from __future__ import annotations

from typing import Any, AsyncIterator

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from conversai.api import deps
from conversai.core.config import get_settings
from conversai.core.exceptions import UpstreamError
from conversai.main import app
from conversai.services.chat import ChatService
from conversai.services.memory import MemoryService
from conversai.services.storage import StorageService


class FakeLLM:
    """Scripted stand-in for LLMClient.stream_text."""

    def __init__(
        self,
        chunks: list[str] | None = None,
        fail_before_first: bool = False,
        fail_after: int | None = None,
    ) -> None:
        self.chunks = ["Hello", " there", "!"] if chunks is None else chunks
        self.fail_before_first = fail_before_first
        self.fail_after = fail_after
        self.calls: list[list[dict[str, Any]]] = []

    def stream_text(self, messages: list[dict[str, Any]]) -> AsyncIterator[str]:
        self.calls.append(messages)
        return self._stream()

    async def _stream(self) -> AsyncIterator[str]:
        if self.fail_before_first:
            raise UpstreamError("provider unavailable")
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise UpstreamError("connection reset")
            yield chunk


@pytest.fixture
def db() -> Any:
    """In-memory Motor database."""
    return AsyncMongoMockClient()["conversai_test"]


@pytest.fixture
def chat_service(db: Any) -> ChatService:
    return ChatService(db)


@pytest.fixture
def make_llm() -> type[FakeLLM]:
    """Build a scripted LLM with custom chunks or failures."""
    return FakeLLM


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def memory_service() -> MemoryService:
    """Memory service with no backing client (disabled)."""
    return MemoryService(None)


@pytest.fixture
def storage_service() -> StorageService:
    return StorageService(get_settings(), client=None)


@pytest.fixture
def client(
    db: Any,
    fake_llm: FakeLLM,
    memory_service: MemoryService,
    storage_service: StorageService,
) -> TestClient:
    """Test client with every external service replaced."""
    app.dependency_overrides[deps.get_database] = lambda: db
    app.dependency_overrides[deps.get_llm_client] = lambda: fake_llm
    app.dependency_overrides[deps.get_memory_service] = lambda: memory_service
    app.dependency_overrides[deps.get_storage_service] = lambda: storage_service
    yield TestClient(app)
    app.dependency_overrides.clear()
