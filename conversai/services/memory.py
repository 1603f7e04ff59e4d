"""
Long-term memory via the mem0 platform API.

``MemoryClient`` is a thin async wrapper over the REST endpoints;
``MemoryService`` adds the chat-flow semantics: writes and context reads are
best effort and never interrupt a chat turn.
"""

from typing import Any, Dict, List, Optional
import httpx
from conversai.core.config import Settings
from conversai.services.content import digest
import logging

logger = logging.getLogger(__name__)


class MemoryClient:
    """Client for the managed memory service (mem0 v1 REST API)"""

    def __init__(self, http_client: httpx.AsyncClient, api_key: str, base_url: str, timeout: float = 10.0):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Authorization": f"Token {api_key}"}

    async def add(self, messages: List[Dict[str, str]], user_id: str) -> Any:
        response = await self.http_client.post(
            f"{self.base_url}/v1/memories/",
            json={"messages": messages, "user_id": user_id},
            headers=self._headers,
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    async def get_all(self, user_id: str) -> List[Dict[str, Any]]:
        response = await self.http_client.get(
            f"{self.base_url}/v1/memories/",
            params={"user_id": user_id},
            headers=self._headers,
            timeout=self.timeout
        )
        response.raise_for_status()
        data = response.json()

        # Paginated responses wrap the records in "results"
        if isinstance(data, dict):
            data = data.get("results", [])
        return data or []

    async def delete(self, memory_id: str) -> None:
        response = await self.http_client.delete(
            f"{self.base_url}/v1/memories/{memory_id}/",
            headers=self._headers,
            timeout=self.timeout
        )
        response.raise_for_status()


class MemoryService:
    """Reads and writes a user's long-term memory around chat turns"""

    def __init__(self, client: Optional[MemoryClient] = None):
        self.client = client
        if client is None:
            logger.warning("MEM0_API_KEY not configured. Long-term memory will be disabled.")

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> "MemoryService":
        if not settings.MEMORY_ENABLED:
            return cls(None)
        return cls(MemoryClient(
            http_client,
            api_key=settings.MEM0_API_KEY,
            base_url=settings.MEM0_BASE_URL,
            timeout=settings.MEM0_TIMEOUT_SECONDS
        ))

    def is_configured(self) -> bool:
        return self.client is not None

    @staticmethod
    def to_memory_messages(messages: List[dict]) -> List[Dict[str, str]]:
        """Flatten messages to ``{role, content}`` text pairs, dropping blanks"""
        memory_messages = []
        for message in messages:
            try:
                text = digest(message.get("content"))
            except Exception as e:
                logger.warning(f"Skipping unreadable message for memory sync: {e}")
                continue
            if text.strip():
                memory_messages.append({"role": message.get("role"), "content": text})
        return memory_messages

    async def sync_to_memory(self, user_id: str, messages: List[dict]) -> None:
        """Submit the conversation to memory. Failures are logged, never raised."""
        if not self.is_configured():
            return

        memory_messages = self.to_memory_messages(messages)
        if not memory_messages:
            return

        try:
            await self.client.add(memory_messages, user_id=user_id)
            logger.info(f"Saved {len(memory_messages)} messages to memory for user {user_id}")
        except Exception as e:
            logger.error(f"Error saving to memory for user {user_id}: {e}")

    async def fetch_memory_context(self, user_id: str) -> str:
        """All of a user's memories joined by newline; empty string on none or on error"""
        if not self.is_configured():
            return ""

        try:
            records = await self.client.get_all(user_id=user_id)
        except Exception as e:
            logger.error(f"Error fetching memory context for user {user_id}: {e}")
            return ""

        memories = [record.get("memory") for record in records if isinstance(record, dict)]
        return "\n".join(memory for memory in memories if memory)

    async def list_memories(self, user_id: str) -> List[Dict[str, Any]]:
        """Raw memory records for the memories endpoint (errors propagate)"""
        if not self.is_configured():
            return []
        return await self.client.get_all(user_id=user_id)

    async def delete_memory(self, memory_id: str) -> None:
        """Delete a memory record by id (errors propagate)"""
        if not self.is_configured():
            raise RuntimeError("Memory service is not configured")
        await self.client.delete(memory_id)
