"""
One chat turn from request to persisted assistant reply.

``ChatStreamOrchestrator.start_turn`` saves the incoming user message,
assembles the context window and opens the model stream. The returned
``ChatTurnStream`` relays chunks to the client while accumulating them, and
``persist`` stores the reply once the client has received all of it.

Turn states::

    IDLE -> REQUESTING -> STREAMING -> COMPLETED
                 |             |-----> CANCELLED (client went away)
                 +-------------+-----> FAILED
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional
import asyncio
from pydantic import ValidationError
from conversai.core.exceptions import UpstreamError
from conversai.models.chat import Message, MessageRole
from conversai.services.chat import ChatService
from conversai.services.context import (
    DEFAULT_MAX_TOKENS,
    build_context_window,
    memory_system_message,
    to_provider_messages
)
from conversai.services.llm import LLMClient
from conversai.services.memory import MemoryService
import logging

logger = logging.getLogger(__name__)

GREETING = "Hello! I'm here to help. How can I assist you today?"
APOLOGY = "Sorry, I'm having trouble connecting to my AI service right now. Please try again later."


class TurnState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ChatTurnStream:
    """Relays one model reply to the client and persists it exactly once"""

    def __init__(
        self,
        chunks: AsyncIterator[str],
        chat_service: ChatService,
        user_id: str,
        chat_id: str
    ):
        self._chunks = chunks
        self._first_chunk: Optional[str] = None
        self._persisted = False
        self.chat_service = chat_service
        self.user_id = user_id
        self.chat_id = chat_id
        self.state = TurnState.IDLE
        self.text = ""

    async def prepare(self) -> None:
        """
        Start the upstream request and wait for the first chunk, so a failing
        provider can still be answered with a plain error response.

        Raises:
            UpstreamError: the provider failed before sending anything
        """
        self.state = TurnState.REQUESTING
        try:
            self._first_chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            self._first_chunk = None
        except Exception as e:
            self.state = TurnState.FAILED
            logger.error(f"Error calling LLM provider for chat {self.chat_id}: {e}")
            await self._close_upstream()
            if isinstance(e, UpstreamError):
                raise
            raise UpstreamError(str(e)) from e
        self.state = TurnState.STREAMING

    async def _close_upstream(self) -> None:
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()

    async def relay(self) -> AsyncIterator[bytes]:
        """Yield the reply as UTF-8 byte chunks while accumulating the text"""
        if self.state == TurnState.IDLE:
            await self.prepare()

        chunk_count = 0
        try:
            if self._first_chunk is not None:
                chunk_count += 1
                self.text += self._first_chunk
                yield self._first_chunk.encode("utf-8")

                async for chunk in self._chunks:
                    chunk_count += 1
                    self.text += chunk
                    yield chunk.encode("utf-8")

            self.state = TurnState.COMPLETED
            logger.info(f"Streaming completed for chat {self.chat_id} after {chunk_count} chunks")
        except (GeneratorExit, asyncio.CancelledError):
            self.state = TurnState.CANCELLED
            logger.info(f"Client disconnected from chat {self.chat_id} after {chunk_count} chunks, reply not saved")
            raise
        except Exception as e:
            self.state = TurnState.FAILED
            logger.error(f"Error in streaming for chat {self.chat_id}: {e}")
            raise
        finally:
            await self._close_upstream()

    async def persist(self) -> None:
        """
        Save the accumulated reply as an assistant message.

        Runs after the response has been closed. Only a completed stream is
        saved, and only once.
        """
        if self.state != TurnState.COMPLETED or self._persisted:
            return
        self._persisted = True

        if not self.text.strip():
            logger.warning(f"LLM returned an empty reply for chat {self.chat_id}, nothing saved")
            return

        try:
            await self.chat_service.save_message(
                self.user_id,
                self.chat_id,
                Message(role=MessageRole.ASSISTANT, content=self.text)
            )
            logger.info(f"Assistant message saved to chat {self.chat_id}")
        except Exception as e:
            logger.error(f"Error saving assistant message to chat {self.chat_id}: {e}")


@dataclass
class ChatTurn:
    chat_id: Optional[str]
    stream: Optional[ChatTurnStream] = None

    @property
    def is_empty(self) -> bool:
        return self.stream is None


class ChatStreamOrchestrator:
    """Assembles the context for a turn and starts the model stream"""

    def __init__(
        self,
        chat_service: ChatService,
        memory_service: MemoryService,
        llm_client: LLMClient,
        max_context_tokens: int = DEFAULT_MAX_TOKENS
    ):
        self.chat_service = chat_service
        self.memory_service = memory_service
        self.llm_client = llm_client
        self.max_context_tokens = max_context_tokens

    @staticmethod
    def _parse_message(raw: Dict[str, Any]) -> Optional[Message]:
        try:
            return Message.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Incoming message is not a valid chat message, not saving: {e}")
            return None

    async def start_turn(self, user_id: str, chat_id: Optional[str], messages: List[Dict[str, Any]]) -> ChatTurn:
        """
        Save the new user message, build the context window and open the
        model stream.

        Returns a turn without a stream when nothing meaningful is left to
        send, in which case the caller answers with ``GREETING``.
        """
        if messages:
            last_message = self._parse_message(messages[-1])
            if last_message is not None:
                chat_id = await self.chat_service.save_user_message_if_new(user_id, chat_id, last_message)

        history = await self.chat_service.get_history(user_id, chat_id) if chat_id else []
        stored = history[0].get("messages", []) if history else []

        window = build_context_window(stored, messages, self.max_context_tokens)
        logger.info(f"Context window for chat {chat_id}: {len(window)} of {len(stored) + len(messages)} messages")

        provider_messages = to_provider_messages(window)
        if not provider_messages:
            logger.info("No valid messages found, returning default response")
            return ChatTurn(chat_id=chat_id)

        _, memory_context = await asyncio.gather(
            self.memory_service.sync_to_memory(user_id, window),
            self.memory_service.fetch_memory_context(user_id)
        )
        if memory_context:
            provider_messages.insert(0, memory_system_message(memory_context))

        chunks = self.llm_client.stream_text(provider_messages)
        return ChatTurn(
            chat_id=chat_id,
            stream=ChatTurnStream(chunks, self.chat_service, user_id, chat_id)
        )
