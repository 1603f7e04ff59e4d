"""
Streaming client for the Google Gemini ``streamGenerateContent`` REST API.

Takes provider messages as built by ``conversai.services.context`` (role plus
text or text/file segments) and yields the reply text chunk by chunk.
"""

from typing import Any, AsyncIterator, Dict, List, Optional
import asyncio
import base64
import json
import httpx
from conversai.core.config import Settings
from conversai.core.exceptions import UpstreamError
import logging

logger = logging.getLogger(__name__)

SYSTEM_PREAMBLE = (
    "You are ConversAI, a helpful and knowledgeable assistant. "
    "Answer clearly and concisely, use Markdown when it helps readability, "
    "and say so when you are not sure about something."
)


class LLMClient:
    """Service for streaming chat completions from the LLM provider"""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str],
        model: str,
        base_url: str,
        max_output_tokens: int = 4096,
        temperature: Optional[float] = None,
        timeout_seconds: float = 30.0
    ):
        self.http_client = http_client
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

        if not api_key:
            logger.warning("GOOGLE_GENERATIVE_AI_API_KEY not configured. Chat replies will fail.")

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> "LLMClient":
        return cls(
            http_client,
            api_key=settings.GOOGLE_GENERATIVE_AI_API_KEY,
            model=settings.LLM_MODEL,
            base_url=settings.LLM_BASE_URL,
            max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
            timeout_seconds=settings.LLM_TIMEOUT_SECONDS
        )

    @staticmethod
    def _to_parts(content: Any) -> List[Dict[str, Any]]:
        if isinstance(content, str):
            return [{"text": content}]

        parts = []
        for segment in content:
            if segment["type"] == "text":
                parts.append({"text": segment["text"]})
            elif segment["type"] == "file":
                parts.append({
                    "inlineData": {
                        "mimeType": segment.get("mime_type") or "application/octet-stream",
                        "data": base64.b64encode(segment["data"]).decode("ascii")
                    }
                })
            else:
                raise ValueError(f"Unknown content segment type: {segment['type']}")
        return parts

    def build_payload(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Translate provider messages into a Gemini request body.

        System messages are folded into the system instruction after the
        fixed preamble; assistant turns use Gemini's ``model`` role.
        """
        system_texts = [SYSTEM_PREAMBLE]
        contents = []
        for message in messages:
            if message["role"] == "system":
                content = message["content"]
                system_texts.append(content if isinstance(content, str) else " ".join(
                    segment.get("text", "") for segment in content if segment["type"] == "text"
                ))
                continue
            contents.append({
                "role": "model" if message["role"] == "assistant" else "user",
                "parts": self._to_parts(message["content"])
            })

        generation_config: Dict[str, Any] = {"maxOutputTokens": self.max_output_tokens}
        if self.temperature is not None:
            generation_config["temperature"] = self.temperature

        return {
            "systemInstruction": {"parts": [{"text": "\n\n".join(system_texts)}]},
            "contents": contents,
            "generationConfig": generation_config
        }

    @staticmethod
    def _extract_text(event: Dict[str, Any]) -> str:
        texts = []
        for candidate in event.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                if part.get("text"):
                    texts.append(part["text"])
        return "".join(texts)

    async def stream_text(self, messages: List[Dict[str, Any]]) -> AsyncIterator[str]:
        """
        Stream the model's reply as text chunks.

        The whole reply must arrive within ``timeout_seconds``.

        Raises:
            UpstreamError: the request failed, the provider answered with an
                error, or the time budget ran out
        """
        url = f"{self.base_url}/models/{self.model}:streamGenerateContent"
        payload = self.build_payload(messages)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds

        try:
            async with self.http_client.stream(
                "POST",
                url,
                params={"alt": "sse"},
                headers={"x-goog-api-key": self.api_key or ""},
                json=payload,
                timeout=self.timeout_seconds
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise UpstreamError(f"LLM provider returned {response.status_code}: {body[:200]}")

                lines = response.aiter_lines()
                while True:
                    # Each read may only wait for what is left of the total budget
                    remaining = deadline - loop.time()
                    try:
                        if remaining <= 0:
                            raise asyncio.TimeoutError()
                        line = await asyncio.wait_for(lines.__anext__(), remaining)
                    except StopAsyncIteration:
                        break
                    except asyncio.TimeoutError:
                        raise UpstreamError(f"LLM reply exceeded {self.timeout_seconds}s") from None

                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data or data == "[DONE]":
                        continue

                    event = json.loads(data)
                    if "error" in event:
                        raise UpstreamError(f"LLM provider error: {event['error']}")
                    text = self._extract_text(event)
                    if text:
                        yield text

        except httpx.HTTPError as e:
            logger.error(f"HTTP error streaming from LLM provider: {e}")
            raise UpstreamError(f"Failed to reach LLM provider: {e}") from e
        except json.JSONDecodeError as e:
            logger.error(f"Malformed event from LLM provider: {e}")
            raise UpstreamError("Malformed response from LLM provider") from e
