"""
Context window assembly.

Merges the stored conversation with the messages a client sent, prunes empty
messages, keeps the most recent suffix that fits the token budget and turns
the result into the provider payload, optionally prefixed by the user's
long-term memory.
"""

from typing import Any, List, Optional
import math
from pydantic import ValidationError
from conversai.models.chat import MessageRole
from conversai.services.content import content_length, is_non_empty, normalize, same_content
import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 128000
FILE_TOKEN_WEIGHT = 1000
MEMORY_CONTEXT_PREFIX = "User memory/context:\n"

PROVIDER_ROLES = {MessageRole.USER.value, MessageRole.ASSISTANT.value, MessageRole.SYSTEM.value}


def estimate_tokens(content: Any) -> int:
    """
    Approximate token count: ceil(characters / 4) over the text, plus a flat
    FILE_TOKEN_WEIGHT per attached file. Unreadable content counts as zero.
    """
    try:
        characters, file_count = content_length(content)
    except (TypeError, ValidationError):
        return 0
    return math.ceil(characters / 4) + file_count * FILE_TOKEN_WEIGHT


def trim_to_token_limit(messages: List[dict], max_tokens: Optional[float] = DEFAULT_MAX_TOKENS) -> List[dict]:
    """
    Return the longest suffix of ``messages`` whose estimated size fits
    ``max_tokens``. The walk stops at the first message that would overflow,
    so an oversized trailing message yields an empty window.
    """
    if max_tokens is None:
        return list(messages)

    total = 0
    trimmed: List[dict] = []
    for message in reversed(messages):
        tokens = estimate_tokens(message.get("content"))
        if total + tokens > max_tokens:
            break
        total += tokens
        trimmed.append(message)

    trimmed.reverse()
    return trimmed


def _same_message(stored: dict, incoming: dict) -> bool:
    return stored.get("role") == incoming.get("role") and same_content(stored.get("content"), incoming.get("content"))


def merge_history(stored: List[dict], incoming: List[dict]) -> List[dict]:
    """
    Append the client's in-flight messages to the stored history without
    repeating the overlap.

    Clients resend the conversation they have on screen, so the longest
    prefix of ``incoming`` that matches the tail of ``stored`` is dropped.
    """
    overlap = 0
    for size in range(min(len(stored), len(incoming)), 0, -1):
        tail = stored[len(stored) - size:]
        if all(_same_message(s, i) for s, i in zip(tail, incoming[:size])):
            overlap = size
            break
    return list(stored) + list(incoming[overlap:])


def memory_system_message(memory_context: str) -> dict:
    return {"role": MessageRole.SYSTEM.value, "content": f"{MEMORY_CONTEXT_PREFIX}{memory_context}"}


def is_valid_message(message: dict) -> bool:
    """A user, assistant or system message that passes the emptiness filter"""
    return message.get("role") in PROVIDER_ROLES and is_non_empty(message)


def to_provider_messages(messages: List[dict]) -> List[dict]:
    """Keep valid, non-empty messages and normalize their content for the provider"""
    provider_messages = []
    for message in messages:
        if not is_valid_message(message):
            continue
        try:
            content = normalize(message.get("content")).provider_content
        except (TypeError, ValidationError) as e:
            logger.warning(f"Skipping {message.get('role')} message with unreadable content: {e}")
            continue
        provider_messages.append({"role": message["role"], "content": content})
    return provider_messages


def build_context_window(
    stored: List[dict],
    incoming: List[dict],
    max_tokens: Optional[float] = DEFAULT_MAX_TOKENS
) -> List[dict]:
    """Merged, role-filtered, pruned and budget-trimmed conversation (still in stored form)"""
    # Invalid messages are never stored, so they are dropped before matching the overlap
    valid_stored = [message for message in stored if is_valid_message(message)]
    valid_incoming = [message for message in incoming if is_valid_message(message)]
    return trim_to_token_limit(merge_history(valid_stored, valid_incoming), max_tokens)
