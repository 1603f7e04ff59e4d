"""
Identifier generation for chats, messages and versions.

Format: ``<prefix>_<milliseconds since epoch>_<9 base36 chars>``. The
timestamp keeps ids sortable by creation time; the suffix comes from
``secrets`` (about 46 bits) so ids minted in the same millisecond do not
collide.
"""

from datetime import datetime, timezone
import secrets

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
SUFFIX_LENGTH = 9


def _random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_id(prefix: str) -> str:
    timestamp_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"{prefix}_{timestamp_ms}_{_random_suffix()}"


def generate_chat_id() -> str:
    return generate_id("chat")


def generate_message_id() -> str:
    return generate_id("msg")


def generate_version_id() -> str:
    return generate_id("version")
