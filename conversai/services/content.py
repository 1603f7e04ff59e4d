"""
Message content normalization.

Content is either plain text or an ordered list of text/file parts. Every
helper here coerces its input through ``coerce_content`` first, so the rest of
the code only ever branches on ``str`` versus a list of validated parts.
"""

from dataclasses import dataclass
from typing import Any, List, Union
from pydantic import TypeAdapter, ValidationError
from conversai.models.chat import ContentPart, FilePart, MessageContent, TextPart, drop_unknown_parts

TEXT_JOIN = "\n"
FILE_ONLY_PROMPT = "Please analyze the attached file(s)."
TITLE_MAX_LENGTH = 50
PREVIEW_MAX_LENGTH = 20
ELLIPSIS = "..."

_parts_adapter = TypeAdapter(List[ContentPart])


@dataclass(frozen=True)
class NormalizedContent:
    display_text: str
    # str, or [{"type": "text", ...}, {"type": "file", ...}, ...] when files are attached
    provider_content: Union[str, List[dict]]


def coerce_content(content: Any) -> MessageContent:
    """
    Turn raw content (as stored in MongoDB or received from a client) into
    ``str`` or a list of ``TextPart``/``FilePart``. Parts of any other type
    are skipped.

    Raises:
        TypeError: content is neither text nor a list of parts
        ValidationError: a text or file part is malformed
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        return _parts_adapter.validate_python(drop_unknown_parts(content))
    raise TypeError(f"Unsupported message content type: {type(content).__name__}")


def _split_parts(parts: List[ContentPart]) -> tuple[List[TextPart], List[FilePart]]:
    texts = [part for part in parts if isinstance(part, TextPart)]
    files = [part for part in parts if isinstance(part, FilePart)]
    return texts, files


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def has_content(content: Any) -> bool:
    """
    True when content carries non-blank text or at least one file part.

    Parts are looked at one by one, so a part of an unknown type or a text
    part without text does not hide the rest of the message.
    """
    if not content:
        return False
    if isinstance(content, str):
        return content.strip() != ""
    if not isinstance(content, (list, tuple)):
        return False

    for part in content:
        part_type = _field(part, "type")
        if part_type == "file":
            return True
        if part_type == "text":
            text = _field(part, "text")
            if isinstance(text, str) and text.strip():
                return True
    return False


def is_non_empty(message: Any) -> bool:
    """Emptiness filter applied to a stored dict or a ``Message`` model"""
    return has_content(_field(message, "content"))


def prune_empty(messages: List[Any]) -> List[Any]:
    return [message for message in messages if is_non_empty(message)]


def display_text(content: Any) -> str:
    """Text parts only, joined by newline"""
    content = coerce_content(content)
    if isinstance(content, str):
        return content
    texts, _ = _split_parts(content)
    return TEXT_JOIN.join(part.text for part in texts)


def normalize(content: Any) -> NormalizedContent:
    """
    Build the display text and the provider payload for one message.

    Plain text passes through. Part lists join their text parts; a message
    holding only files gets a fixed prompt so the model has something to
    answer. When files are present the provider payload is a text segment
    followed by one attachment descriptor per file.
    """
    content = coerce_content(content)
    if isinstance(content, str):
        return NormalizedContent(display_text=content, provider_content=content)

    texts, files = _split_parts(content)
    text = TEXT_JOIN.join(part.text for part in texts)
    if not text and files:
        text = FILE_ONLY_PROMPT

    if not files:
        return NormalizedContent(display_text=text, provider_content=text)

    provider_content = [{"type": "text", "text": text}]
    for part in files:
        provider_content.append({
            "type": "file",
            "data": part.data,
            "mime_type": part.mime_type,
            "name": part.name,
        })
    return NormalizedContent(display_text=text, provider_content=provider_content)


def digest(content: Any) -> str:
    """Plain-text flattening with files rendered as placeholders (memory writes, search)"""
    content = coerce_content(content)
    if isinstance(content, str):
        return content

    pieces = []
    for part in content:
        if isinstance(part, TextPart):
            if part.text:
                pieces.append(part.text)
        else:
            pieces.append(f"[file attached: {part.name or 'unnamed file'}]")
    return TEXT_JOIN.join(pieces)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


def derive_title(content: Any) -> str:
    return _truncate(display_text(content), TITLE_MAX_LENGTH)


def preview_text(content: Any, limit: int = PREVIEW_MAX_LENGTH) -> str:
    """
    Short preview for sidebars and search results.

    Text is trimmed and cut to ``limit`` characters; a message with only
    files previews its first file name as ``[File] <name>``.
    """
    try:
        content = coerce_content(content)
    except (TypeError, ValidationError):
        return ""

    if isinstance(content, str):
        return _truncate(content.strip(), limit)

    texts, files = _split_parts(content)
    if texts:
        return _truncate(texts[0].text.strip(), limit)
    if files:
        name = files[0].name or "unnamed file"
        if len(name) > limit:
            name = name[:limit - len(ELLIPSIS)] + ELLIPSIS
        return f"[File] {name}"
    return ""


def content_to_document(content: Any) -> Union[str, List[dict]]:
    """Shape content the way it is stored in the chats collection"""
    content = coerce_content(content)
    if isinstance(content, str):
        return content
    return [part.model_dump(by_alias=True) for part in content]


def same_content(left: Any, right: Any) -> bool:
    try:
        return coerce_content(left) == coerce_content(right)
    except (TypeError, ValidationError):
        return False


def content_length(content: Any) -> tuple[int, int]:
    """(number of text characters, number of file parts)"""
    content = coerce_content(content)
    if isinstance(content, str):
        return len(content), 0
    texts, files = _split_parts(content)
    return sum(len(part.text) for part in texts), len(files)
