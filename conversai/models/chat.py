from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime, timezone
from enum import Enum
import base64
from conversai.core.ids import generate_message_id

_TO_URLSAFE = str.maketrans("+/", "-_")

class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

class DocumentModel(BaseModel):
    """Base for everything stored in the chats collection (camelCase on the wire and in MongoDB)"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        ser_json_bytes="base64",
        extra="ignore",
    )

class TextPart(DocumentModel):
    type: Literal["text"] = "text"
    text: str = ""

class FilePart(DocumentModel):
    type: Literal["file"] = "file"
    data: bytes = b""
    mime_type: Optional[str] = None
    name: Optional[str] = None

    @field_validator("data", mode="before")
    @classmethod
    def coerce_data(cls, value):
        """Accept raw bytes, a list of byte values, a serialized Uint8Array or base64 text"""
        if value is None:
            return b""
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, list):
            return bytes(value)
        if isinstance(value, dict):
            # JSON.stringify(Uint8Array) produces {"0": 137, "1": 80, ...}
            return bytes(value[key] for key in sorted(value, key=int))
        if isinstance(value, str):
            # JSON responses carry URL-safe base64; clients may also send the standard alphabet
            value = value.strip().translate(_TO_URLSAFE)
            return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
        raise ValueError("Unsupported file data encoding")

ContentPart = Annotated[Union[TextPart, FilePart], Field(discriminator="type")]

# Either plain text or an ordered list of typed parts
MessageContent = Union[str, List[ContentPart]]


def drop_unknown_parts(value):
    """
    Keep only text and file parts of a part list. A text part without a
    string ``text`` becomes an empty text part. Other values pass through.
    """
    if not isinstance(value, (list, tuple)):
        return value

    parts = []
    for part in value:
        if isinstance(part, (TextPart, FilePart)):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            text = part.get("text")
            parts.append(part if isinstance(text, str) else {**part, "text": ""})
        elif isinstance(part, dict) and part.get("type") == "file":
            parts.append(part)
    return parts

class Attachment(DocumentModel):
    id: str
    name: str
    type: Optional[str] = None
    url: str
    size: Optional[int] = None

class Message(DocumentModel):
    id: str = Field(default_factory=generate_message_id)
    role: MessageRole
    content: Optional[MessageContent] = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    edited: Optional[bool] = None
    original_content: Optional[MessageContent] = None
    attachments: Optional[List[Attachment]] = None

    @field_validator("content", "original_content", mode="before")
    @classmethod
    def keep_known_parts(cls, value):
        return drop_unknown_parts(value)

class ChatVersion(DocumentModel):
    id: str
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_current: bool = False

class Chat(DocumentModel):
    chat_id: str
    user_id: str
    title: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)
    versions: List[ChatVersion] = Field(default_factory=list)
    current_version_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
