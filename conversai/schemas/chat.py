from pydantic import Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from conversai.models.chat import ChatVersion, DocumentModel, Message, MessageContent

class ChatRequest(DocumentModel):
    # Raw messages: unknown roles and unreadable content are filtered per message, not rejected
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    chat_id: Optional[str] = Field(None, description="Chat ID, omit or use \"default\" to start a new chat")
    user_id: Optional[str] = Field(None, description="Opaque user identifier")

class ChatPatchRequest(DocumentModel):
    action: Optional[str] = Field(
        None,
        description="rename, updateMessage, regenerateFromMessage, removeLastAssistant or switchVersion"
    )
    title: Optional[str] = None
    message_index: Optional[int] = None
    new_content: Optional[MessageContent] = None
    version_id: Optional[str] = None

class ChatCreate(DocumentModel):
    user_id: Optional[str] = None
    title: Optional[str] = None

class ChatListItem(DocumentModel):
    id: str
    title: str
    created_at: Optional[datetime] = None

class ChatSummary(ChatListItem):
    updated_at: Optional[datetime] = None
    preview: Optional[str] = None

class ChatSearchResult(DocumentModel):
    id: str
    title: str
    preview: Optional[str] = None

class ChatResponse(DocumentModel):
    id: str
    title: str
    messages: List[Message] = Field(default_factory=list)
    versions: List[ChatVersion] = Field(default_factory=list)
    current_version_id: Optional[str] = None

class ActionResponse(DocumentModel):
    success: bool = True
    chat: Optional[ChatResponse] = None
