from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from conversai.api.deps import get_chat_service
from conversai.core.exceptions import MissingParameterError
from conversai.schemas.chat import ChatCreate, ChatSearchResult, ChatSummary
from conversai.services.chat import ChatService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chats"])


@router.get("",
    response_model=List[ChatSummary],
    description="List user's chats, most recently updated first")
async def list_chats(
    user_id: Optional[str] = Query(None, alias="userId"),
    chat_service: ChatService = Depends(get_chat_service)
) -> List[ChatSummary]:
    if not user_id:
        raise MissingParameterError("userId")

    try:
        chats = await chat_service.list_chats(user_id)
    except Exception as e:
        logger.error(f"Error listing chats for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch chats")
    return [ChatSummary(**chat) for chat in chats]


@router.post("",
    response_model=ChatSummary,
    status_code=201,
    description="Create an empty chat")
async def create_chat(
    chat_data: ChatCreate,
    chat_service: ChatService = Depends(get_chat_service)
) -> ChatSummary:
    if not chat_data.user_id:
        raise MissingParameterError("userId")

    try:
        chat = await chat_service.create_chat(chat_data.user_id, chat_data.title)
    except Exception as e:
        logger.error(f"Error creating chat for user {chat_data.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create chat")
    return ChatSummary(**chat)


@router.get("/search",
    response_model=List[ChatSearchResult],
    description="Search chat titles and messages")
async def search_chats(
    user_id: Optional[str] = Query(None, alias="userId"),
    q: str = Query("", description="Text to look for (case-insensitive)"),
    chat_service: ChatService = Depends(get_chat_service)
) -> List[ChatSearchResult]:
    """
    Search a user's chats. Each result carries a preview of the first
    matching message.
    """
    if not user_id:
        raise MissingParameterError("userId")

    try:
        results = await chat_service.search_chats(user_id, q)
    except Exception as e:
        logger.error(f"Error searching chats for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to search chats")
    return [ChatSearchResult(**result) for result in results]
