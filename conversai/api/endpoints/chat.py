from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask
from typing import List, Optional, Union
from conversai.api.deps import get_chat_service, get_stream_orchestrator
from conversai.core.exceptions import (
    ChatNotFoundError,
    InvalidActionError,
    MessageNotFoundError,
    MissingParameterError,
    UpstreamError,
    VersionNotFoundError
)
from conversai.schemas.chat import (
    ActionResponse,
    ChatListItem,
    ChatPatchRequest,
    ChatRequest,
    ChatResponse
)
from conversai.schemas.memory import SuccessResponse
from conversai.services.chat import ChatService
from conversai.services.stream import APOLOGY, GREETING, ChatStreamOrchestrator
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


def _chat_response(chat_service: ChatService, chat: dict) -> ChatResponse:
    summary = chat_service.summarize(chat)
    return ChatResponse(
        id=summary["id"],
        title=summary["title"],
        messages=chat.get("messages") or [],
        versions=chat.get("versions") or [],
        current_version_id=chat.get("currentVersionId")
    )


@router.get("",
    response_model=Union[ChatResponse, List[ChatListItem]],
    description="Get one chat, or list all chats of a user",
    responses={
        400: {"description": "Missing userId"},
        404: {"description": "Chat not found"}
    })
async def get_chat(
    user_id: Optional[str] = Query(None, alias="userId"),
    chat_id: Optional[str] = Query(None, alias="chatId"),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    With ``chatId``: the chat with its messages, versions and current version.
    Without: ``[{id, title, createdAt}]`` for every chat of the user.
    """
    if not user_id:
        raise MissingParameterError("userId")

    try:
        if chat_id:
            chat = await chat_service.get_chat(user_id, chat_id)
            return _chat_response(chat_service, chat)

        chats = await chat_service.get_history(user_id)
        return [ChatListItem(**chat_service.summarize(chat)) for chat in chats]
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in GET /chat: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("",
    description="Send a message and stream the assistant's reply",
    responses={
        200: {"description": "Plain-text stream of the reply (or a greeting when there is nothing to answer)"},
        400: {"description": "Missing userId"},
        500: {"description": "LLM provider or server failure"}
    })
async def post_chat(
    request: ChatRequest,
    orchestrator: ChatStreamOrchestrator = Depends(get_stream_orchestrator)
):
    """
    Save the user's message, assemble the context window and stream the
    model's reply token by token. The chat id the turn was stored under is
    returned in the ``X-Chat-Id`` header (new chats get a server-minted id).
    The reply is saved once the stream has been fully sent.
    """
    if not request.user_id:
        raise MissingParameterError("userId")

    logger.info(f"Chat turn for user {request.user_id}: {len(request.messages)} messages, chat {request.chat_id}")

    try:
        turn = await orchestrator.start_turn(request.user_id, request.chat_id, request.messages)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in POST /chat: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    headers = {"X-Chat-Id": turn.chat_id} if turn.chat_id else {}

    if turn.is_empty:
        return PlainTextResponse(GREETING, headers=headers)

    try:
        await turn.stream.prepare()
    except UpstreamError:
        return PlainTextResponse(APOLOGY, status_code=500, headers=headers)

    return StreamingResponse(
        turn.stream.relay(),
        media_type="text/plain; charset=utf-8",
        headers={**headers, "Cache-Control": "no-cache"},
        background=BackgroundTask(turn.stream.persist)
    )


@router.delete("",
    response_model=SuccessResponse,
    description="Delete a chat",
    responses={
        400: {"description": "Missing userId or chatId"},
        404: {"description": "Chat not found"}
    })
async def delete_chat(
    user_id: Optional[str] = Query(None, alias="userId"),
    chat_id: Optional[str] = Query(None, alias="chatId"),
    chat_service: ChatService = Depends(get_chat_service)
) -> SuccessResponse:
    """
    Delete a chat and all its messages.
    """
    if not user_id or not chat_id:
        raise MissingParameterError("userId", "chatId")

    try:
        success = await chat_service.delete_chat(user_id, chat_id)
    except Exception as e:
        logger.error(f"Error in DELETE /chat: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if not success:
        raise ChatNotFoundError()
    return SuccessResponse()


@router.patch("",
    response_model=ActionResponse,
    response_model_exclude_none=True,
    description="Rename a chat, edit or regenerate messages, or switch versions",
    responses={
        400: {"description": "Missing parameters or invalid action"},
        404: {"description": "Chat, message or version not found"}
    })
async def patch_chat(
    body: ChatPatchRequest,
    user_id: Optional[str] = Query(None, alias="userId"),
    chat_id: Optional[str] = Query(None, alias="chatId"),
    chat_service: ChatService = Depends(get_chat_service)
) -> ActionResponse:
    """
    Actions:
    - ``rename`` (``title``)
    - ``updateMessage`` (``messageIndex``, ``newContent``): returns the updated chat
    - ``regenerateFromMessage`` (``messageIndex``)
    - ``removeLastAssistant``
    - ``switchVersion`` (``versionId``): returns the updated chat
    """
    if not user_id or not chat_id:
        raise MissingParameterError("userId", "chatId")

    action = body.action

    try:
        if action == "rename" and body.title:
            if not await chat_service.rename_chat(user_id, chat_id, body.title):
                raise ChatNotFoundError()
            return ActionResponse()

        if action == "updateMessage" and body.message_index is not None and body.new_content:
            if not await chat_service.update_message(user_id, chat_id, body.message_index, body.new_content):
                raise MessageNotFoundError()
            chat = await chat_service.get_chat(user_id, chat_id)
            return ActionResponse(chat=_chat_response(chat_service, chat))

        if action == "regenerateFromMessage" and body.message_index is not None:
            if not await chat_service.regenerate_from_message(user_id, chat_id, body.message_index):
                raise MessageNotFoundError()
            return ActionResponse()

        if action == "removeLastAssistant":
            await chat_service.remove_last_assistant_message(user_id, chat_id)
            return ActionResponse()

        if action == "switchVersion" and body.version_id:
            if not await chat_service.switch_to_version(user_id, chat_id, body.version_id):
                raise VersionNotFoundError()
            chat = await chat_service.get_chat(user_id, chat_id)
            return ActionResponse(chat=_chat_response(chat_service, chat))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in PATCH /chat ({action}): {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    raise InvalidActionError()
