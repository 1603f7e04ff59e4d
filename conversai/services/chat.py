from datetime import datetime, timezone
from typing import Any, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from conversai.core.exceptions import (
    AssistantMessageNotFoundError,
    ChatNotFoundError,
    MessageNotFoundError,
    VersionNotFoundError
)
from conversai.core.ids import generate_chat_id, generate_version_id
from conversai.models.chat import Message, MessageRole
from conversai.services.content import (
    content_to_document,
    derive_title,
    digest,
    display_text,
    is_non_empty,
    preview_text,
    prune_empty,
    same_content
)
import logging

logger = logging.getLogger(__name__)

DEFAULT_CHAT_ID = "default"
DEFAULT_CHAT_TITLE = "New Chat"
UNTITLED_CHAT_TITLE = "Untitled Chat"
FALLBACK_TITLE_LENGTH = 30


class ChatService:
    """
    Chat persistence on the ``chats`` collection.

    One document per ``{userId, chatId}`` embeds the messages and version
    snapshots. Multi-step operations (read, decide, write) are not
    transactional; where it matters the final write is guarded by a filter
    on the state that was read, so a concurrent change makes it a no-op.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    @staticmethod
    def _chat_filter(user_id: str, chat_id: str) -> dict:
        return {"userId": user_id, "chatId": chat_id}

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _message_document(self, message: Message) -> dict:
        message_dict = message.model_dump(by_alias=True, exclude_none=True)
        message_dict["content"] = content_to_document(message.content)
        message_dict["createdAt"] = self._now()
        return message_dict

    async def _find_chat(self, user_id: str, chat_id: str) -> Optional[dict]:
        return await self.db.chats.find_one(self._chat_filter(user_id, chat_id))

    async def get_history(self, user_id: str, chat_id: Optional[str] = None) -> List[dict]:
        """
        Get all chats of a user, or the single chat ``chat_id``.

        Stored messages that became empty are stripped from the returned
        chats and the cleaned list is written back. The write-back is best
        effort and never fails the read.
        """
        query = {"userId": user_id}
        if chat_id:
            query["chatId"] = chat_id

        chats = await self.db.chats.find(query).to_list(length=None)

        for chat in chats:
            messages = chat.get("messages")
            if not isinstance(messages, list):
                chat["messages"] = []
                continue

            cleaned = prune_empty(messages)
            if len(cleaned) == len(messages):
                continue

            chat["messages"] = cleaned
            try:
                await self.db.chats.update_one(
                    {"_id": chat["_id"]},
                    {"$set": {"messages": cleaned}}
                )
                logger.info(f"Cleaned up {len(messages) - len(cleaned)} empty messages from chat {chat.get('chatId')}")
            except Exception as e:
                logger.error(f"Error cleaning up empty messages in chat {chat.get('chatId')}: {e}")

        return chats

    async def get_chat(self, user_id: str, chat_id: str) -> dict:
        """Get one chat with its messages and versions"""
        chats = await self.get_history(user_id, chat_id)
        if not chats:
            raise ChatNotFoundError()
        return chats[0]

    @staticmethod
    def _fallback_title(messages: List[dict]) -> str:
        """First 30 characters of the first message, for chats stored without a title"""
        if not messages:
            return ""
        try:
            return display_text(messages[0].get("content"))[:FALLBACK_TITLE_LENGTH]
        except (TypeError, ValidationError):
            return ""

    def summarize(self, chat: dict) -> dict:
        """Sidebar entry for a chat"""
        messages = chat.get("messages") or []
        title = chat.get("title") or self._fallback_title(messages) or UNTITLED_CHAT_TITLE
        last_content = messages[-1].get("content") if messages else None
        return {
            "id": chat.get("chatId") or str(chat.get("_id")),
            "title": title,
            "created_at": chat.get("createdAt"),
            "updated_at": chat.get("updatedAt"),
            "preview": preview_text(last_content) if messages else None,
        }

    async def list_chats(self, user_id: str) -> List[dict]:
        """List user's chats, most recently updated first"""
        cursor = self.db.chats.find({"userId": user_id})
        cursor.sort("updatedAt", -1)

        chats = []
        async for chat in cursor:
            chats.append(self.summarize(chat))
        return chats

    async def create_chat(self, user_id: str, title: Optional[str] = None) -> dict:
        """Create an empty chat"""
        current_time = self._now()
        chat_dict = {
            "userId": user_id,
            "chatId": generate_chat_id(),
            "title": title or DEFAULT_CHAT_TITLE,
            "messages": [],
            "versions": [],
            "createdAt": current_time,
            "updatedAt": current_time
        }
        await self.db.chats.insert_one(chat_dict)
        logger.info(f"Created chat {chat_dict['chatId']} for user {user_id}")
        return self.summarize(chat_dict)

    async def search_chats(self, user_id: str, query: str) -> List[dict]:
        """
        Case-insensitive substring search over chat titles and message text.

        Each hit carries a preview of the first matching message (or of the
        title when only the title matched).
        """
        needle = query.strip().casefold()
        if not needle:
            return []

        results = []
        for chat in await self.get_history(user_id):
            summary = self.summarize(chat)
            match = None
            for message in chat.get("messages", []):
                try:
                    text = digest(message.get("content"))
                except (TypeError, ValidationError):
                    continue
                if needle in text.casefold():
                    match = preview_text(message.get("content"), 60)
                    break

            if match is None and needle not in summary["title"].casefold():
                continue
            results.append({"id": summary["id"], "title": summary["title"], "preview": match or summary["title"]})

        return results

    async def save_message(self, user_id: str, chat_id: Optional[str], message: Message) -> str:
        """
        Append a message to a chat and return the chat id it was stored under.

        A missing chat id or the ``"default"`` sentinel mints a new id. The
        first user message of a chat creates the document and sets its title
        in the same upsert.
        """
        resolved_chat_id = chat_id if chat_id and chat_id != DEFAULT_CHAT_ID else generate_chat_id()
        current_time = self._now()
        message_dict = self._message_document(message)

        existing = await self.db.chats.find_one(
            self._chat_filter(user_id, resolved_chat_id),
            {"_id": 1}
        )

        if existing is None and message.role == MessageRole.USER.value:
            update = {
                "$setOnInsert": {
                    "title": derive_title(message.content),
                    "createdAt": current_time
                },
                "$push": {"messages": message_dict},
                "$set": {"updatedAt": current_time}
            }
            logger.info(f"Creating chat {resolved_chat_id} for user {user_id}")
        else:
            # Upsert tolerates a chat deleted or created concurrently
            update = {
                "$setOnInsert": {"createdAt": current_time},
                "$push": {"messages": message_dict},
                "$set": {"updatedAt": current_time}
            }

        await self.db.chats.update_one(
            self._chat_filter(user_id, resolved_chat_id),
            update,
            upsert=True
        )
        return resolved_chat_id

    async def save_user_message_if_new(self, user_id: str, chat_id: Optional[str], message: Message) -> Optional[str]:
        """
        Save the incoming turn unless the chat already ends with it.

        Empty messages are never stored. Returns the chat id to continue
        with, which is ``chat_id`` unchanged when nothing was saved. The
        check and the write are separate round-trips, so two identical
        concurrent submissions can still both be stored.
        """
        if not is_non_empty(message):
            logger.info("Incoming message is empty, not saving")
            return chat_id

        if chat_id and chat_id != DEFAULT_CHAT_ID:
            chat = await self._find_chat(user_id, chat_id)
            messages = (chat or {}).get("messages") or []
            if messages:
                last = messages[-1]
                if last.get("role") == message.role and same_content(last.get("content"), message.content):
                    logger.info(f"Message already present in chat {chat_id}, skipping save")
                    return chat_id

        saved_chat_id = await self.save_message(user_id, chat_id, message)
        logger.info(f"Saved {message.role} message to chat {saved_chat_id}")
        return saved_chat_id

    async def delete_chat(self, user_id: str, chat_id: str) -> bool:
        """Delete a chat"""
        result = await self.db.chats.delete_one(self._chat_filter(user_id, chat_id))
        return result.deleted_count > 0

    async def rename_chat(self, user_id: str, chat_id: str, title: str) -> bool:
        """Set a chat's title"""
        result = await self.db.chats.update_one(
            self._chat_filter(user_id, chat_id),
            {"$set": {"title": title, "updatedAt": self._now()}}
        )
        return result.modified_count > 0

    async def update_message(self, user_id: str, chat_id: str, index: int, new_content: Any) -> bool:
        """
        Edit the message at ``index``.

        The full pre-edit message list is kept as a new version, so switching
        to that version undoes the edit. ``originalContent`` records the
        content from before the first edit and is never overwritten.

        Raises:
            MessageNotFoundError: the chat or the message does not exist
        """
        chat = await self._find_chat(user_id, chat_id)
        messages = (chat or {}).get("messages") or []
        if index < 0 or index >= len(messages):
            raise MessageNotFoundError()

        target = messages[index]
        original_content = target.get("originalContent")
        if original_content is None:
            original_content = target.get("content")

        current_time = self._now()
        version = {
            "id": generate_version_id(),
            "messages": messages,
            "createdAt": current_time,
            "isCurrent": False
        }

        result = await self.db.chats.update_one(
            {**self._chat_filter(user_id, chat_id), "messages": {"$size": len(messages)}},
            {
                "$set": {
                    f"messages.{index}.content": content_to_document(new_content),
                    f"messages.{index}.edited": True,
                    f"messages.{index}.originalContent": original_content,
                    "currentVersionId": version["id"],
                    "updatedAt": current_time
                },
                "$push": {"versions": version}
            }
        )

        if result.modified_count:
            logger.info(f"Edited message {index} in chat {chat_id}, snapshot {version['id']}")
        return result.modified_count > 0

    async def regenerate_from_message(self, user_id: str, chat_id: str, index: int) -> bool:
        """
        Drop every message after ``index`` so the reply can be generated again.

        Raises:
            MessageNotFoundError: the chat or the message does not exist
        """
        chat = await self._find_chat(user_id, chat_id)
        messages = (chat or {}).get("messages") or []
        if index < 0 or index >= len(messages):
            raise MessageNotFoundError()

        result = await self.db.chats.update_one(
            self._chat_filter(user_id, chat_id),
            {"$set": {"messages": messages[:index + 1], "updatedAt": self._now()}}
        )
        return result.modified_count > 0

    async def switch_to_version(self, user_id: str, chat_id: str, version_id: str) -> bool:
        """
        Restore the message list saved in ``version_id`` and mark that
        version as the only current one.

        Raises:
            VersionNotFoundError: the chat has no such version
        """
        chat = await self._find_chat(user_id, chat_id)
        versions = (chat or {}).get("versions") or []
        version = next((v for v in versions if v.get("id") == version_id), None)
        if version is None:
            raise VersionNotFoundError()

        updated_versions = [
            {**v, "isCurrent": v.get("id") == version_id}
            for v in versions
        ]

        result = await self.db.chats.update_one(
            {**self._chat_filter(user_id, chat_id), "versions": {"$size": len(versions)}},
            {
                "$set": {
                    "messages": version.get("messages", []),
                    "currentVersionId": version_id,
                    "versions": updated_versions,
                    "updatedAt": self._now()
                }
            }
        )
        return result.modified_count > 0

    async def remove_last_assistant_message(self, user_id: str, chat_id: str) -> bool:
        """
        Remove the most recent assistant message, keeping everything around it.

        Raises:
            ChatNotFoundError: the chat does not exist or has no messages
            AssistantMessageNotFoundError: no assistant message to remove
        """
        chat = await self._find_chat(user_id, chat_id)
        messages = (chat or {}).get("messages") or []
        if not messages:
            raise ChatNotFoundError()

        last_index = len(messages) - 1
        while last_index >= 0 and messages[last_index].get("role") != MessageRole.ASSISTANT.value:
            last_index -= 1

        if last_index < 0:
            raise AssistantMessageNotFoundError()

        remaining = messages[:last_index] + messages[last_index + 1:]
        result = await self.db.chats.update_one(
            self._chat_filter(user_id, chat_id),
            {"$set": {"messages": remaining, "updatedAt": self._now()}}
        )
        return result.modified_count > 0
