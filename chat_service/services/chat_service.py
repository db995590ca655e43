import logging
from datetime import datetime, timezone
from typing import List, Optional

from chat_service.errors import ForbiddenError, InvalidRequestError, NotFoundError
from chat_service.models.api.bookmarks import BookmarkListItem, BookmarkResponse
from chat_service.models.api.conversations import ConversationResponse
from chat_service.models.api.messages import MessageResponse
from chat_service.models.api.participants import ParticipantResponse
from chat_service.models.api.reactions import ReactionResponse
from chat_service.models.api.reads import ConversationReadResponse
from chat_service.repositories.chat_repository import (
    DEFAULT_MESSAGE_LIMIT,
    ChatRepository,
)

logger = logging.getLogger(__name__)

MAX_MESSAGE_LIMIT = 100

NOT_A_PARTICIPANT = "User is not an active participant in this conversation."


class ChatService:
    """Conversation rules: membership, authorization and payload consistency.

    Every operation takes an already resolved chat user id. Storage errors
    from the repository propagate unchanged.
    """

    def __init__(self, repo: ChatRepository):
        self.repo = repo

    async def create_conversation(
        self, type: str, name: Optional[str], participant_ids: List[str]
    ) -> ConversationResponse:
        """
        Create a conversation with its initial members:
        1. Groups need a non-blank name, direct conversations must not have one
        2. At least one participant is required
        3. Duplicate ids collapse to their first occurrence
        """
        name = name.strip() if name else None
        if type == "group" and not name:
            raise InvalidRequestError("group conversations require a name")
        if type == "direct" and name:
            raise InvalidRequestError("direct conversations cannot have a name")

        unique_ids = list(dict.fromkeys(pid for pid in participant_ids if pid))
        if not unique_ids:
            raise InvalidRequestError("at least one participant is required")

        conversation = await self.repo.create_conversation(type, name, unique_ids)
        logger.info(
            "Created %s conversation %s with %d participants",
            type,
            conversation.id,
            len(unique_ids),
        )
        return conversation

    async def list_conversations_for_user(
        self, user_id: str
    ) -> List[ConversationResponse]:
        if not user_id:
            raise InvalidRequestError("userId is required")
        return await self.repo.list_conversations_for_user(user_id)

    async def get_conversation(
        self, conversation_id: str, user_id: str
    ) -> ConversationResponse:
        conversation = await self._require_conversation(conversation_id)
        await self.ensure_active_participant(conversation_id, user_id)
        return conversation

    async def add_participant(
        self, conversation_id: str, user_id: str, role: str = "member"
    ) -> ParticipantResponse:
        """Add or re-activate a participant, then announce the join."""
        await self._require_conversation(conversation_id)
        participant = await self.repo.add_participant(conversation_id, user_id, role)
        await self._create_system_message(conversation_id, "join", f"{user_id} joined")
        logger.info("User %s joined conversation %s", user_id, conversation_id)
        return participant

    async def remove_participant(
        self, conversation_id: str, user_id: str
    ) -> ParticipantResponse:
        """Mark a participant as left, then announce the leave."""
        await self._require_conversation(conversation_id)
        participant = await self.repo.mark_participant_left(conversation_id, user_id)
        if participant is None:
            raise NotFoundError("Participant not found")
        await self._create_system_message(conversation_id, "leave", f"{user_id} left")
        logger.info("User %s left conversation %s", user_id, conversation_id)
        return participant

    async def list_messages(
        self,
        conversation_id: str,
        user_id: str,
        limit: int = DEFAULT_MESSAGE_LIMIT,
        before: Optional[datetime] = None,
    ) -> List[MessageResponse]:
        if limit < 1 or limit > MAX_MESSAGE_LIMIT:
            raise InvalidRequestError("limit must be between 1 and 100")
        await self.ensure_active_participant(conversation_id, user_id)
        if before is not None and before.tzinfo is None:
            before = before.replace(tzinfo=timezone.utc)
        return await self.repo.list_messages(conversation_id, limit=limit, before=before)

    async def send_message(
        self,
        conversation_id: str,
        sender_user_id: str,
        text: str,
        reply_to_message_id: Optional[str] = None,
    ) -> MessageResponse:
        if not sender_user_id:
            raise InvalidRequestError("senderUserId is required for messages")

        await self.ensure_active_participant(conversation_id, sender_user_id)

        if reply_to_message_id:
            referenced = await self.repo.find_message_by_id(reply_to_message_id)
            if referenced is None or referenced.conversation_id != conversation_id:
                raise InvalidRequestError(
                    "Referenced message must belong to the same conversation."
                )

        return await self.repo.create_message(
            conversation_id,
            type="text",
            sender_user_id=sender_user_id,
            text=text,
            reply_to_message_id=reply_to_message_id,
        )

    async def delete_message(self, message_id: str, user_id: str) -> None:
        """Soft-delete a message. Only its sender or an active admin may do so."""
        message = await self._require_message(message_id)

        if message.sender_user_id != user_id:
            participant = await self.repo.find_participant(
                message.conversation_id, user_id
            )
            if (
                participant is None
                or participant.left_at is not None
                or participant.role != "admin"
            ):
                logger.warning(
                    "User %s refused deletion of message %s", user_id, message_id
                )
                raise ForbiddenError("You are not authorized to delete this message.")

        await self.repo.delete_message(message_id, user_id)
        logger.info("Message %s deleted by user %s", message_id, user_id)

    async def add_reaction(
        self, message_id: str, user_id: str, emoji: str
    ) -> ReactionResponse:
        message = await self._require_message(message_id)
        await self.ensure_active_participant(message.conversation_id, user_id)
        if message.status == "deleted":
            raise InvalidRequestError("Cannot react to a deleted message")
        return await self.repo.add_reaction(message_id, user_id, emoji)

    async def remove_reaction(
        self, message_id: str, emoji: str, user_id: str
    ) -> ReactionResponse:
        message = await self._require_message(message_id)
        await self.ensure_active_participant(message.conversation_id, user_id)
        removed = await self.repo.remove_reaction(message_id, emoji, user_id)
        if removed is None:
            raise NotFoundError("Reaction not found")
        return removed

    async def list_reactions(self, message_id: str) -> List[ReactionResponse]:
        await self._require_message(message_id)
        return await self.repo.list_reactions(message_id)

    async def mark_conversation_read(
        self, conversation_id: str, user_id: str, last_read_message_id: str
    ) -> ConversationReadResponse:
        await self.ensure_active_participant(conversation_id, user_id)

        message = await self.repo.find_message_by_id(last_read_message_id)
        if message is None or message.conversation_id != conversation_id:
            raise InvalidRequestError("lastReadMessageId must belong to the conversation.")

        return await self.repo.update_conversation_read(
            conversation_id, user_id, last_read_message_id
        )

    async def count_unread(self, conversation_id: str, user_id: str) -> int:
        await self.ensure_active_participant(conversation_id, user_id)
        return await self.repo.count_unread(conversation_id, user_id)

    async def add_bookmark(self, message_id: str, user_id: str) -> BookmarkResponse:
        message = await self._require_message(message_id)
        await self.ensure_active_participant(message.conversation_id, user_id)
        if message.status == "deleted":
            raise InvalidRequestError("Cannot bookmark a deleted message")
        return await self.repo.add_bookmark(message_id, user_id)

    async def remove_bookmark(self, message_id: str, user_id: str) -> BookmarkResponse:
        message = await self._require_message(message_id)
        await self.ensure_active_participant(message.conversation_id, user_id)
        removed = await self.repo.remove_bookmark(message_id, user_id)
        if removed is None:
            raise NotFoundError("Bookmark not found")
        return removed

    async def list_bookmarks(self, user_id: str) -> List[BookmarkListItem]:
        if not user_id:
            raise InvalidRequestError("userId is required")
        return await self.repo.list_bookmarks(user_id)

    async def ensure_active_participant(
        self, conversation_id: str, user_id: str
    ) -> ParticipantResponse:
        """The single membership gate: the user must have a row with no left_at."""
        participant = await self.repo.find_participant(conversation_id, user_id)
        if participant is None or participant.left_at is not None:
            logger.warning(
                "User %s is not an active participant of conversation %s",
                user_id,
                conversation_id,
            )
            raise ForbiddenError(NOT_A_PARTICIPANT)
        return participant

    async def _create_system_message(
        self, conversation_id: str, event: str, text: str
    ) -> MessageResponse:
        return await self.repo.create_message(
            conversation_id,
            type="system",
            sender_user_id=None,
            text=text,
            system_event=event,
        )

    async def _require_conversation(self, conversation_id: str) -> ConversationResponse:
        conversation = await self.repo.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        return conversation

    async def _require_message(self, message_id: str) -> MessageResponse:
        message = await self.repo.find_message_by_id(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        return message
