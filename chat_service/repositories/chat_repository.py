from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from chat_service.models.api.bookmarks import BookmarkListItem, BookmarkResponse
from chat_service.models.api.conversations import ConversationResponse
from chat_service.models.api.messages import MessageResponse
from chat_service.models.api.participants import ParticipantResponse
from chat_service.models.api.reactions import ReactionResponse
from chat_service.models.api.reads import ConversationReadResponse

# Page size used when callers do not pass a limit
DEFAULT_MESSAGE_LIMIT = 50
# Bounds the reaction payload attached to each listed message
REACTION_LIMIT_PER_MESSAGE = 100


class ChatRepository(ABC):
    """Storage interface for conversations and everything hanging off them.

    Implementations perform data access only. Membership, authorization and
    payload rules live in ``ChatService``. Uniqueness conflicts on the
    participant, reaction, bookmark and read-cursor tables are resolved with
    an upsert and never surface to the caller. Any other storage failure is
    raised as ``PersistenceError``.
    """

    @abstractmethod
    async def create_conversation(
        self, type: str, name: Optional[str], participant_ids: List[str]
    ) -> ConversationResponse:
        """Insert a conversation and its participants (role 'member').

        Participants are returned in the order of ``participant_ids``.
        """

    @abstractmethod
    async def get_conversation(
        self, conversation_id: str
    ) -> Optional[ConversationResponse]:
        """Return the conversation with its participants, or None."""

    @abstractmethod
    async def list_conversations_for_user(
        self, user_id: str
    ) -> List[ConversationResponse]:
        """Conversations where the user is active, newest first."""

    @abstractmethod
    async def add_participant(
        self, conversation_id: str, user_id: str, role: str = "member"
    ) -> ParticipantResponse:
        """Insert a participant, or reactivate the existing row and set its role."""

    @abstractmethod
    async def find_participant(
        self, conversation_id: str, user_id: str
    ) -> Optional[ParticipantResponse]:
        """Return the participant row whether active or left."""

    @abstractmethod
    async def mark_participant_left(
        self, conversation_id: str, user_id: str
    ) -> Optional[ParticipantResponse]:
        """Set left_at to now. Returns None when there is no such participant."""

    @abstractmethod
    async def create_message(
        self,
        conversation_id: str,
        *,
        type: str,
        sender_user_id: Optional[str] = None,
        text: Optional[str] = None,
        reply_to_message_id: Optional[str] = None,
        system_event: Optional[str] = None,
    ) -> MessageResponse:
        """Append a message. New messages carry no reactions."""

    @abstractmethod
    async def list_messages(
        self,
        conversation_id: str,
        limit: int = DEFAULT_MESSAGE_LIMIT,
        before: Optional[datetime] = None,
    ) -> List[MessageResponse]:
        """Active messages newest first, optionally created strictly before ``before``.

        Reactions for the page are fetched in one query and capped at
        ``REACTION_LIMIT_PER_MESSAGE`` per message. A failed reaction fetch
        yields empty reaction lists rather than an error.
        """

    @abstractmethod
    async def find_message_by_id(self, message_id: str) -> Optional[MessageResponse]:
        """Return a message in any status, with its reactions."""

    @abstractmethod
    async def delete_message(self, message_id: str, deleted_by_user_id: str) -> None:
        """Soft-delete an active message."""

    @abstractmethod
    async def add_reaction(
        self, message_id: str, user_id: str, emoji: str
    ) -> ReactionResponse:
        """Insert a reaction, or return the existing identical one."""

    @abstractmethod
    async def remove_reaction(
        self, message_id: str, emoji: str, user_id: str
    ) -> Optional[ReactionResponse]:
        """Delete a reaction and return it, or None if nothing matched."""

    @abstractmethod
    async def list_reactions(self, message_id: str) -> List[ReactionResponse]:
        """Reactions on a message, oldest first."""

    @abstractmethod
    async def update_conversation_read(
        self, conversation_id: str, user_id: str, last_read_message_id: str
    ) -> ConversationReadResponse:
        """Upsert the caller's read cursor."""

    @abstractmethod
    async def count_unread(self, conversation_id: str, user_id: str) -> int:
        """Active messages created strictly after the cursor message."""

    @abstractmethod
    async def add_bookmark(self, message_id: str, user_id: str) -> BookmarkResponse:
        """Insert a bookmark, or return the existing one."""

    @abstractmethod
    async def remove_bookmark(
        self, message_id: str, user_id: str
    ) -> Optional[BookmarkResponse]:
        """Delete a bookmark and return it, or None if nothing matched."""

    @abstractmethod
    async def list_bookmarks(self, user_id: str) -> List[BookmarkListItem]:
        """The user's bookmarks joined with their messages, newest first."""

    @abstractmethod
    async def ping(self) -> bool:
        """Run a trivial query against the backend."""
