from datetime import datetime, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest

from chat_service.errors import (
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    PersistenceError,
)
from chat_service.models.api.bookmarks import BookmarkResponse
from chat_service.models.api.conversations import ConversationResponse
from chat_service.models.api.messages import MessageResponse
from chat_service.models.api.participants import ParticipantResponse
from chat_service.models.api.reactions import ReactionResponse
from chat_service.models.api.reads import ConversationReadResponse
from chat_service.repositories.chat_repository import ChatRepository
from chat_service.services.chat_service import ChatService

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def _participant(
    user_id: str = "u1",
    conversation_id: str = "c1",
    role: str = "member",
    left_at: Optional[datetime] = None,
) -> ParticipantResponse:
    return ParticipantResponse(
        id=f"p-{user_id}",
        conversation_id=conversation_id,
        user_id=user_id,
        role=role,
        joined_at=NOW,
        left_at=left_at,
    )


def _message(
    message_id: str = "m1",
    conversation_id: str = "c1",
    sender_user_id: Optional[str] = "u1",
    status: str = "active",
) -> MessageResponse:
    return MessageResponse(
        id=message_id,
        conversation_id=conversation_id,
        sender_user_id=sender_user_id,
        type="text",
        text="hello",
        status=status,
        created_at=NOW,
    )


def _conversation(conversation_id: str = "c1") -> ConversationResponse:
    return ConversationResponse(
        id=conversation_id,
        type="group",
        name="Team",
        created_at=NOW,
        participants=[_participant()],
    )


class TestChatService:
    """Unit tests for ChatService rules with a mocked repository."""

    @pytest.fixture
    def repo(self) -> Any:
        mock_repo = AsyncMock(spec=ChatRepository)
        mock_repo.find_participant.return_value = _participant()
        mock_repo.get_conversation.return_value = _conversation()
        mock_repo.find_message_by_id.return_value = _message()
        return mock_repo

    @pytest.fixture
    def service(self, repo: Any) -> ChatService:
        return ChatService(repo)

    # Conversations

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", [None, "", "   "])
    async def test_group_requires_name(
        self, service: ChatService, repo: Any, name: Optional[str]
    ) -> None:
        with pytest.raises(InvalidRequestError) as exc_info:
            await service.create_conversation("group", name, ["u1"])

        assert exc_info.value.message == "group conversations require a name"
        repo.create_conversation.assert_not_called()

    @pytest.mark.asyncio
    async def test_participants_required(self, service: ChatService, repo: Any) -> None:
        with pytest.raises(InvalidRequestError) as exc_info:
            await service.create_conversation("group", "Team", [])

        assert exc_info.value.message == "at least one participant is required"
        repo.create_conversation.assert_not_called()

    @pytest.mark.asyncio
    async def test_direct_conversation_cannot_have_name(self, service: ChatService) -> None:
        with pytest.raises(InvalidRequestError) as exc_info:
            await service.create_conversation("direct", "Chat", ["u1", "u2"])

        assert exc_info.value.message == "direct conversations cannot have a name"

    @pytest.mark.asyncio
    async def test_create_conversation_delegates(
        self, service: ChatService, repo: Any
    ) -> None:
        """Test that names are trimmed and duplicate ids collapse in order."""
        repo.create_conversation.return_value = _conversation()

        await service.create_conversation("group", "  Team  ", ["u2", "u1", "u2"])

        repo.create_conversation.assert_awaited_once_with("group", "Team", ["u2", "u1"])

    @pytest.mark.asyncio
    async def test_blank_direct_name_is_dropped(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.create_conversation.return_value = _conversation()

        await service.create_conversation("direct", " ", ["u1", "u2"])

        repo.create_conversation.assert_awaited_once_with("direct", None, ["u1", "u2"])

    @pytest.mark.asyncio
    async def test_list_conversations_requires_user(self, service: ChatService) -> None:
        with pytest.raises(InvalidRequestError, match="userId is required"):
            await service.list_conversations_for_user("")

    @pytest.mark.asyncio
    async def test_get_conversation_not_found(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.get_conversation.return_value = None

        with pytest.raises(NotFoundError, match="Conversation not found"):
            await service.get_conversation("c1", "u1")

    @pytest.mark.asyncio
    async def test_get_conversation_requires_membership(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.find_participant.return_value = None

        with pytest.raises(ForbiddenError):
            await service.get_conversation("c1", "outsider")

    # Membership gate

    @pytest.mark.asyncio
    async def test_gate_rejects_missing_participant(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.find_participant.return_value = None

        with pytest.raises(ForbiddenError) as exc_info:
            await service.ensure_active_participant("c1", "u9")

        assert (
            exc_info.value.message
            == "User is not an active participant in this conversation."
        )

    @pytest.mark.asyncio
    async def test_gate_rejects_left_participant(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.find_participant.return_value = _participant(left_at=NOW)

        with pytest.raises(ForbiddenError):
            await service.ensure_active_participant("c1", "u1")

    @pytest.mark.asyncio
    async def test_gate_returns_active_participant(
        self, service: ChatService, repo: Any
    ) -> None:
        participant = await service.ensure_active_participant("c1", "u1")

        assert participant.user_id == "u1"

    # Participants

    @pytest.mark.asyncio
    async def test_add_participant_posts_join_message(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.add_participant.return_value = _participant("u3")

        participant = await service.add_participant("c1", "u3")

        assert participant.user_id == "u3"
        repo.add_participant.assert_awaited_once_with("c1", "u3", "member")
        repo.create_message.assert_awaited_once_with(
            "c1",
            type="system",
            sender_user_id=None,
            text="u3 joined",
            system_event="join",
        )

    @pytest.mark.asyncio
    async def test_add_participant_conversation_not_found(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.get_conversation.return_value = None

        with pytest.raises(NotFoundError, match="Conversation not found"):
            await service.add_participant("missing", "u3")
        repo.add_participant.assert_not_called()

    @pytest.mark.asyncio
    async def test_remove_participant_posts_leave_message(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.mark_participant_left.return_value = _participant(left_at=NOW)

        await service.remove_participant("c1", "u1")

        repo.create_message.assert_awaited_once_with(
            "c1",
            type="system",
            sender_user_id=None,
            text="u1 left",
            system_event="leave",
        )

    @pytest.mark.asyncio
    async def test_remove_unknown_participant(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.mark_participant_left.return_value = None

        with pytest.raises(NotFoundError, match="Participant not found"):
            await service.remove_participant("c1", "u9")
        repo.create_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_system_message_failure_keeps_participant_change(
        self, service: ChatService, repo: Any
    ) -> None:
        """Test that a failed join message surfaces after the participant was stored."""
        repo.add_participant.return_value = _participant("u3")
        repo.create_message.side_effect = PersistenceError("write failed")

        with pytest.raises(PersistenceError):
            await service.add_participant("c1", "u3")
        repo.add_participant.assert_awaited_once()

    # Messages

    @pytest.mark.asyncio
    async def test_send_requires_sender(self, service: ChatService) -> None:
        with pytest.raises(InvalidRequestError) as exc_info:
            await service.send_message("c1", "", "hi")

        assert exc_info.value.message == "senderUserId is required for messages"

    @pytest.mark.asyncio
    async def test_send_message_delegates_as_text(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.create_message.return_value = _message("m2")

        await service.send_message("c1", "u1", "hi", reply_to_message_id="m1")

        repo.create_message.assert_awaited_once_with(
            "c1",
            type="text",
            sender_user_id="u1",
            text="hi",
            reply_to_message_id="m1",
        )

    @pytest.mark.asyncio
    async def test_reply_must_be_in_same_conversation(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.find_message_by_id.return_value = _message(conversation_id="c2")

        with pytest.raises(InvalidRequestError) as exc_info:
            await service.send_message("c1", "u1", "hi", reply_to_message_id="m1")

        assert (
            exc_info.value.message
            == "Referenced message must belong to the same conversation."
        )
        repo.create_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_reply_to_missing_message(self, service: ChatService, repo: Any) -> None:
        repo.find_message_by_id.return_value = None

        with pytest.raises(InvalidRequestError):
            await service.send_message("c1", "u1", "hi", reply_to_message_id="gone")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 101])
    async def test_list_messages_limit_bounds(
        self, service: ChatService, repo: Any, limit: int
    ) -> None:
        with pytest.raises(InvalidRequestError, match="limit must be between 1 and 100"):
            await service.list_messages("c1", "u1", limit=limit)
        repo.list_messages.assert_not_called()

    @pytest.mark.asyncio
    async def test_list_messages_naive_before_is_utc(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.list_messages.return_value = []

        await service.list_messages("c1", "u1", limit=10, before=datetime(2026, 1, 5, 12))

        repo.list_messages.assert_awaited_once_with("c1", limit=10, before=NOW)

    @pytest.mark.asyncio
    async def test_delete_by_sender(self, service: ChatService, repo: Any) -> None:
        await service.delete_message("m1", "u1")

        repo.delete_message.assert_awaited_once_with("m1", "u1")
        repo.find_participant.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_by_admin(self, service: ChatService, repo: Any) -> None:
        repo.find_participant.return_value = _participant("admin", role="admin")

        await service.delete_message("m1", "admin")

        repo.delete_message.assert_awaited_once_with("m1", "admin")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "participant",
        [
            None,
            _participant("u2"),
            _participant("u2", role="admin", left_at=NOW),
        ],
    )
    async def test_delete_refused(
        self, service: ChatService, repo: Any, participant: Any
    ) -> None:
        repo.find_participant.return_value = participant

        with pytest.raises(ForbiddenError) as exc_info:
            await service.delete_message("m1", "u2")

        assert exc_info.value.message == "You are not authorized to delete this message."
        repo.delete_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_missing_message(self, service: ChatService, repo: Any) -> None:
        repo.find_message_by_id.return_value = None

        with pytest.raises(NotFoundError, match="Message not found"):
            await service.delete_message("gone", "u1")

    # Reactions

    @pytest.mark.asyncio
    async def test_add_reaction(self, service: ChatService, repo: Any) -> None:
        repo.add_reaction.return_value = ReactionResponse(
            id="r1", message_id="m1", user_id="u1", emoji="👍", created_at=NOW
        )

        reaction = await service.add_reaction("m1", "u1", "👍")

        assert reaction.emoji == "👍"
        repo.find_participant.assert_awaited_once_with("c1", "u1")

    @pytest.mark.asyncio
    async def test_add_reaction_to_deleted_message(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.find_message_by_id.return_value = _message(status="deleted")

        with pytest.raises(InvalidRequestError, match="Cannot react to a deleted message"):
            await service.add_reaction("m1", "u1", "👍")

    @pytest.mark.asyncio
    async def test_add_reaction_missing_message(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.find_message_by_id.return_value = None

        with pytest.raises(NotFoundError, match="Message not found"):
            await service.add_reaction("gone", "u1", "👍")

    @pytest.mark.asyncio
    async def test_remove_missing_reaction(self, service: ChatService, repo: Any) -> None:
        repo.remove_reaction.return_value = None

        with pytest.raises(NotFoundError, match="Reaction not found"):
            await service.remove_reaction("m1", "👍", "u1")

    @pytest.mark.asyncio
    async def test_list_reactions_skips_membership(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.list_reactions.return_value = []

        assert await service.list_reactions("m1") == []
        repo.find_participant.assert_not_called()

    # Read cursors

    @pytest.mark.asyncio
    async def test_mark_read_rejects_foreign_message(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.find_message_by_id.return_value = None

        with pytest.raises(InvalidRequestError) as exc_info:
            await service.mark_conversation_read(
                "c1", "u1", "00000000-0000-0000-0000-000000000000"
            )

        assert exc_info.value.message == "lastReadMessageId must belong to the conversation."
        repo.update_conversation_read.assert_not_called()

    @pytest.mark.asyncio
    async def test_mark_read(self, service: ChatService, repo: Any) -> None:
        repo.update_conversation_read.return_value = ConversationReadResponse(
            id="r1",
            conversation_id="c1",
            user_id="u1",
            last_read_message_id="m1",
            updated_at=NOW,
        )

        read = await service.mark_conversation_read("c1", "u1", "m1")

        assert read.last_read_message_id == "m1"

    @pytest.mark.asyncio
    async def test_count_unread_requires_membership(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.find_participant.return_value = None

        with pytest.raises(ForbiddenError):
            await service.count_unread("c1", "u9")
        repo.count_unread.assert_not_called()

    # Bookmarks

    @pytest.mark.asyncio
    async def test_add_bookmark(self, service: ChatService, repo: Any) -> None:
        repo.add_bookmark.return_value = BookmarkResponse(
            id="b1", message_id="m1", user_id="u1", created_at=NOW
        )

        bookmark = await service.add_bookmark("m1", "u1")

        assert bookmark.id == "b1"

    @pytest.mark.asyncio
    async def test_bookmark_deleted_message(self, service: ChatService, repo: Any) -> None:
        repo.find_message_by_id.return_value = _message(status="deleted")

        with pytest.raises(InvalidRequestError, match="Cannot bookmark a deleted message"):
            await service.add_bookmark("m1", "u1")

    @pytest.mark.asyncio
    async def test_remove_missing_bookmark(self, service: ChatService, repo: Any) -> None:
        repo.remove_bookmark.return_value = None

        with pytest.raises(NotFoundError, match="Bookmark not found"):
            await service.remove_bookmark("m1", "u1")

    @pytest.mark.asyncio
    async def test_list_bookmarks_requires_user(self, service: ChatService) -> None:
        with pytest.raises(InvalidRequestError, match="userId is required"):
            await service.list_bookmarks("")

    @pytest.mark.asyncio
    async def test_persistence_errors_propagate(
        self, service: ChatService, repo: Any
    ) -> None:
        repo.list_bookmarks.side_effect = PersistenceError("down")

        with pytest.raises(PersistenceError):
            await service.list_bookmarks("u1")
