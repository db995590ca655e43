from datetime import datetime, timezone
from typing import Any, Generator
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from chat_service.dependencies import get_chat_service, get_current_user_id
from chat_service.errors import ForbiddenError, InvalidRequestError, NotFoundError
from chat_service.main import app
from chat_service.models.api.conversations import ConversationResponse
from chat_service.models.api.messages import MessageResponse
from chat_service.models.api.participants import ParticipantResponse
from chat_service.models.api.reads import ConversationReadResponse
from chat_service.services.chat_service import ChatService

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
CALLER_ID = "caller-1"


class TestConversationsRouter:
    """Unit tests for the conversations router endpoints."""

    @pytest.fixture
    def service(self) -> Any:
        return AsyncMock(spec=ChatService)

    @pytest.fixture
    def client(self, service: Any) -> Generator[TestClient, None, None]:
        """Test client with the engine and caller identity overridden."""
        app.dependency_overrides[get_chat_service] = lambda: service
        app.dependency_overrides[get_current_user_id] = lambda: CALLER_ID
        yield TestClient(app)
        app.dependency_overrides.clear()

    @pytest.fixture
    def conversation(self) -> ConversationResponse:
        conversation_id = str(uuid4())
        return ConversationResponse(
            id=conversation_id,
            type="direct",
            name=None,
            created_at=NOW,
            participants=[
                ParticipantResponse(
                    id=str(uuid4()),
                    conversation_id=conversation_id,
                    user_id=CALLER_ID,
                    role="member",
                    joined_at=NOW,
                )
            ],
        )

    def _message(self, conversation_id: str, **overrides: Any) -> MessageResponse:
        fields = {
            "id": str(uuid4()),
            "conversation_id": conversation_id,
            "sender_user_id": CALLER_ID,
            "type": "text",
            "text": "hello",
            "created_at": NOW,
        }
        fields.update(overrides)
        return MessageResponse(**fields)

    def test_list_conversations(
        self, client: TestClient, service: Any, conversation: ConversationResponse
    ) -> None:
        service.list_conversations_for_user.return_value = [conversation]

        response = client.get("/api/conversations")

        assert response.status_code == 200
        assert response.json()[0]["id"] == conversation.id
        service.list_conversations_for_user.assert_awaited_once_with(CALLER_ID)

    def test_create_conversation(
        self, client: TestClient, service: Any, conversation: ConversationResponse
    ) -> None:
        service.create_conversation.return_value = conversation

        response = client.post(
            "/api/conversations",
            json={"type": "direct", "participant_ids": [CALLER_ID, "other"]},
        )

        assert response.status_code == 201
        assert response.json()["type"] == "direct"
        service.create_conversation.assert_awaited_once_with(
            "direct", None, [CALLER_ID, "other"]
        )

    def test_create_conversation_rule_violation(
        self, client: TestClient, service: Any
    ) -> None:
        service.create_conversation.side_effect = InvalidRequestError(
            "group conversations require a name"
        )

        response = client.post(
            "/api/conversations", json={"type": "group", "participant_ids": ["u1"]}
        )

        assert response.status_code == 400
        assert response.json() == {
            "message": "group conversations require a name",
            "code": "INVALID_REQUEST",
        }

    def test_create_conversation_invalid_type(self, client: TestClient) -> None:
        response = client.post(
            "/api/conversations", json={"type": "channel", "participant_ids": ["u1"]}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert any(detail["path"].endswith("type") for detail in body["details"])

    def test_get_conversation(
        self, client: TestClient, service: Any, conversation: ConversationResponse
    ) -> None:
        service.get_conversation.return_value = conversation

        response = client.get(f"/api/conversations/{conversation.id}")

        assert response.status_code == 200
        service.get_conversation.assert_awaited_once_with(conversation.id, CALLER_ID)

    def test_get_conversation_not_found(self, client: TestClient, service: Any) -> None:
        service.get_conversation.side_effect = NotFoundError("Conversation not found")

        response = client.get(f"/api/conversations/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["message"] == "Conversation not found"

    def test_get_conversation_invalid_id(self, client: TestClient) -> None:
        response = client.get("/api/conversations/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_add_participant(self, client: TestClient, service: Any) -> None:
        conversation_id = str(uuid4())
        service.add_participant.return_value = ParticipantResponse(
            id=str(uuid4()),
            conversation_id=conversation_id,
            user_id="u3",
            role="admin",
            joined_at=NOW,
        )

        response = client.post(
            f"/api/conversations/{conversation_id}/participants",
            json={"user_id": "u3", "role": "admin"},
        )

        assert response.status_code == 201
        assert response.json()["role"] == "admin"
        service.add_participant.assert_awaited_once_with(conversation_id, "u3", "admin")

    def test_leave(self, client: TestClient, service: Any) -> None:
        conversation_id = str(uuid4())
        service.remove_participant.return_value = ParticipantResponse(
            id=str(uuid4()),
            conversation_id=conversation_id,
            user_id=CALLER_ID,
            role="member",
            joined_at=NOW,
            left_at=NOW,
        )

        response = client.post(f"/api/conversations/{conversation_id}/leave")

        assert response.status_code == 200
        assert response.json()["left_at"] is not None
        service.remove_participant.assert_awaited_once_with(conversation_id, CALLER_ID)

    def test_list_messages(self, client: TestClient, service: Any) -> None:
        conversation_id = str(uuid4())
        service.list_messages.return_value = [self._message(conversation_id)]

        response = client.get(
            f"/api/conversations/{conversation_id}/messages",
            params={"limit": 20, "before": "2026-01-05T12:00:00Z"},
        )

        assert response.status_code == 200
        assert response.json()[0]["reactions"] == []
        service.list_messages.assert_awaited_once_with(
            conversation_id, CALLER_ID, limit=20, before=NOW
        )

    def test_list_messages_forbidden(self, client: TestClient, service: Any) -> None:
        service.list_messages.side_effect = ForbiddenError(
            "User is not an active participant in this conversation."
        )

        response = client.get(f"/api/conversations/{uuid4()}/messages")

        assert response.status_code == 403
        assert response.json() == {
            "message": "User is not an active participant in this conversation.",
            "code": "FORBIDDEN",
        }

    def test_send_message(self, client: TestClient, service: Any) -> None:
        conversation_id = str(uuid4())
        service.send_message.return_value = self._message(conversation_id, text="hi")

        response = client.post(
            f"/api/conversations/{conversation_id}/messages", json={"text": "hi"}
        )

        assert response.status_code == 201
        assert response.json()["text"] == "hi"
        service.send_message.assert_awaited_once_with(
            conversation_id, CALLER_ID, "hi", reply_to_message_id=None
        )

    def test_send_empty_message(self, client: TestClient, service: Any) -> None:
        response = client.post(
            f"/api/conversations/{uuid4()}/messages", json={"text": ""}
        )

        assert response.status_code == 400
        service.send_message.assert_not_called()

    def test_mark_read(self, client: TestClient, service: Any) -> None:
        conversation_id = str(uuid4())
        message_id = str(uuid4())
        service.mark_conversation_read.return_value = ConversationReadResponse(
            id=str(uuid4()),
            conversation_id=conversation_id,
            user_id=CALLER_ID,
            last_read_message_id=message_id,
            updated_at=NOW,
        )

        response = client.post(
            f"/api/conversations/{conversation_id}/read",
            json={"last_read_message_id": message_id},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["read"]["last_read_message_id"] == message_id

    def test_unread_count(self, client: TestClient, service: Any) -> None:
        service.count_unread.return_value = 4

        response = client.get(f"/api/conversations/{uuid4()}/unread-count")

        assert response.status_code == 200
        assert response.json() == {"unread_count": 4}
