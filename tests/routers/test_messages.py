from datetime import datetime, timezone
from typing import Any, Generator
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from chat_service.dependencies import get_chat_service, get_current_user_id
from chat_service.errors import ForbiddenError, NotFoundError
from chat_service.main import app
from chat_service.models.api.bookmarks import BookmarkListItem, BookmarkResponse
from chat_service.models.api.reactions import ReactionResponse
from chat_service.services.chat_service import ChatService

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
CALLER_ID = "caller-1"


class TestMessagesRouter:
    """Unit tests for message, reaction and bookmark endpoints."""

    @pytest.fixture
    def service(self) -> Any:
        return AsyncMock(spec=ChatService)

    @pytest.fixture
    def client(self, service: Any) -> Generator[TestClient, None, None]:
        app.dependency_overrides[get_chat_service] = lambda: service
        app.dependency_overrides[get_current_user_id] = lambda: CALLER_ID
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_delete_message(self, client: TestClient, service: Any) -> None:
        message_id = str(uuid4())

        response = client.delete(f"/api/messages/{message_id}")

        assert response.status_code == 204
        assert response.content == b""
        service.delete_message.assert_awaited_once_with(message_id, CALLER_ID)

    def test_delete_message_forbidden(self, client: TestClient, service: Any) -> None:
        service.delete_message.side_effect = ForbiddenError(
            "You are not authorized to delete this message."
        )

        response = client.delete(f"/api/messages/{uuid4()}")

        assert response.status_code == 403
        assert response.json()["message"] == "You are not authorized to delete this message."

    def test_add_reaction(self, client: TestClient, service: Any) -> None:
        message_id = str(uuid4())
        service.add_reaction.return_value = ReactionResponse(
            id=str(uuid4()),
            message_id=message_id,
            user_id=CALLER_ID,
            emoji="🎉",
            created_at=NOW,
        )

        response = client.post(f"/api/messages/{message_id}/reactions", json={"emoji": "🎉"})

        assert response.status_code == 201
        assert response.json()["emoji"] == "🎉"
        service.add_reaction.assert_awaited_once_with(message_id, CALLER_ID, "🎉")

    def test_list_reactions(self, client: TestClient, service: Any) -> None:
        service.list_reactions.return_value = []

        response = client.get(f"/api/messages/{uuid4()}/reactions")

        assert response.status_code == 200
        assert response.json() == []

    def test_remove_reaction_not_found(self, client: TestClient, service: Any) -> None:
        service.remove_reaction.side_effect = NotFoundError("Reaction not found")
        message_id = str(uuid4())

        response = client.delete(f"/api/messages/{message_id}/reactions/👍")

        assert response.status_code == 404
        assert response.json() == {"message": "Reaction not found", "code": "NOT_FOUND"}
        service.remove_reaction.assert_awaited_once_with(message_id, "👍", CALLER_ID)

    def test_add_bookmark(self, client: TestClient, service: Any) -> None:
        message_id = str(uuid4())
        service.add_bookmark.return_value = BookmarkResponse(
            id=str(uuid4()), message_id=message_id, user_id=CALLER_ID, created_at=NOW
        )

        response = client.post(f"/api/messages/{message_id}/bookmarks")

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "bookmarked"
        assert body["bookmark"]["message_id"] == message_id

    def test_remove_bookmark(self, client: TestClient, service: Any) -> None:
        message_id = str(uuid4())

        response = client.delete(f"/api/messages/{message_id}/bookmarks")

        assert response.status_code == 200
        assert response.json() == {"status": "unbookmarked", "bookmark": None}
        service.remove_bookmark.assert_awaited_once_with(message_id, CALLER_ID)

    def test_list_bookmarks(self, client: TestClient, service: Any) -> None:
        service.list_bookmarks.return_value = [
            BookmarkListItem(
                message_id="m1",
                conversation_id="c1",
                text="remember this",
                created_at=NOW,
                message_created_at=NOW,
            )
        ]

        response = client.get("/api/bookmarks")

        assert response.status_code == 200
        assert response.json()[0]["text"] == "remember this"
        service.list_bookmarks.assert_awaited_once_with(CALLER_ID)
