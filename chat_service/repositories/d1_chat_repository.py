import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence

from chat_service.clients.d1_client import D1QueryError
from chat_service.database import new_id, utc_now
from chat_service.errors import PersistenceError
from chat_service.models.api.bookmarks import BookmarkListItem, BookmarkResponse
from chat_service.models.api.conversations import ConversationResponse
from chat_service.models.api.messages import MessageResponse
from chat_service.models.api.participants import ParticipantResponse
from chat_service.models.api.reactions import ReactionResponse
from chat_service.models.api.reads import ConversationReadResponse
from chat_service.models.api.users import UserResponse
from chat_service.repositories.chat_repository import (
    DEFAULT_MESSAGE_LIMIT,
    REACTION_LIMIT_PER_MESSAGE,
    ChatRepository,
)
from chat_service.repositories.d1_repository import (
    D1Repository,
    placeholders,
    to_d1_timestamp,
)

logger = logging.getLogger(__name__)

# D1 rejects statements with more than 100 bound parameters
D1_MAX_BOUND_PARAMETERS = 100

PARTICIPANT_COLUMNS = 5

PARTICIPANT_SELECT = """
SELECT p.id, p.conversation_id, p.user_id, p.role, p.joined_at, p.left_at,
       u.id AS user__id, u.id_alias AS user__id_alias, u.name AS user__name,
       u.avatar_url AS user__avatar_url, u.created_at AS user__created_at
FROM participants p
LEFT JOIN users u ON u.id = p.user_id
"""


def _chunks(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class D1ChatRepository(D1Repository, ChatRepository):
    """ChatRepository backed by Cloudflare D1 over its HTTP API."""

    # Conversations

    async def create_conversation(
        self, type: str, name: Optional[str], participant_ids: List[str]
    ) -> ConversationResponse:
        conversation_id = new_id()
        now = to_d1_timestamp(utc_now())
        unique_ids = list(dict.fromkeys(participant_ids))

        await self._run(
            "INSERT INTO conversations (id, type, name, created_at) VALUES (?, ?, ?, ?)",
            [conversation_id, type, name, now],
        )

        try:
            rows_per_statement = D1_MAX_BOUND_PARAMETERS // PARTICIPANT_COLUMNS
            for chunk in _chunks(unique_ids, rows_per_statement):
                params: List[Any] = []
                for user_id in chunk:
                    params.extend([new_id(), conversation_id, user_id, "member", now])
                values = ", ".join(
                    f"({placeholders(PARTICIPANT_COLUMNS)})" for _ in chunk
                )
                await self._run(
                    "INSERT INTO participants "
                    "(id, conversation_id, user_id, role, joined_at) "
                    f"VALUES {values}",
                    params,
                )
        except D1QueryError:
            # No transactions over HTTP: drop the half-created conversation
            await self._run("DELETE FROM conversations WHERE id = ?", [conversation_id])
            raise

        participants = await self._participants_by_conversation([conversation_id])
        by_user = {p.user_id: p for p in participants.get(conversation_id, [])}
        ordered = [by_user[user_id] for user_id in unique_ids if user_id in by_user]

        return ConversationResponse(
            id=conversation_id,
            type=type,
            name=name,
            created_at=now,
            participants=ordered,
        )

    async def get_conversation(
        self, conversation_id: str
    ) -> Optional[ConversationResponse]:
        row = await self._first(
            "SELECT * FROM conversations WHERE id = ? LIMIT 1", [conversation_id]
        )
        if not row:
            return None

        participants = await self._participants_by_conversation([conversation_id])
        return self._to_conversation(row, participants.get(conversation_id, []))

    async def list_conversations_for_user(
        self, user_id: str
    ) -> List[ConversationResponse]:
        rows = await self._all(
            """
            SELECT c.* FROM conversations c
            JOIN participants p ON p.conversation_id = c.id
            WHERE p.user_id = ? AND p.left_at IS NULL
            ORDER BY c.created_at DESC, c.id
            """,
            [user_id],
        )
        if not rows:
            return []

        participants = await self._participants_by_conversation(
            [row["id"] for row in rows]
        )
        return [
            self._to_conversation(row, participants.get(row["id"], [])) for row in rows
        ]

    # Participants

    async def add_participant(
        self, conversation_id: str, user_id: str, role: str = "member"
    ) -> ParticipantResponse:
        await self._run(
            """
            INSERT INTO participants (id, conversation_id, user_id, role, joined_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (conversation_id, user_id)
            DO UPDATE SET left_at = NULL, role = excluded.role
            """,
            [new_id(), conversation_id, user_id, role, to_d1_timestamp(utc_now())],
        )

        participant = await self.find_participant(conversation_id, user_id)
        if not participant:
            raise PersistenceError("Failed to add participant")
        return participant

    async def find_participant(
        self, conversation_id: str, user_id: str
    ) -> Optional[ParticipantResponse]:
        row = await self._first(
            PARTICIPANT_SELECT
            + "WHERE p.conversation_id = ? AND p.user_id = ? LIMIT 1",
            [conversation_id, user_id],
        )
        return self._to_participant(row) if row else None

    async def mark_participant_left(
        self, conversation_id: str, user_id: str
    ) -> Optional[ParticipantResponse]:
        await self._run(
            """
            UPDATE participants SET left_at = ?
            WHERE conversation_id = ? AND user_id = ? AND left_at IS NULL
            """,
            [to_d1_timestamp(utc_now()), conversation_id, user_id],
        )
        return await self.find_participant(conversation_id, user_id)

    # Messages

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
        row = await self._first(
            """
            INSERT INTO messages
                (id, conversation_id, sender_user_id, type, text,
                 reply_to_message_id, system_event, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 'active', ?)
            RETURNING *
            """,
            [
                new_id(),
                conversation_id,
                sender_user_id,
                type,
                text,
                reply_to_message_id,
                system_event,
                to_d1_timestamp(utc_now()),
            ],
        )
        if not row:
            raise PersistenceError("Failed to create message")
        return self._to_message(row, [])

    async def list_messages(
        self,
        conversation_id: str,
        limit: int = DEFAULT_MESSAGE_LIMIT,
        before: Optional[datetime] = None,
    ) -> List[MessageResponse]:
        sql = "SELECT * FROM messages WHERE conversation_id = ? AND status = 'active'"
        params: List[Any] = [conversation_id]
        if before is not None:
            sql += " AND created_at < ?"
            params.append(to_d1_timestamp(before))
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        rows = await self._all(sql, params)
        if not rows:
            return []

        try:
            reactions = await self._reactions_by_message([row["id"] for row in rows])
        except PersistenceError:
            logger.error(
                "Failed to fetch reactions for conversation %s",
                conversation_id,
                exc_info=True,
            )
            reactions = {}

        return [self._to_message(row, reactions.get(row["id"], [])) for row in rows]

    async def find_message_by_id(self, message_id: str) -> Optional[MessageResponse]:
        row = await self._first(
            "SELECT * FROM messages WHERE id = ? LIMIT 1", [message_id]
        )
        if not row:
            return None
        return self._to_message(row, await self.list_reactions(message_id))

    async def delete_message(self, message_id: str, deleted_by_user_id: str) -> None:
        await self._run(
            """
            UPDATE messages
            SET status = 'deleted', deleted_at = ?, deleted_by_user_id = ?
            WHERE id = ? AND status = 'active'
            """,
            [to_d1_timestamp(utc_now()), deleted_by_user_id, message_id],
        )

    # Reactions

    async def add_reaction(
        self, message_id: str, user_id: str, emoji: str
    ) -> ReactionResponse:
        row = await self._first(
            """
            INSERT INTO reactions (id, message_id, user_id, emoji, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (message_id, user_id, emoji) DO NOTHING
            RETURNING *
            """,
            [new_id(), message_id, user_id, emoji, to_d1_timestamp(utc_now())],
        )
        if row:
            return self._to_reaction(row)

        existing = await self._first(
            """
            SELECT * FROM reactions
            WHERE message_id = ? AND user_id = ? AND emoji = ? LIMIT 1
            """,
            [message_id, user_id, emoji],
        )
        if not existing:
            raise PersistenceError("Failed to upsert reaction")
        return self._to_reaction(existing)

    async def remove_reaction(
        self, message_id: str, emoji: str, user_id: str
    ) -> Optional[ReactionResponse]:
        row = await self._first(
            """
            DELETE FROM reactions
            WHERE message_id = ? AND user_id = ? AND emoji = ?
            RETURNING *
            """,
            [message_id, user_id, emoji],
        )
        return self._to_reaction(row) if row else None

    async def list_reactions(self, message_id: str) -> List[ReactionResponse]:
        rows = await self._all(
            "SELECT * FROM reactions WHERE message_id = ? ORDER BY created_at, id",
            [message_id],
        )
        return [self._to_reaction(row) for row in rows]

    # Read cursors

    async def update_conversation_read(
        self, conversation_id: str, user_id: str, last_read_message_id: str
    ) -> ConversationReadResponse:
        row = await self._first(
            """
            INSERT INTO conversation_reads
                (id, conversation_id, user_id, last_read_message_id, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (conversation_id, user_id) DO UPDATE SET
                last_read_message_id = excluded.last_read_message_id,
                updated_at = excluded.updated_at
            RETURNING *
            """,
            [
                new_id(),
                conversation_id,
                user_id,
                last_read_message_id,
                to_d1_timestamp(utc_now()),
            ],
        )
        if not row:
            raise PersistenceError("Failed to update read cursor")
        return ConversationReadResponse(**row)

    async def count_unread(self, conversation_id: str, user_id: str) -> int:
        # Without a cursor the empty string sorts before every timestamp
        row = await self._first(
            """
            SELECT COUNT(*) AS unread FROM messages m
            WHERE m.conversation_id = ? AND m.status = 'active'
              AND m.created_at > COALESCE((
                  SELECT lm.created_at FROM conversation_reads r
                  JOIN messages lm ON lm.id = r.last_read_message_id
                  WHERE r.conversation_id = ? AND r.user_id = ?
              ), '')
            """,
            [conversation_id, conversation_id, user_id],
        )
        return int(row["unread"]) if row else 0

    # Bookmarks

    async def add_bookmark(self, message_id: str, user_id: str) -> BookmarkResponse:
        row = await self._first(
            """
            INSERT INTO message_bookmarks (id, message_id, user_id, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (message_id, user_id) DO NOTHING
            RETURNING *
            """,
            [new_id(), message_id, user_id, to_d1_timestamp(utc_now())],
        )
        if row:
            return BookmarkResponse(**row)

        existing = await self._first(
            "SELECT * FROM message_bookmarks WHERE message_id = ? AND user_id = ? LIMIT 1",
            [message_id, user_id],
        )
        if not existing:
            raise PersistenceError("Failed to upsert bookmark")
        return BookmarkResponse(**existing)

    async def remove_bookmark(
        self, message_id: str, user_id: str
    ) -> Optional[BookmarkResponse]:
        row = await self._first(
            """
            DELETE FROM message_bookmarks WHERE message_id = ? AND user_id = ?
            RETURNING *
            """,
            [message_id, user_id],
        )
        return BookmarkResponse(**row) if row else None

    async def list_bookmarks(self, user_id: str) -> List[BookmarkListItem]:
        rows = await self._all(
            """
            SELECT m.id AS message_id, m.conversation_id, m.text,
                   b.created_at AS created_at, m.created_at AS message_created_at
            FROM message_bookmarks b
            JOIN messages m ON m.id = b.message_id
            WHERE b.user_id = ?
            ORDER BY b.created_at DESC, b.id
            """,
            [user_id],
        )
        return [BookmarkListItem(**row) for row in rows]

    # Helpers

    async def _participants_by_conversation(
        self, conversation_ids: List[str]
    ) -> Dict[str, List[ParticipantResponse]]:
        grouped: Dict[str, List[ParticipantResponse]] = defaultdict(list)
        for chunk in _chunks(conversation_ids, D1_MAX_BOUND_PARAMETERS):
            rows = await self._all(
                PARTICIPANT_SELECT
                + f"WHERE p.conversation_id IN ({placeholders(len(chunk))}) "
                "ORDER BY p.joined_at, p.id",
                list(chunk),
            )
            for row in rows:
                grouped[row["conversation_id"]].append(self._to_participant(row))
        return grouped

    async def _reactions_by_message(
        self, message_ids: List[str]
    ) -> Dict[str, List[ReactionResponse]]:
        grouped: Dict[str, List[ReactionResponse]] = defaultdict(list)
        for chunk in _chunks(message_ids, D1_MAX_BOUND_PARAMETERS):
            rows = await self._all(
                f"SELECT * FROM reactions WHERE message_id IN ({placeholders(len(chunk))}) "
                "ORDER BY created_at DESC, id",
                list(chunk),
            )
            for row in rows:
                bucket = grouped[row["message_id"]]
                if len(bucket) < REACTION_LIMIT_PER_MESSAGE:
                    bucket.append(self._to_reaction(row))
        return grouped

    def _to_conversation(
        self, row: Dict[str, Any], participants: List[ParticipantResponse]
    ) -> ConversationResponse:
        return ConversationResponse(
            id=row["id"],
            type=row["type"],
            name=row.get("name"),
            created_at=row["created_at"],
            participants=participants,
        )

    def _to_participant(self, row: Dict[str, Any]) -> ParticipantResponse:
        user = None
        if row.get("user__id"):
            user = UserResponse(
                id=row["user__id"],
                id_alias=row["user__id_alias"],
                name=row["user__name"],
                avatar_url=row.get("user__avatar_url"),
                created_at=row["user__created_at"],
            )
        return ParticipantResponse(
            id=row["id"],
            conversation_id=row["conversation_id"],
            user_id=row["user_id"],
            role=row["role"],
            joined_at=row["joined_at"],
            left_at=row.get("left_at"),
            user=user,
        )

    def _to_message(
        self, row: Dict[str, Any], reactions: List[ReactionResponse]
    ) -> MessageResponse:
        return MessageResponse(
            id=row["id"],
            conversation_id=row["conversation_id"],
            sender_user_id=row.get("sender_user_id"),
            type=row["type"],
            text=row.get("text"),
            reply_to_message_id=row.get("reply_to_message_id"),
            system_event=row.get("system_event"),
            status=row.get("status") or "active",
            deleted_at=row.get("deleted_at"),
            deleted_by_user_id=row.get("deleted_by_user_id"),
            created_at=row["created_at"],
            reactions=reactions,
        )

    def _to_reaction(self, row: Dict[str, Any]) -> ReactionResponse:
        return ReactionResponse(
            id=row["id"],
            message_id=row["message_id"],
            user_id=row["user_id"],
            emoji=row["emoji"],
            created_at=row["created_at"],
        )
