import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from chat_service.database import ensure_utc, new_id, utc_now
from chat_service.errors import PersistenceError
from chat_service.models.api.bookmarks import BookmarkListItem, BookmarkResponse
from chat_service.models.api.conversations import ConversationResponse
from chat_service.models.api.messages import MessageResponse
from chat_service.models.api.participants import ParticipantResponse
from chat_service.models.api.reactions import ReactionResponse
from chat_service.models.api.reads import ConversationReadResponse
from chat_service.models.api.users import UserResponse
from chat_service.models.db.bookmark_model import BookmarkModel
from chat_service.models.db.conversation_model import ConversationModel
from chat_service.models.db.conversation_read_model import ConversationReadModel
from chat_service.models.db.message_model import MessageModel
from chat_service.models.db.participant_model import ParticipantModel
from chat_service.models.db.reaction_model import ReactionModel
from chat_service.repositories.base_repository import BaseRepository
from chat_service.repositories.chat_repository import (
    DEFAULT_MESSAGE_LIMIT,
    REACTION_LIMIT_PER_MESSAGE,
    ChatRepository,
)

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite stores naive UTC text, so comparisons must use UTC wall time
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlAlchemyChatRepository(
    BaseRepository[ConversationModel, ConversationResponse], ChatRepository
):
    """ChatRepository backed by an async SQLAlchemy session (SQLite or PostgreSQL)."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ConversationModel)

    # Conversations

    async def create_conversation(
        self, type: str, name: Optional[str], participant_ids: List[str]
    ) -> ConversationResponse:
        conversation_id = new_id()
        now = utc_now()
        unique_ids = list(dict.fromkeys(participant_ids))

        await self._execute(
            self._insert(ConversationModel.__table__).values(
                id=conversation_id, type=type, name=name, created_at=now
            )
        )
        if unique_ids:
            await self._execute(
                self._insert(ParticipantModel.__table__),
                [
                    {
                        "id": new_id(),
                        "conversation_id": conversation_id,
                        "user_id": user_id,
                        "role": "member",
                        "joined_at": now,
                    }
                    for user_id in unique_ids
                ],
            )
        await self._commit()

        participants = await self._participants_by_conversation([conversation_id])
        by_user = {p.user_id: p for p in participants.get(conversation_id, [])}
        # Callers get participants in the order they asked for them
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
        db_model = await self._scalar(
            select(ConversationModel).where(ConversationModel.id == conversation_id)
        )
        if not db_model:
            return None

        participants = await self._participants_by_conversation([conversation_id])
        return self._to_conversation(db_model, participants.get(conversation_id, []))

    async def list_conversations_for_user(
        self, user_id: str
    ) -> List[ConversationResponse]:
        query = (
            select(ConversationModel)
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == ConversationModel.id,
            )
            .where(
                ParticipantModel.user_id == user_id,
                ParticipantModel.left_at.is_(None),
            )
            .order_by(ConversationModel.created_at.desc(), ConversationModel.id)
        )
        db_models = await self._scalars(query)
        if not db_models:
            return []

        participants = await self._participants_by_conversation(
            [db_model.id for db_model in db_models]
        )
        return [
            self._to_conversation(db_model, participants.get(db_model.id, []))
            for db_model in db_models
        ]

    # Participants

    async def add_participant(
        self, conversation_id: str, user_id: str, role: str = "member"
    ) -> ParticipantResponse:
        statement = self._insert(ParticipantModel.__table__).values(
            id=new_id(),
            conversation_id=conversation_id,
            user_id=user_id,
            role=role,
            joined_at=utc_now(),
        )
        statement = statement.on_conflict_do_update(
            index_elements=["conversation_id", "user_id"],
            set_={"left_at": None, "role": role},
        )
        await self._execute(statement)
        await self._commit()

        participant = await self.find_participant(conversation_id, user_id)
        if not participant:
            raise PersistenceError("Failed to add participant")
        return participant

    async def find_participant(
        self, conversation_id: str, user_id: str
    ) -> Optional[ParticipantResponse]:
        db_model = await self._scalar(
            select(ParticipantModel).where(
                ParticipantModel.conversation_id == conversation_id,
                ParticipantModel.user_id == user_id,
            )
        )
        return self._to_participant(db_model) if db_model else None

    async def mark_participant_left(
        self, conversation_id: str, user_id: str
    ) -> Optional[ParticipantResponse]:
        await self._execute(
            update(ParticipantModel.__table__)
            .where(
                ParticipantModel.conversation_id == conversation_id,
                ParticipantModel.user_id == user_id,
                # Keep the original leave time when leaving twice
                ParticipantModel.left_at.is_(None),
            )
            .values(left_at=utc_now())
        )
        await self._commit()
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
        values: Dict[str, Any] = {
            "id": new_id(),
            "conversation_id": conversation_id,
            "sender_user_id": sender_user_id,
            "type": type,
            "text": text,
            "reply_to_message_id": reply_to_message_id,
            "system_event": system_event,
            "status": "active",
            "created_at": utc_now(),
        }
        await self._execute(self._insert(MessageModel.__table__).values(**values))
        await self._commit()

        # New messages have no reactions yet
        return MessageResponse(**values, reactions=[])

    async def list_messages(
        self,
        conversation_id: str,
        limit: int = DEFAULT_MESSAGE_LIMIT,
        before: Optional[datetime] = None,
    ) -> List[MessageResponse]:
        query = select(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.status == "active",
        )
        if before is not None:
            query = query.where(MessageModel.created_at < _as_utc(before))
        query = query.order_by(
            MessageModel.created_at.desc(), MessageModel.id.desc()
        ).limit(limit)

        # Detach the page first: a failed reaction query rolls back and expires the rows
        messages = [self._to_message(m, []) for m in await self._scalars(query)]
        if not messages:
            return []

        try:
            reactions = await self._reactions_by_message([m.id for m in messages])
        except PersistenceError:
            # The page is still useful without reactions
            logger.error(
                "Failed to fetch reactions for conversation %s",
                conversation_id,
                exc_info=True,
            )
            return messages

        for message in messages:
            message.reactions = reactions.get(message.id, [])
        return messages

    async def find_message_by_id(self, message_id: str) -> Optional[MessageResponse]:
        db_model = await self._scalar(
            select(MessageModel).where(MessageModel.id == message_id)
        )
        if not db_model:
            return None

        reactions = await self.list_reactions(message_id)
        return self._to_message(db_model, reactions)

    async def delete_message(self, message_id: str, deleted_by_user_id: str) -> None:
        await self._execute(
            update(MessageModel.__table__)
            .where(MessageModel.id == message_id, MessageModel.status == "active")
            .values(
                status="deleted",
                deleted_at=utc_now(),
                deleted_by_user_id=deleted_by_user_id,
            )
        )
        await self._commit()

    # Reactions

    async def add_reaction(
        self, message_id: str, user_id: str, emoji: str
    ) -> ReactionResponse:
        table = ReactionModel.__table__
        statement = (
            self._insert(table)
            .values(
                id=new_id(),
                message_id=message_id,
                user_id=user_id,
                emoji=emoji,
                created_at=utc_now(),
            )
            .on_conflict_do_nothing(index_elements=["message_id", "user_id", "emoji"])
            .returning(*table.c)
        )
        row = (await self._execute(statement)).first()
        await self._commit()
        if row:
            return self._to_reaction(row)

        existing = await self._scalar(
            select(ReactionModel).where(
                ReactionModel.message_id == message_id,
                ReactionModel.user_id == user_id,
                ReactionModel.emoji == emoji,
            )
        )
        if not existing:
            raise PersistenceError("Failed to upsert reaction")
        return self._to_reaction(existing)

    async def remove_reaction(
        self, message_id: str, emoji: str, user_id: str
    ) -> Optional[ReactionResponse]:
        table = ReactionModel.__table__
        statement = (
            delete(table)
            .where(
                table.c.message_id == message_id,
                table.c.user_id == user_id,
                table.c.emoji == emoji,
            )
            .returning(*table.c)
        )
        row = (await self._execute(statement)).first()
        await self._commit()
        return self._to_reaction(row) if row else None

    async def list_reactions(self, message_id: str) -> List[ReactionResponse]:
        db_models = await self._scalars(
            select(ReactionModel)
            .where(ReactionModel.message_id == message_id)
            .order_by(ReactionModel.created_at, ReactionModel.id)
        )
        return [self._to_reaction(db_model) for db_model in db_models]

    # Read cursors

    async def update_conversation_read(
        self, conversation_id: str, user_id: str, last_read_message_id: str
    ) -> ConversationReadResponse:
        table = ConversationReadModel.__table__
        now = utc_now()
        statement = (
            self._insert(table)
            .values(
                id=new_id(),
                conversation_id=conversation_id,
                user_id=user_id,
                last_read_message_id=last_read_message_id,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["conversation_id", "user_id"],
                set_={"last_read_message_id": last_read_message_id, "updated_at": now},
            )
            .returning(*table.c)
        )
        row = (await self._execute(statement)).first()
        await self._commit()
        if not row:
            raise PersistenceError("Failed to update read cursor")
        return self._to_read(row)

    async def count_unread(self, conversation_id: str, user_id: str) -> int:
        cursor = await self._scalar(
            select(ConversationReadModel).where(
                ConversationReadModel.conversation_id == conversation_id,
                ConversationReadModel.user_id == user_id,
            )
        )

        query = (
            select(func.count())
            .select_from(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.status == "active",
            )
        )
        if cursor and cursor.last_read_message_id:
            last_read_at = (
                await self._execute(
                    select(MessageModel.created_at).where(
                        MessageModel.id == cursor.last_read_message_id
                    )
                )
            ).scalar()
            if last_read_at is not None:
                query = query.where(MessageModel.created_at > last_read_at)

        count = (await self._execute(query)).scalar()
        return int(count or 0)

    # Bookmarks

    async def add_bookmark(self, message_id: str, user_id: str) -> BookmarkResponse:
        table = BookmarkModel.__table__
        statement = (
            self._insert(table)
            .values(
                id=new_id(),
                message_id=message_id,
                user_id=user_id,
                created_at=utc_now(),
            )
            .on_conflict_do_nothing(index_elements=["message_id", "user_id"])
            .returning(*table.c)
        )
        row = (await self._execute(statement)).first()
        await self._commit()
        if row:
            return self._to_bookmark(row)

        existing = await self._scalar(
            select(BookmarkModel).where(
                BookmarkModel.message_id == message_id,
                BookmarkModel.user_id == user_id,
            )
        )
        if not existing:
            raise PersistenceError("Failed to upsert bookmark")
        return self._to_bookmark(existing)

    async def remove_bookmark(
        self, message_id: str, user_id: str
    ) -> Optional[BookmarkResponse]:
        table = BookmarkModel.__table__
        statement = (
            delete(table)
            .where(table.c.message_id == message_id, table.c.user_id == user_id)
            .returning(*table.c)
        )
        row = (await self._execute(statement)).first()
        await self._commit()
        return self._to_bookmark(row) if row else None

    async def list_bookmarks(self, user_id: str) -> List[BookmarkListItem]:
        query = (
            select(BookmarkModel, MessageModel)
            .join(MessageModel, BookmarkModel.message_id == MessageModel.id)
            .where(BookmarkModel.user_id == user_id)
            .order_by(BookmarkModel.created_at.desc(), BookmarkModel.id)
        )
        result = await self._execute(query)
        return [
            BookmarkListItem(
                message_id=message.id,
                conversation_id=message.conversation_id,
                text=message.text,
                created_at=ensure_utc(bookmark.created_at),
                message_created_at=ensure_utc(message.created_at),
            )
            for bookmark, message in result.all()
        ]

    # Helpers

    async def _participants_by_conversation(
        self, conversation_ids: List[str]
    ) -> Dict[str, List[ParticipantResponse]]:
        db_models = await self._scalars(
            select(ParticipantModel)
            .where(ParticipantModel.conversation_id.in_(conversation_ids))
            .order_by(ParticipantModel.joined_at, ParticipantModel.id)
        )
        grouped: Dict[str, List[ParticipantResponse]] = defaultdict(list)
        for db_model in db_models:
            grouped[db_model.conversation_id].append(self._to_participant(db_model))
        return grouped

    async def _reactions_by_message(
        self, message_ids: List[str]
    ) -> Dict[str, List[ReactionResponse]]:
        # One query for the whole page instead of one per message
        db_models = await self._scalars(
            select(ReactionModel)
            .where(ReactionModel.message_id.in_(message_ids))
            .order_by(ReactionModel.created_at.desc(), ReactionModel.id)
        )
        grouped: Dict[str, List[ReactionResponse]] = defaultdict(list)
        for db_model in db_models:
            bucket = grouped[db_model.message_id]
            if len(bucket) < REACTION_LIMIT_PER_MESSAGE:
                bucket.append(self._to_reaction(db_model))
        return grouped

    def _to_conversation(
        self, db_model: Any, participants: List[ParticipantResponse]
    ) -> ConversationResponse:
        return ConversationResponse(
            id=db_model.id,
            type=db_model.type,
            name=db_model.name,
            created_at=ensure_utc(db_model.created_at),
            participants=participants,
        )

    def _to_participant(self, db_model: Any) -> ParticipantResponse:
        user = db_model.user
        return ParticipantResponse(
            id=db_model.id,
            conversation_id=db_model.conversation_id,
            user_id=db_model.user_id,
            role=db_model.role,
            joined_at=ensure_utc(db_model.joined_at),
            left_at=ensure_utc(db_model.left_at),
            user=(
                UserResponse(
                    id=user.id,
                    id_alias=user.id_alias,
                    name=user.name,
                    avatar_url=user.avatar_url,
                    created_at=ensure_utc(user.created_at),
                )
                if user
                else None
            ),
        )

    def _to_message(
        self, db_model: Any, reactions: List[ReactionResponse]
    ) -> MessageResponse:
        return MessageResponse(
            id=db_model.id,
            conversation_id=db_model.conversation_id,
            sender_user_id=db_model.sender_user_id,
            type=db_model.type,
            text=db_model.text,
            reply_to_message_id=db_model.reply_to_message_id,
            system_event=db_model.system_event,
            status=db_model.status,
            deleted_at=ensure_utc(db_model.deleted_at),
            deleted_by_user_id=db_model.deleted_by_user_id,
            created_at=ensure_utc(db_model.created_at),
            reactions=reactions,
        )

    def _to_reaction(self, row: Any) -> ReactionResponse:
        return ReactionResponse(
            id=row.id,
            message_id=row.message_id,
            user_id=row.user_id,
            emoji=row.emoji,
            created_at=ensure_utc(row.created_at),
        )

    def _to_read(self, row: Any) -> ConversationReadResponse:
        return ConversationReadResponse(
            id=row.id,
            conversation_id=row.conversation_id,
            user_id=row.user_id,
            last_read_message_id=row.last_read_message_id,
            updated_at=ensure_utc(row.updated_at),
        )

    def _to_bookmark(self, row: Any) -> BookmarkResponse:
        return BookmarkResponse(
            id=row.id,
            message_id=row.message_id,
            user_id=row.user_id,
            created_at=ensure_utc(row.created_at),
        )

    def _to_pydantic(self, db_model: Any) -> ConversationResponse:
        return self._to_conversation(db_model, [])
