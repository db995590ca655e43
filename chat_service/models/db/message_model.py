from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)

from chat_service.database import Base, new_id, utc_now


class MessageModel(Base):
    """SQLAlchemy model for messages table."""

    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("type IN ('text', 'system')", name="message_type_check"),
        CheckConstraint(
            "system_event IS NULL OR system_event IN ('join', 'leave')",
            name="message_system_event_check",
        ),
        CheckConstraint("status IN ('active', 'deleted')", name="message_status_check"),
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    # Null for system messages
    sender_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    type = Column(String(16), nullable=False, default="text")
    text = Column(Text)
    reply_to_message_id = Column(String(36), ForeignKey("messages.id"))
    system_event = Column(String(16))
    status = Column(String(16), nullable=False, default="active")
    deleted_at = Column(DateTime(timezone=True))
    deleted_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
