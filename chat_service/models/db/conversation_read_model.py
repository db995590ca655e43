from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from chat_service.database import Base, new_id, utc_now


class ConversationReadModel(Base):
    """SQLAlchemy model for conversation_reads table (per-user read cursor)."""

    __tablename__ = "conversation_reads"
    __table_args__ = (
        UniqueConstraint(
            "conversation_id", "user_id", name="conversation_reads_unique"
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    last_read_message_id = Column(
        String(36), ForeignKey("messages.id", ondelete="SET NULL")
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
