from sqlalchemy import CheckConstraint, Column, DateTime, String, Text

from chat_service.database import Base, new_id, utc_now


class ConversationModel(Base):
    """SQLAlchemy model for conversations table."""

    __tablename__ = "conversations"
    __table_args__ = (
        CheckConstraint("type IN ('direct', 'group')", name="conversation_type_check"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    type = Column(String(16), nullable=False)
    # Required for group conversations, always null for direct ones
    name = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
