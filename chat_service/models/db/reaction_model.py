from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint

from chat_service.database import Base, new_id, utc_now


class ReactionModel(Base):
    """SQLAlchemy model for reactions table."""

    __tablename__ = "reactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="reaction_unique"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    message_id = Column(
        String(36), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    emoji = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
