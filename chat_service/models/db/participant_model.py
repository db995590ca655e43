from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from chat_service.database import Base, new_id, utc_now


class ParticipantModel(Base):
    """SQLAlchemy model for participants table."""

    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint(
            "conversation_id", "user_id", name="participants_conversation_user_unique"
        ),
        CheckConstraint("role IN ('member', 'admin')", name="participant_role_check"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role = Column(String(16), nullable=False, default="member")
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    # Null while the participant is active
    left_at = Column(DateTime(timezone=True))

    # Relationships
    user = relationship("UserModel", lazy="joined")
