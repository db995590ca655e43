from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from chat_service.database import Base, new_id, utc_now


class BookmarkModel(Base):
    """SQLAlchemy model for message_bookmarks table."""

    __tablename__ = "message_bookmarks"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="message_bookmarks_unique"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    message_id = Column(
        String(36), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
