from sqlalchemy import Column, DateTime, ForeignKey, String, Text

from chat_service.database import Base, new_id, utc_now


class UserModel(Base):
    """SQLAlchemy model for users table (chat identities)."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    id_alias = Column(String(64), nullable=False, unique=True)
    name = Column(Text, nullable=False)
    avatar_url = Column(Text)
    # Link to the credentials row; null for users created through the dev endpoint
    auth_user_id = Column(
        String(36),
        ForeignKey("auth_users.id", ondelete="SET NULL"),
        unique=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
