from sqlalchemy import Column, DateTime, ForeignKey, String, Text

from chat_service.database import Base, new_id, utc_now


class AuthUserModel(Base):
    """SQLAlchemy model for auth_users table (credentials only)."""

    __tablename__ = "auth_users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(64), nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class AuthSessionModel(Base):
    """SQLAlchemy model for auth_sessions table."""

    __tablename__ = "auth_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    auth_user_id = Column(
        String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False
    )
    token = Column(String(128), nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
