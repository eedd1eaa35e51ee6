from sqlalchemy import Boolean, Column, DateTime, Enum, String, Uuid

from ..database import Base
from ..entities import UserRole, utcnow


class UserRecord(Base):
    """SQLAlchemy model for application users."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, name="user_type", values_callable=lambda e: [m.value for m in e]),
        default=UserRole.COMMON,
        nullable=False,
    )
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True))
    deleted_at = Column(DateTime(timezone=True))
