from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from ..database import Base
from ..entities import TravelStatus, utcnow
from .user import UserRecord


class TravelRequestRecord(Base):
    """SQLAlchemy model for a travel request and its status decision."""

    __tablename__ = "travel_requests"

    id = Column(Uuid, primary_key=True)
    user_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)
    traveler_name = Column(String(255), nullable=False)
    destination_name = Column(String(255), nullable=False)
    departure_date = Column(DateTime(timezone=True), nullable=False)
    return_date = Column(DateTime(timezone=True))
    status = Column(
        Enum(
            TravelStatus,
            name="travel_request_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=TravelStatus.SOLICITED,
        index=True,
        nullable=False,
    )
    canceled_by = Column(Uuid, ForeignKey("users.id"))
    canceled_at = Column(DateTime(timezone=True))
    approved_by = Column(Uuid, ForeignKey("users.id"))
    approved_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True))
    version = Column(Integer, default=1, nullable=False)

    user = relationship(UserRecord, foreign_keys=[user_id], lazy="joined")
