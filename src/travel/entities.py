"""Domain values for users and travel requests.

Entities are immutable. Every change goes through a function returning a
new value, so the workflow never depends on the order of in-place
mutations.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import FrozenSet, Optional, Tuple

from .errors import FutureDatesOnly, InvalidDateRange, InvalidStatus

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UserRole(str, enum.Enum):
    COMMON = "USER"
    ADMIN = "ADMIN"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().upper()
            for member in cls:
                if normalized in (member.value, member.name):
                    return member
        return None


class TravelStatus(str, enum.Enum):
    SOLICITED = "SOLICITED"
    APPROVED = "APPROVED"
    CANCELED = "CANCELED"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized == "REJECTED":
                return cls.CANCELED
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TravelStatus.APPROVED, TravelStatus.CANCELED})


@dataclass(frozen=True)
class User:
    """A registered account. Users are soft-deleted, never removed."""

    id: uuid.UUID
    name: str
    email: str
    password_hash: str
    role: UserRole = UserRole.COMMON
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    @property
    def can_login(self) -> bool:
        return self.is_active and self.deleted_at is None


@dataclass(frozen=True)
class TravelRequest:
    """A travel request and the audit trail of its status decision."""

    id: uuid.UUID
    user_id: uuid.UUID
    traveler_name: str
    destination_name: str
    departure_date: datetime
    return_date: Optional[datetime] = None
    status: TravelStatus = TravelStatus.SOLICITED
    canceled_by: Optional[uuid.UUID] = None
    canceled_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    version: int = 1
    user: Optional[User] = None

    def is_owned_by(self, user_id: uuid.UUID) -> bool:
        return self.user_id == user_id


@dataclass(frozen=True)
class TravelRequestChanges:
    """Partial update of the content fields; ``None`` means "leave as is"."""

    traveler_name: Optional[str] = None
    destination_name: Optional[str] = None
    departure_date: Optional[datetime] = None
    return_date: Optional[datetime] = None

    def supplied(self) -> dict:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class TravelRequestFilters:
    """Optional constraints narrowing a list query."""

    user_id: Optional[uuid.UUID] = None
    status: Optional[TravelStatus] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    destination: Optional[str] = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.page < 1:
            object.__setattr__(self, "page", 1)
        if self.page_size < 1:
            object.__setattr__(self, "page_size", DEFAULT_PAGE_SIZE)
        elif self.page_size > MAX_PAGE_SIZE:
            object.__setattr__(self, "page_size", MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def check_schedule(
    departure: datetime,
    return_date: Optional[datetime],
    now: datetime,
    *,
    require_future: bool = True,
) -> None:
    """Raise when the dates break the future-only or ordering rules."""
    if require_future and departure <= now:
        raise FutureDatesOnly()
    if return_date is not None and departure >= return_date:
        raise InvalidDateRange()


def apply_changes(
    request: TravelRequest, changes: TravelRequestChanges, now: datetime
) -> Tuple[TravelRequest, FrozenSet[str]]:
    """Return the updated request and the names of fields whose value changed.

    ``updated_at`` is always bumped, even when nothing else changed.
    """
    supplied = changes.supplied()
    changed = frozenset(
        name for name, value in supplied.items() if getattr(request, name) != value
    )
    return replace(request, updated_at=now, **supplied), changed


def transition(
    request: TravelRequest, target: TravelStatus, actor_id: uuid.UUID, now: datetime
) -> TravelRequest:
    """Move ``request`` into a terminal status, stamping who decided and when."""
    if target is TravelStatus.APPROVED:
        return replace(
            request,
            status=target,
            approved_by=actor_id,
            approved_at=now,
            updated_at=now,
        )
    if target is TravelStatus.CANCELED:
        return replace(
            request,
            status=target,
            canceled_by=actor_id,
            canceled_at=now,
            updated_at=now,
        )
    raise InvalidStatus()
