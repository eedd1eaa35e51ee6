"""Persistence capabilities used by the workflows.

The workflows only see the ``UserStore`` and ``TravelStore`` protocols; the
SQLAlchemy implementations below open one session per call, the way the
rest of the service layer does.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Callable, List, Optional, Protocol, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from .database import SessionLocal
from .entities import (
    TravelRequest,
    TravelRequestFilters,
    User,
    ensure_utc,
)
from .errors import AlreadyExists, ConcurrentUpdate, NotFound
from .models.travel import TravelRequestRecord
from .models.user import UserRecord

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class UserStore(Protocol):
    def create(self, user: User) -> User: ...

    def find_by_id(self, user_id: uuid.UUID) -> Optional[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def update(self, user: User) -> User: ...


class TravelStore(Protocol):
    def create(self, request: TravelRequest) -> TravelRequest: ...

    def find_by_id(self, request_id: uuid.UUID) -> Optional[TravelRequest]: ...

    def update(self, request: TravelRequest) -> TravelRequest:
        """Persist ``request`` if its version is current, else raise ``ConcurrentUpdate``."""
        ...

    def list(self, filters: TravelRequestFilters) -> Tuple[List[TravelRequest], int]: ...

    def list_by_owner(
        self, owner_id: uuid.UUID, filters: TravelRequestFilters
    ) -> Tuple[List[TravelRequest], int]: ...


def _handle_store_error(session: Session, exc: Exception) -> None:
    """Rollback the transaction and log database failures before re-raising."""
    session.rollback()
    if isinstance(exc, SQLAlchemyError):
        logger.exception("store error", exc_info=exc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _to_user(record: UserRecord) -> User:
    return User(
        id=record.id,
        name=record.name,
        email=record.email,
        password_hash=record.password_hash,
        role=record.role,
        is_active=record.is_active,
        created_at=ensure_utc(record.created_at),
        updated_at=ensure_utc(record.updated_at),
        deleted_at=ensure_utc(record.deleted_at),
    )


def _to_travel_request(record: TravelRequestRecord) -> TravelRequest:
    return TravelRequest(
        id=record.id,
        user_id=record.user_id,
        traveler_name=record.traveler_name,
        destination_name=record.destination_name,
        departure_date=ensure_utc(record.departure_date),
        return_date=ensure_utc(record.return_date),
        status=record.status,
        canceled_by=record.canceled_by,
        canceled_at=ensure_utc(record.canceled_at),
        approved_by=record.approved_by,
        approved_at=ensure_utc(record.approved_at),
        created_at=ensure_utc(record.created_at),
        updated_at=ensure_utc(record.updated_at),
        version=record.version,
        user=_to_user(record.user) if record.user is not None else None,
    )


class SqlUserStore:
    """User persistence backed by the ``users`` table."""

    def __init__(self, session_factory: SessionFactory = SessionLocal) -> None:
        self._session_factory = session_factory

    def create(self, user: User) -> User:
        session = self._session_factory()
        try:
            record = UserRecord(
                id=user.id,
                name=user.name,
                email=normalize_email(user.email),
                password_hash=user.password_hash,
                role=user.role,
                is_active=user.is_active,
                created_at=user.created_at,
                updated_at=user.updated_at,
                deleted_at=user.deleted_at,
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_user(record)
        except IntegrityError as exc:
            session.rollback()
            raise AlreadyExists() from exc
        except Exception as exc:
            _handle_store_error(session, exc)
            raise
        finally:
            session.close()

    def find_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        session = self._session_factory()
        try:
            record = session.get(UserRecord, user_id)
            return _to_user(record) if record is not None else None
        except Exception as exc:
            _handle_store_error(session, exc)
            raise
        finally:
            session.close()

    def find_by_email(self, email: str) -> Optional[User]:
        session = self._session_factory()
        try:
            record = (
                session.query(UserRecord)
                .filter(UserRecord.email == normalize_email(email))
                .first()
            )
            return _to_user(record) if record is not None else None
        except Exception as exc:
            _handle_store_error(session, exc)
            raise
        finally:
            session.close()

    def update(self, user: User) -> User:
        session = self._session_factory()
        try:
            record = session.get(UserRecord, user.id)
            if record is None:
                raise NotFound("user not found")
            record.name = user.name
            record.email = normalize_email(user.email)
            record.password_hash = user.password_hash
            record.role = user.role
            record.is_active = user.is_active
            record.updated_at = user.updated_at
            record.deleted_at = user.deleted_at
            session.commit()
            session.refresh(record)
            return _to_user(record)
        except Exception as exc:
            _handle_store_error(session, exc)
            raise
        finally:
            session.close()


class SqlTravelStore:
    """Travel request persistence with optimistic versioning on updates."""

    def __init__(self, session_factory: SessionFactory = SessionLocal) -> None:
        self._session_factory = session_factory

    def create(self, request: TravelRequest) -> TravelRequest:
        session = self._session_factory()
        try:
            record = TravelRequestRecord(
                id=request.id,
                user_id=request.user_id,
                traveler_name=request.traveler_name,
                destination_name=request.destination_name,
                departure_date=request.departure_date,
                return_date=request.return_date,
                status=request.status,
                created_at=request.created_at,
                updated_at=request.updated_at,
                version=request.version,
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_travel_request(record)
        except Exception as exc:
            _handle_store_error(session, exc)
            raise
        finally:
            session.close()

    def find_by_id(self, request_id: uuid.UUID) -> Optional[TravelRequest]:
        session = self._session_factory()
        try:
            record = session.get(TravelRequestRecord, request_id)
            return _to_travel_request(record) if record is not None else None
        except Exception as exc:
            _handle_store_error(session, exc)
            raise
        finally:
            session.close()

    def update(self, request: TravelRequest) -> TravelRequest:
        session = self._session_factory()
        try:
            # user_id is not written: ownership is fixed at creation
            result = session.execute(
                update(TravelRequestRecord)
                .where(
                    TravelRequestRecord.id == request.id,
                    TravelRequestRecord.version == request.version,
                )
                .values(
                    traveler_name=request.traveler_name,
                    destination_name=request.destination_name,
                    departure_date=request.departure_date,
                    return_date=request.return_date,
                    status=request.status,
                    canceled_by=request.canceled_by,
                    canceled_at=request.canceled_at,
                    approved_by=request.approved_by,
                    approved_at=request.approved_at,
                    updated_at=request.updated_at,
                    version=request.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if session.get(TravelRequestRecord, request.id) is None:
                    raise NotFound("travel request not found")
                raise ConcurrentUpdate()
            session.commit()
            return replace(request, version=request.version + 1)
        except Exception as exc:
            _handle_store_error(session, exc)
            raise
        finally:
            session.close()

    def list(self, filters: TravelRequestFilters) -> Tuple[List[TravelRequest], int]:
        session = self._session_factory()
        try:
            return self._page(_filtered(session.query(TravelRequestRecord), filters), filters)
        except Exception as exc:
            _handle_store_error(session, exc)
            raise
        finally:
            session.close()

    def list_by_owner(
        self, owner_id: uuid.UUID, filters: TravelRequestFilters
    ) -> Tuple[List[TravelRequest], int]:
        session = self._session_factory()
        try:
            query = session.query(TravelRequestRecord).filter(
                TravelRequestRecord.user_id == owner_id
            )
            return self._page(_filtered(query, replace(filters, user_id=None)), filters)
        except Exception as exc:
            _handle_store_error(session, exc)
            raise
        finally:
            session.close()

    @staticmethod
    def _page(query: Query, filters: TravelRequestFilters) -> Tuple[List[TravelRequest], int]:
        total = query.count()
        records = (
            query.order_by(TravelRequestRecord.created_at.desc())
            .offset(filters.offset)
            .limit(filters.page_size)
            .all()
        )
        return [_to_travel_request(r) for r in records], total


def _filtered(query: Query, filters: TravelRequestFilters) -> Query:
    if filters.user_id:
        query = query.filter(TravelRequestRecord.user_id == filters.user_id)
    if filters.status:
        query = query.filter(TravelRequestRecord.status == filters.status)
    if filters.start:
        query = query.filter(TravelRequestRecord.departure_date >= ensure_utc(filters.start))
    if filters.end:
        query = query.filter(TravelRequestRecord.departure_date <= ensure_utc(filters.end))
    if filters.destination:
        query = query.filter(
            TravelRequestRecord.destination_name.ilike(f"%{filters.destination}%")
        )
    return query
