"""Service layer for registration, login and the travel request workflow."""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional, Tuple, Union

from prometheus_client import Counter

from .entities import (
    TravelRequest,
    TravelRequestChanges,
    TravelRequestFilters,
    TravelStatus,
    User,
    UserRole,
    apply_changes,
    check_schedule,
    ensure_utc,
    transition,
    utcnow,
)
from .errors import (
    AlreadyExists,
    InvalidArgument,
    InvalidCredentials,
    InvalidDestination,
    InvalidStatus,
    NotFound,
    NotModifiable,
    Unauthorized,
    ValidationError,
)
from .notifications import Notifier
from .policy import can_transition
from .security import create_access_token, hash_password, verify_password
from .stores import TravelStore, UserStore, normalize_email


logger = logging.getLogger(__name__)

USER_COUNTER = Counter("users_registered_total", "Total users registered")
TRAVEL_CREATED_COUNTER = Counter(
    "travel_requests_created_total", "Total travel requests created"
)
STATUS_CHANGE_COUNTER = Counter(
    "travel_status_changes_total",
    "Total travel request status changes",
    ["status"],
)

Clock = Callable[[], datetime]
Identifier = Union[str, uuid.UUID]


def _parse_id(value: Identifier, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise InvalidArgument(f"invalid {label} id: {value!r}") from exc


def _parse_status(value: Union[str, TravelStatus]) -> TravelStatus:
    try:
        return TravelStatus(value)
    except ValueError as exc:
        raise InvalidStatus() from exc


class AuthWorkflow:
    """Register users and exchange credentials for access tokens."""

    def __init__(self, users: UserStore, clock: Clock = utcnow) -> None:
        self._users = users
        self._clock = clock

    def register(
        self,
        name: str,
        email: str,
        password: str,
        role: Union[str, UserRole] = UserRole.COMMON,
    ) -> User:
        if not name or not name.strip():
            raise ValidationError("name is required")
        if not password:
            raise ValidationError("password is required")
        try:
            role = UserRole(role)
        except ValueError as exc:
            raise ValidationError(f"unknown role: {role!r}") from exc

        email = normalize_email(email)
        if self._users.find_by_email(email) is not None:
            logger.info("rejected duplicate registration email=%s", email)
            raise AlreadyExists()

        user = self._users.create(
            User(
                id=uuid.uuid4(),
                name=name.strip(),
                email=email,
                password_hash=hash_password(password),
                role=role,
                created_at=self._clock(),
            )
        )
        USER_COUNTER.inc()
        logger.info("registered user id=%s role=%s", user.id, user.role.value)
        return user

    def authenticate(self, email: str, password: str) -> str:
        """Return a signed access token for valid credentials."""
        user = self._users.find_by_email(email)
        if user is None or not user.can_login or not verify_password(password, user.password_hash):
            logger.warning("failed login email=%s", normalize_email(email))
            raise InvalidCredentials()
        token = create_access_token(user.id)
        logger.info("issued access token user=%s", user.id)
        return token

    def get_profile(self, user_id: uuid.UUID) -> User:
        user = self._users.find_by_id(user_id)
        if user is None:
            raise NotFound("user not found")
        return user


class TravelWorkflow:
    """Create, edit, review and query travel requests.

    Owners edit the content of their pending requests; administrators decide
    on requests owned by someone else. Every decision is persisted before the
    owner is notified.
    """

    def __init__(
        self,
        travels: TravelStore,
        users: UserStore,
        notifier: Notifier,
        clock: Clock = utcnow,
    ) -> None:
        self._travels = travels
        self._users = users
        self._notifier = notifier
        self._clock = clock

    def create_travel_request(
        self,
        owner_id: uuid.UUID,
        traveler_name: str,
        destination: str,
        departure: datetime,
        return_date: Optional[datetime] = None,
    ) -> TravelRequest:
        logger.info("create travel request user=%s destination=%s", owner_id, destination)
        destination = (destination or "").strip()
        if not destination:
            raise InvalidDestination()
        traveler_name = (traveler_name or "").strip()
        if not traveler_name:
            raise ValidationError("traveler name is required")
        now = self._clock()
        departure = ensure_utc(departure)
        return_date = ensure_utc(return_date)
        check_schedule(departure, return_date, now)

        owner = self._require_user(owner_id)
        created = self._travels.create(
            TravelRequest(
                id=uuid.uuid4(),
                user_id=owner.id,
                traveler_name=traveler_name,
                destination_name=destination,
                departure_date=departure,
                return_date=return_date,
                status=TravelStatus.SOLICITED,
                created_at=now,
                updated_at=now,
                user=owner,
            )
        )
        TRAVEL_CREATED_COUNTER.inc()
        logger.info("created travel request id=%s user=%s", created.id, owner.id)
        return replace(created, user=owner)

    def update_travel_request(
        self,
        request_id: uuid.UUID,
        caller_id: uuid.UUID,
        changes: TravelRequestChanges,
    ) -> TravelRequest:
        request = self._require_request(request_id)
        if not request.is_owned_by(caller_id):
            logger.warning("user %s tried to edit travel request %s", caller_id, request_id)
            raise Unauthorized()
        if request.status is not TravelStatus.SOLICITED:
            raise NotModifiable()
        if changes.destination_name is None or not changes.destination_name.strip():
            raise InvalidDestination()
        if changes.traveler_name is not None and not changes.traveler_name.strip():
            raise ValidationError("traveler name is required")

        changes = replace(
            changes,
            traveler_name=changes.traveler_name.strip() if changes.traveler_name else None,
            destination_name=changes.destination_name.strip(),
            departure_date=ensure_utc(changes.departure_date),
            return_date=ensure_utc(changes.return_date),
        )
        now = self._clock()
        check_schedule(
            changes.departure_date or request.departure_date,
            changes.return_date or request.return_date,
            now,
            require_future=changes.departure_date is not None,
        )

        updated, changed = apply_changes(request, changes, now)
        saved = self._travels.update(updated)
        logger.info(
            "updated travel request id=%s fields=%s", saved.id, ",".join(sorted(changed))
        )
        return saved

    def update_status_travel_request(
        self,
        caller_id: Identifier,
        request_id: Identifier,
        status: Union[str, TravelStatus],
    ) -> TravelRequest:
        caller_uuid = _parse_id(caller_id, "user")
        request_uuid = _parse_id(request_id, "travel request")
        target = _parse_status(status)

        caller = self._require_user(caller_uuid)
        request = self._require_request(request_uuid)

        decision = can_transition(caller.role, caller.id, request, target)
        if not decision.allowed:
            logger.warning(
                "status change denied user=%s request=%s reason=%s",
                caller.id,
                request.id,
                decision.reason,
            )
            decision.enforce()

        previous_status = request.status
        updated = self._travels.update(transition(request, target, caller.id, self._clock()))
        STATUS_CHANGE_COUNTER.labels(status=target.value).inc()
        logger.info(
            "travel request id=%s %s -> %s by user=%s",
            updated.id,
            previous_status.value,
            updated.status.value,
            caller.id,
        )
        self._notify(updated, previous_status)
        return updated

    def get_by_id(self, request_id: uuid.UUID, caller_id: uuid.UUID) -> TravelRequest:
        request = self._require_request(request_id)
        if not request.is_owned_by(caller_id):
            logger.warning("user %s tried to read travel request %s", caller_id, request_id)
            raise Unauthorized()
        return request

    def list_travel_requests(
        self, caller_id: uuid.UUID, filters: TravelRequestFilters
    ) -> Tuple[List[TravelRequest], int]:
        return self._travels.list_by_owner(caller_id, filters)

    def list_all_travel_requests(
        self, caller_id: uuid.UUID, filters: TravelRequestFilters
    ) -> Tuple[List[TravelRequest], int]:
        """Return requests across all owners for an administrator's review."""
        caller = self._require_user(caller_id)
        if not caller.is_admin:
            raise Unauthorized("only administrators can list every travel request")
        return self._travels.list(filters)

    def _notify(self, request: TravelRequest, previous_status: TravelStatus) -> None:
        try:
            self._notifier.notify_status_change(request, previous_status)
        except Exception:
            logger.exception("notifier failed for travel request %s", request.id)

    def _require_user(self, user_id: uuid.UUID) -> User:
        user = self._users.find_by_id(user_id)
        if user is None:
            raise NotFound("user not found")
        return user

    def _require_request(self, request_id: uuid.UUID) -> TravelRequest:
        request = self._travels.find_by_id(request_id)
        if request is None:
            raise NotFound("travel request not found")
        return request
