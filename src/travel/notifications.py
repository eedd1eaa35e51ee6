"""Notifications emitted when a travel request reaches a terminal status."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from .entities import TERMINAL_STATUSES, TravelRequest, TravelStatus, User

logger = logging.getLogger(__name__)

DATE_FORMAT = "%d/%m/%Y"

Dispatch = Callable[[str, str], object]


class Notifier(Protocol):
    def notify_status_change(
        self, request: TravelRequest, previous_status: TravelStatus
    ) -> None: ...


def format_status_message(request: TravelRequest, user: User) -> str:
    if request.status is TravelStatus.APPROVED:
        departure = request.departure_date.strftime(DATE_FORMAT)
        if request.return_date is not None:
            dates = f"{departure} to {request.return_date.strftime(DATE_FORMAT)}"
        else:
            dates = f"{departure} (one way)"
        return (
            f"Hello {user.name}, your travel request to {request.destination_name} "
            f"was APPROVED! Dates: {dates}"
        )
    return (
        f"Hello {user.name}, your travel request to {request.destination_name} "
        "was CANCELED."
    )


class StatusNotifier:
    """Queue a message to the request owner on approval or cancellation.

    Failures are logged and never propagated: a status change is already
    committed by the time the notifier runs.
    """

    def __init__(self, dispatch: Optional[Dispatch] = None) -> None:
        if dispatch is None:
            from .tasks import deliver_notification

            dispatch = deliver_notification.delay
        self._dispatch = dispatch

    def notify_status_change(
        self, request: TravelRequest, previous_status: TravelStatus
    ) -> None:
        if request.status not in TERMINAL_STATUSES or request.status is previous_status:
            return
        try:
            user = request.user
            if user is None:
                logger.warning("no owner loaded for travel request %s, skipping notification", request.id)
                return
            self._dispatch(user.email, format_status_message(request, user))
            logger.info(
                "queued %s notification request=%s user=%s",
                request.status.value,
                request.id,
                user.id,
            )
        except Exception:
            logger.exception("failed to notify status change request=%s", request.id)
