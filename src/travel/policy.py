"""Authorization policy for travel request status changes."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from .entities import TERMINAL_STATUSES, TravelRequest, TravelStatus, UserRole
from .errors import (
    AlreadyApproved,
    AlreadyCanceled,
    InvalidStatus,
    TravelError,
    Unauthorized,
)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[TravelError] = None

    def enforce(self) -> None:
        if not self.allowed:
            raise self.reason


ALLOW = Decision(True)


def deny(reason: TravelError) -> Decision:
    return Decision(False, reason)


def can_transition(
    caller_role: UserRole,
    caller_id: uuid.UUID,
    request: TravelRequest,
    target_status: TravelStatus,
) -> Decision:
    """Decide whether ``caller`` may move ``request`` to ``target_status``.

    Only administrators rule on requests, and never on their own. A decided
    request stays decided whatever the target; a pending one may only move
    to a terminal status.
    """
    if caller_role is not UserRole.ADMIN:
        return deny(Unauthorized("only administrators can change a travel request status"))
    if request.is_owned_by(caller_id):
        return deny(Unauthorized("administrators cannot change the status of their own travel request"))
    if request.status is TravelStatus.APPROVED:
        return deny(AlreadyApproved())
    if request.status is TravelStatus.CANCELED:
        return deny(AlreadyCanceled())
    if target_status not in TERMINAL_STATUSES:
        return deny(InvalidStatus())
    return ALLOW
