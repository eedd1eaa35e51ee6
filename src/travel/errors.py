"""Domain errors raised by the auth and travel workflows.

Every error carries the HTTP status code the API answers with, so the
transport layer can translate them with a single exception handler.
"""

from __future__ import annotations


class TravelError(Exception):
    """Base class for all domain failures."""

    status_code = 400
    default_message = "request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(TravelError):
    default_message = "invalid input"


class InvalidDestination(ValidationError):
    default_message = "destination is required"


class FutureDatesOnly(ValidationError):
    default_message = "travel dates must be in the future"


class InvalidDateRange(ValidationError):
    default_message = "departure date must be before return date"


class InvalidArgument(ValidationError):
    default_message = "malformed identifier"


class InvalidStatus(ValidationError):
    default_message = "status must be APPROVED or CANCELED"


class NotFound(TravelError):
    status_code = 404
    default_message = "resource not found"


class Unauthorized(TravelError):
    status_code = 400
    default_message = "user is not authorized for this operation"


class InvalidCredentials(Unauthorized):
    status_code = 401
    default_message = "invalid credentials"


class Conflict(TravelError):
    status_code = 409
    default_message = "conflicting state"


class AlreadyExists(Conflict):
    default_message = "user already exists"


class AlreadyApproved(Conflict):
    default_message = "travel request already approved"


class AlreadyCanceled(Conflict):
    default_message = "travel request already canceled"


class NotModifiable(Conflict):
    default_message = "an approved or canceled travel request cannot be changed"


class ConcurrentUpdate(Conflict):
    default_message = "travel request was modified concurrently"


class ConfigurationError(TravelError):
    status_code = 401
    default_message = "JWT_SECRET_KEY is not configured"
