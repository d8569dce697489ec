"""
Sparkmatch — Domain error taxonomy.

Services raise these; the FastAPI exception handlers in ``sparkmatch.main``
turn them into the ``{success: false, message}`` envelope with the status code
carried by the exception class.

``NotFoundOrUnauthorizedError`` deliberately covers both "does not exist" and
"exists but is not yours" so callers cannot probe for existence.
"""

from __future__ import annotations

from typing import Any


class SparkmatchError(Exception):
    """Base class for every expected, user-facing failure."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class ValidationFailure(SparkmatchError):
    """Malformed or out-of-range input."""

    status_code = 400
    default_message = "Validation errors"


class AuthenticationError(SparkmatchError):
    status_code = 401
    default_message = "Not authenticated"


class NotFoundOrUnauthorizedError(SparkmatchError):
    status_code = 404
    default_message = "Not found"


class TargetNotFoundError(NotFoundOrUnauthorizedError):
    default_message = "User not found"


class NotAParticipantError(NotFoundOrUnauthorizedError):
    default_message = "Match not found"


# ── Business-rule violations ──────────────────────────────────────────────────


class BusinessRuleViolation(SparkmatchError):
    status_code = 400
    default_message = "Request violates a business rule"


class DuplicateSwipeError(BusinessRuleViolation):
    default_message = "Already swiped on this user"


class SelfSwipeError(BusinessRuleViolation):
    default_message = "Cannot swipe on yourself"


class InvalidMatchSizeError(BusinessRuleViolation):
    default_message = "A match must have exactly 2 distinct users"


class InactiveMatchError(BusinessRuleViolation):
    default_message = "Match is no longer active"


class EditWindowExpiredError(BusinessRuleViolation):
    default_message = "Message is too old to edit"


class MessageNotEditableError(BusinessRuleViolation):
    default_message = "Only text messages can be edited"


class InvalidPayloadError(BusinessRuleViolation):
    default_message = "Message payload does not match its type"
