"""
goalcircle.services.errors — Domain Error Taxonomy
===================================================

Services raise these; the API layer maps ``status_code`` to the HTTP
response and the chat socket turns them into ``error`` events.  Messages
are stable and safe to show to clients.
"""

from __future__ import annotations


class GoalCircleError(Exception):
    """Base exception for all service-level failures."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(GoalCircleError):
    """Entity or membership is absent."""

    status_code = 404


class ConflictError(GoalCircleError):
    """Duplicate join, duplicate completion, or a lost insert race."""

    status_code = 409


class ForbiddenError(GoalCircleError):
    """Caller is not allowed to act on the target (not owner / not member)."""

    status_code = 403


class InvalidInputError(GoalCircleError):
    """Malformed action or value."""

    status_code = 400


class StoreFailureError(GoalCircleError):
    """Infrastructure failure.  The message never carries driver details."""

    status_code = 500
