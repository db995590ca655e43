"""Typed failures raised by the chat service layers.

The HTTP boundary maps each error kind to a status code; nothing below the
routers knows about HTTP.
"""

from typing import Dict


class ChatServiceError(Exception):
    """Base class for all domain failures."""

    kind = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(ChatServiceError):
    """Caller-fixable problem with the request payload."""

    kind = "invalid_request"


class UnauthenticatedError(ChatServiceError):
    kind = "unauthenticated"


class ForbiddenError(ChatServiceError):
    kind = "forbidden"


class NotFoundError(ChatServiceError):
    kind = "not_found"


class ConflictError(ChatServiceError):
    """A uniqueness rule was violated (e.g. a taken idAlias)."""

    kind = "conflict"


class PersistenceError(ChatServiceError):
    """The storage backend failed. The message is never sent to clients."""

    kind = "persistence_failure"


STATUS_BY_KIND: Dict[str, int] = {
    InvalidRequestError.kind: 400,
    UnauthenticatedError.kind: 401,
    ForbiddenError.kind: 403,
    NotFoundError.kind: 404,
    ConflictError.kind: 409,
    PersistenceError.kind: 500,
}


def status_code_for(error: ChatServiceError) -> int:
    """Return the HTTP status code for a domain error, defaulting to 500."""
    return STATUS_BY_KIND.get(error.kind, 500)
