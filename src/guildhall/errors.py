"""Error taxonomy for the marketplace directory.

Stores raise these exceptions on precondition failure. The service layer
catches them and converts them into a failed ServiceResult carrying the
matching ErrorKind, so callers always receive a specific reason.

Every exception derives from DirectoryError, which is a ValueError: code
that only cares about "the request was rejected" can keep catching
ValueError.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Classification of a rejected operation."""
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    UNAUTHORIZED = "unauthorized"
    INVALID_INPUT = "invalid_input"
    INVALID_STATE = "invalid_state"
    EXPIRED = "expired"
    SELF_REFERENCE = "self_reference"
    PERSISTENCE = "persistence"


class DirectoryError(ValueError):
    """Base class for all rejected directory operations."""
    kind: ErrorKind = ErrorKind.INVALID_STATE


class NotFoundError(DirectoryError):
    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(DirectoryError):
    kind = ErrorKind.ALREADY_EXISTS


class UnauthorizedError(DirectoryError):
    kind = ErrorKind.UNAUTHORIZED


class InvalidInputError(DirectoryError):
    kind = ErrorKind.INVALID_INPUT


class InvalidStateError(DirectoryError):
    kind = ErrorKind.INVALID_STATE


class ReentrancyError(InvalidStateError):
    """A mutating call was attempted from inside another mutating call."""


class ExpiredError(DirectoryError):
    kind = ErrorKind.EXPIRED


class SelfReferenceError(DirectoryError):
    kind = ErrorKind.SELF_REFERENCE


class PersistenceError(DirectoryError):
    """The notification log or state store could not record the change."""
    kind = ErrorKind.PERSISTENCE
