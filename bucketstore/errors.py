"""Storage error taxonomy.

Every error the storage layer raises on purpose carries an ``ErrorKind`` so the
HTTP layer can pick a status code without comparing messages.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    BAD_REQUEST = "bad_request"
    INTERNAL = "internal"


class StorageError(Exception):
    """Base storage failure. Anything not more specific is internal."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class BucketNotFound(StorageError):
    kind = ErrorKind.NOT_FOUND


class ObjectNotFound(StorageError):
    kind = ErrorKind.NOT_FOUND


class BucketNotEmpty(StorageError):
    kind = ErrorKind.CONFLICT


class InvalidPath(StorageError):
    kind = ErrorKind.BAD_REQUEST
