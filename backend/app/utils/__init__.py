"""
Utilities package.
"""
from .auth import decode_bearer_token, require_permission
from .errors import (
    TaskDeskError,
    ValidationError,
    NotFoundError,
    StorageError,
    PersistenceError,
    PackagingTimeoutError,
    PayloadTooLargeError,
)

__all__ = [
    "decode_bearer_token",
    "require_permission",
    "TaskDeskError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "PersistenceError",
    "PackagingTimeoutError",
    "PayloadTooLargeError",
]
