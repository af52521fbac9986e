"""Error taxonomy for task, attachment and archive operations."""

from typing import Any, Dict, Optional


class TaskDeskError(Exception):
    """Base exception for the task desk backend."""

    status_code = 500

    def __init__(self, message: str, *, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.error:
            body["error"] = self.error
        return body


class ValidationError(TaskDeskError):
    """Bad or missing field, disallowed file type, oversized file."""
    status_code = 400


class NotFoundError(TaskDeskError):
    """Task, file or company does not exist."""
    status_code = 404


class StorageError(TaskDeskError):
    """Blob store or filesystem I/O failure."""
    status_code = 500


class PersistenceError(TaskDeskError):
    """Task document write failed."""
    status_code = 500


class FallbackError(TaskDeskError):
    """Archive could not be produced; the caller should download files one by one."""

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["fallback"] = True
        return body


class PackagingTimeoutError(FallbackError):
    """Archive packaging exceeded its wall-clock budget."""
    status_code = 408


class PayloadTooLargeError(FallbackError):
    """Projected archive size exceeds the total-size guard."""
    status_code = 413
