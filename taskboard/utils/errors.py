"""Error taxonomy shared by the task pipeline and the HTTP layer."""

from typing import Any, Optional


class TaskboardError(Exception):
    """Base exception for the taskboard backend."""

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"kind": self.kind, "detail": self.message}
        if self.details is not None:
            body["errors"] = self.details
        return body


class ValidationFailure(TaskboardError):
    """A row or payload violates the task schema."""

    kind = "ValidationFailure"
    status_code = 422


class NoValidRows(ValidationFailure):
    """An upload produced nothing worth persisting."""

    status_code = 400

    def __init__(self, details: Optional[Any] = None):
        super().__init__("no valid rows", details)


class NotFoundFailure(TaskboardError):
    kind = "NotFoundFailure"
    status_code = 404


class ConflictFailure(TaskboardError):
    kind = "ConflictFailure"
    status_code = 409


class MalformedInputFailure(TaskboardError):
    """Upload could not be parsed as UTF-8 CSV."""

    kind = "MalformedInputFailure"
    status_code = 400


class NoFileProvided(MalformedInputFailure):
    def __init__(self):
        super().__init__("no file provided")


class StorageFailure(TaskboardError):
    """Persistence layer error. Never retried."""

    kind = "StorageFailure"
    status_code = 500


class AuthenticationFailure(TaskboardError):
    kind = "AuthenticationFailure"
    status_code = 401
