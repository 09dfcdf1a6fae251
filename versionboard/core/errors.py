from typing import Any, Dict, List, Optional


class VersionBoardError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(VersionBoardError):
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class NotFoundError(VersionBoardError):
    status_code = 404


class UnauthorizedError(VersionBoardError):
    status_code = 401


class ForbiddenError(VersionBoardError):
    status_code = 403


class BackendError(VersionBoardError):
    """Storage backend failure. The message is logged, never sent to clients."""

    status_code = 500
