"""Custom exception classes for the issue tracker."""

from typing import List, Optional, Dict, Any

from fastapi import HTTPException, status


class TaskdeskError(Exception):
    """Base exception for taskdesk."""

    kind = "error"

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(TaskdeskError):
    """Raised when input is malformed or a required field is missing."""

    kind = "validation"


class EntityNotFoundError(TaskdeskError):
    """Raised when a referenced entity does not exist in the team."""

    kind = "not_found"

    def __init__(self, message: str = "Resource not found", reference: Optional[str] = None,
                 field: Optional[str] = None):
        self.reference = reference
        self.field = field
        super().__init__(message)


class AmbiguousReferenceError(TaskdeskError):
    """Raised when a fuzzy reference matches more than one entity."""

    kind = "ambiguous"

    def __init__(self, message: str, reference: str, candidates: List[Dict[str, Any]],
                 field: Optional[str] = None):
        self.reference = reference
        self.candidates = candidates
        self.field = field
        super().__init__(message)


class UnauthorizedError(TaskdeskError):
    """Raised on cross-team access or access to another user's resource."""

    kind = "unauthorized"


class ConflictError(TaskdeskError):
    """Raised when a write would break a uniqueness or state invariant."""

    kind = "conflict"


class DependencyFailure(TaskdeskError):
    """Raised when the store or the completion provider fails."""

    kind = "dependency_failure"

    def __init__(self, message: str = "Something went wrong. Please try again.",
                 correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id
        super().__init__(message)


class TurnTimeoutError(DependencyFailure):
    """Raised when an agent turn exceeds its wall-clock budget."""

    kind = "timeout"


# HTTP status for each error kind
HTTP_STATUS_BY_KIND = {
    ValidationError.kind: status.HTTP_400_BAD_REQUEST,
    EntityNotFoundError.kind: status.HTTP_404_NOT_FOUND,
    AmbiguousReferenceError.kind: status.HTTP_409_CONFLICT,
    ConflictError.kind: status.HTTP_409_CONFLICT,
    UnauthorizedError.kind: status.HTTP_403_FORBIDDEN,
    DependencyFailure.kind: status.HTTP_502_BAD_GATEWAY,
    TurnTimeoutError.kind: status.HTTP_504_GATEWAY_TIMEOUT,
}


# HTTP exception shortcuts
def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)
