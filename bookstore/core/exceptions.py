"""
Bookstore Exception Hierarchy

Every error carries a machine-readable code, a message and optional details
so routes and logs can report the same thing.

Exception Hierarchy:
    BookstoreError
    ├── UnauthenticatedError   (401)
    ├── ForbiddenError         (403)
    ├── NotFoundError          (404)
    ├── ConflictError          (409)
    └── InvalidArgumentError   (400)
"""
from typing import Optional, Dict, Any


class BookstoreError(Exception):
    """
    Base exception for all bookstore errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        status_code: HTTP status the error maps to
    """

    default_code: str = "BOOKSTORE_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class UnauthenticatedError(BookstoreError):
    """No identity, or the supplied identity could not be verified."""
    default_code = "UNAUTHENTICATED"
    status_code = 401


class ForbiddenError(BookstoreError):
    """Authenticated, but lacking the required role or permission."""
    default_code = "FORBIDDEN"
    status_code = 403


class NotFoundError(BookstoreError):
    """Target record absent or not in the expected state."""
    default_code = "NOT_FOUND"
    status_code = 404


class ConflictError(BookstoreError):
    """A uniqueness invariant would be violated."""
    default_code = "CONFLICT"
    status_code = 409


class InvalidArgumentError(BookstoreError):
    """Malformed input: unknown plan, bad status, non-positive days."""
    default_code = "INVALID_ARGUMENT"
    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(message, details=details, **kwargs)
