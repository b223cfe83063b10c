"""
Error taxonomy for the quote competition and scheduling core.

Every error is an HTTPException so routers can let them propagate and FastAPI
renders the status code and detail. Services raise them synchronously and
never retry; retry policy belongs to the caller.
"""

from typing import Optional

from fastapi import HTTPException


class CoreError(HTTPException):
    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=self.status_code, detail=detail or self.default_detail, headers=headers
        )

    @property
    def code(self) -> str:
        return self.__class__.__name__


class AuthenticationRequired(CoreError):
    status_code = 401
    default_detail = "Not authenticated"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class AuthorizationDenied(CoreError):
    """Wrong role, or not the owner of the resource"""

    status_code = 403
    default_detail = "Access denied"


class ValidationError(CoreError):
    status_code = 422
    default_detail = "Invalid input"


class NotFound(CoreError):
    status_code = 404
    default_detail = "Not found"


class Conflict(CoreError):
    """Duplicate bid, double accept, overlapping or duplicate appointment"""

    status_code = 409
    default_detail = "Conflict"


class InvalidState(Conflict):
    """The resource is not in a status that allows the operation"""

    default_detail = "Operation not allowed in the current state"


class Expired(CoreError):
    status_code = 410
    default_detail = "Request deadline has passed"


class DependencyFailure(CoreError):
    """A best-effort collaborator failed. Logged and swallowed, never surfaced from a primary operation."""

    status_code = 502
    default_detail = "Collaborator unavailable"
