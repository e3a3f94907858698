"""
Domain Exceptions

Raised by the service layer and translated into JSON error responses by
the handlers registered in app.main. Each class carries the HTTP status
it maps to so the handler stays a single function.
"""

from typing import Optional


class MarketplaceError(Exception):
    """Base class for every error the service layer raises on purpose."""

    status_code: int = 400
    error: str = "Bad Request"

    def __init__(self, detail: str, *, code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.code = code

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.error,
            "detail": self.detail,
            "code": self.code,
        }


class NotFoundError(MarketplaceError):
    status_code = 404
    error = "Not Found"


class PermissionDeniedError(MarketplaceError):
    status_code = 403
    error = "Forbidden"


class ValidationFailedError(MarketplaceError):
    status_code = 422
    error = "Validation Failed"


class InvalidTransitionError(MarketplaceError):
    """An order, assignment or delivery status move outside the allowed sequence."""
    status_code = 409
    error = "Invalid Transition"


class AssignmentConflictError(MarketplaceError):
    """Another actor already holds the order (e.g. a second driver accepting)."""
    status_code = 409
    error = "Conflict"


class NotEligibleError(MarketplaceError):
    """Cook or delivery staff does not qualify for the order."""
    status_code = 422
    error = "Not Eligible"


class AssignmentExpiredError(MarketplaceError):
    """A cook answered an assignment after its response deadline."""
    status_code = 410
    error = "Assignment Expired"
