"""
Error taxonomy shared by the core and the HTTP layer.

Every error carries a stable machine-readable ``category`` and the HTTP
status the API answers with. Handlers in ``bazaar.main`` render them as
``{"error": category, "code": code, "detail": message}``.
"""
from typing import Optional


class MarketplaceError(Exception):
    """Base class for errors surfaced to API callers."""

    category = "server_fault"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.category

    def to_dict(self) -> dict:
        return {"error": self.category, "code": self.code, "detail": self.message}


class ValidationError(MarketplaceError):
    """Malformed or missing input. The caller has to correct and resubmit."""

    category = "validation_error"
    status_code = 400


class UnauthorizedError(MarketplaceError):
    """No caller identity where one is required."""

    category = "unauthorized"
    status_code = 401

    def __init__(self, message: str = "Authentication required", code: Optional[str] = None):
        super().__init__(message, code)


class ForbiddenError(MarketplaceError):
    """Authenticated, but not allowed to perform the action."""

    category = "forbidden"
    status_code = 403

    def __init__(self, action: str, reason: str):
        super().__init__(f"Not authorized to {action.replace('_', ' ')}: {reason}", code=f"{action}_forbidden")
        self.action = action
        self.reason = reason


class NotFoundError(MarketplaceError):
    category = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource.capitalize()} not found.", code=f"{resource}_not_found")
        self.resource = resource
        self.resource_id = resource_id


class ServerFault(MarketplaceError):
    """Unexpected store or internal failure. Safe to retry with backoff."""

    category = "server_fault"
    status_code = 500
