from typing import Optional


class MarketplaceError(Exception):
    """Base class for failures the API maps to a client-facing status."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MarketplaceError):
    status_code = 404

    def __init__(self, resource: str, resource_id=None):
        if resource_id is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} not found: {resource_id}"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class AccessDeniedError(MarketplaceError):
    """The caller is not the owning party. The message never says why."""

    status_code = 403

    def __init__(self, detail: Optional[str] = None):
        super().__init__("Access denied to resource")
        # kept for server-side logs only
        self.detail = detail


class AlreadyRepliedError(MarketplaceError):
    status_code = 409

    def __init__(self, order_id: int, performer_id: int):
        super().__init__("You have already replied to this order")
        self.order_id = order_id
        self.performer_id = performer_id


class InvalidStateError(MarketplaceError):
    status_code = 400


class ValidationFailedError(MarketplaceError):
    status_code = 400

    def __init__(self, message: str, errors: Optional[dict] = None):
        super().__init__(message)
        self.errors = errors or {}
