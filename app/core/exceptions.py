"""Domain errors raised by services and auth dependencies.

Each error carries the HTTP status it maps to; ``app.main`` renders every
``MarketplaceError`` as ``{"detail": message, "code": code}``.
"""


class MarketplaceError(Exception):
    """Base class for all application errors."""

    status_code: int = 500
    code: str = "MarketplaceError"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidArgument(MarketplaceError):
    """Missing or malformed input."""

    status_code = 400
    code = "InvalidArgument"


class MissingField(InvalidArgument):
    """A required field was absent or blank."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Missing required field: {field}")


class UnsupportedMediaType(MarketplaceError):
    status_code = 415
    code = "UnsupportedMediaType"


class PayloadTooLarge(MarketplaceError):
    status_code = 413
    code = "PayloadTooLarge"


class Unauthenticated(MarketplaceError):
    """No session, or the session token is invalid or expired."""

    status_code = 401
    code = "Unauthenticated"


class Forbidden(MarketplaceError):
    """Authenticated, but not allowed to act on the target."""

    status_code = 403
    code = "Forbidden"


class NotFound(MarketplaceError):
    status_code = 404
    code = "NotFound"


class AlreadyExists(MarketplaceError):
    """A unique value (listing title, account email) is already taken."""

    status_code = 400
    code = "AlreadyExists"


class StorageFailure(MarketplaceError):
    """The database or blob store rejected a write for a reason other than a duplicate."""

    status_code = 500
    code = "StorageFailure"


class DeliveryFailure(MarketplaceError):
    """A notification or one-time-code delivery channel failed."""

    status_code = 502
    code = "DeliveryFailure"
