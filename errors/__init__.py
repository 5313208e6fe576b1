"""Error taxonomy shared by every marketplace module.

Each error carries the HTTP status the API layer renders it with, so managers
raise domain errors and never build HTTP responses themselves.
"""


class MarketplaceError(Exception):
    """Base exception for marketplace operations."""
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        self.message = message
        super().__init__(message)


class AuthenticationMissing(MarketplaceError):
    """Raised when the bearer credential is absent or cannot be verified.

    A missing credential maps to 401, a credential that fails verification
    maps to 403.
    """
    status_code = 401

    def __init__(self, message: str = "Access denied", invalid: bool = False):
        super().__init__(message)
        if invalid:
            self.status_code = 403


class AuthorizationDenied(MarketplaceError):
    """Raised when a role or ownership check fails."""
    status_code = 403


class NotFound(MarketplaceError):
    """Raised when a referenced entity does not exist."""
    status_code = 404


class PreconditionFailed(MarketplaceError):
    """Raised when an entity is in the wrong state for the requested change."""
    status_code = 400


class StoreFailure(MarketplaceError):
    """Raised when the database fails unexpectedly.

    The message is what the caller sees; the underlying error is logged where
    it is caught and chained as ``__cause__``.
    """
    status_code = 500


__all__ = [
    'MarketplaceError',
    'AuthenticationMissing',
    'AuthorizationDenied',
    'NotFound',
    'PreconditionFailed',
    'StoreFailure'
]
