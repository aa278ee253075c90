"""
Application error taxonomy.

Services raise these; the handlers registered in app.main render them as
{"error": message} with the matching HTTP status.
"""


class AppError(Exception):
    """Base class for errors that map to a client-visible HTTP status."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Malformed or missing input."""
    status_code = 400


class AuthenticationError(AppError):
    """Missing, invalid or expired session."""
    status_code = 401


class AuthorizationError(AppError):
    """Wrong role, or caller does not own the resource."""
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """Duplicate reference number, active payment or repeat quiz attempt."""
    status_code = 409


class RateLimitError(AppError):
    status_code = 429

    def __init__(self, message: str, retry_after: int = 1):
        super().__init__(message)
        self.retry_after = retry_after
