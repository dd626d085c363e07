"""
Domain error taxonomy.

Each error carries the HTTP status the gateway answers with; the Flask error
handlers in app.py render them as ``{"error": message}``.
"""


class DomainError(Exception):
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(DomainError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(DomainError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(DomainError):
    status_code = 403
    default_message = "You are not allowed to modify this resource"


class NotFoundError(DomainError):
    status_code = 404
    default_message = "Not found"


class SlotNotFound(NotFoundError):
    default_message = "Time slot not found"


class ConflictError(DomainError):
    status_code = 409
    default_message = "Conflict"


class SlotAlreadyReserved(ConflictError):
    default_message = "Time slot is not available"


class IllegalTransition(ConflictError):
    default_message = "Status change not allowed"


class RateLimitError(DomainError):
    status_code = 429
    default_message = "Too many requests. Please try again later"

    def __init__(self, retry_after: int, message: str = None):
        self.retry_after = max(int(retry_after), 1)
        super().__init__(message)


class TransientStoreError(DomainError):
    """Store unreachable or timed out; only reads are safe to retry blindly."""

    status_code = 500
    default_message = "Service temporarily unavailable. Please try again"


class ReservationOutcomeUnknown(TransientStoreError):
    default_message = (
        "Booking result unknown. Refresh available time slots before trying again"
    )
