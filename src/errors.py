"""
Error taxonomy for the flashcard API.

Every error raised by a route or service carries the HTTP status it maps to
and a stable machine-readable code. The Flask error handler in app.py turns
them into JSON responses of the form {"error": message, "code": code}.
"""


class FlashcardError(Exception):
    """Base class for errors that are safe to show to API callers."""

    status_code = 500
    code = 'INTERNAL_ERROR'
    default_message = 'Internal server error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.message, "code": self.code}

    def headers(self):
        return {}


class ValidationError(FlashcardError):
    """Raised for malformed or missing input."""
    status_code = 400
    code = 'VALIDATION_ERROR'
    default_message = 'Invalid request'


class ConflictError(FlashcardError):
    """Raised when a username is already taken."""
    status_code = 409
    code = 'CONFLICT'
    default_message = 'Username already exists'


class AuthError(FlashcardError):
    """Raised on failed login. Never says which half of the credentials was wrong."""
    status_code = 401
    code = 'INVALID_CREDENTIALS'
    default_message = 'Invalid credentials'


class MissingCredentialError(FlashcardError):
    """Raised when a protected route is called without a bearer token."""
    status_code = 401
    code = 'MISSING_TOKEN'
    default_message = 'Authorization token required'


class InvalidCredentialError(FlashcardError):
    """Raised when a bearer token fails signature or expiry checks."""
    status_code = 403
    code = 'INVALID_TOKEN'
    default_message = 'Invalid or expired token'


class ForbiddenError(FlashcardError):
    """Raised when an authenticated caller is not allowed to do something."""
    status_code = 403
    code = 'FORBIDDEN'
    default_message = 'Forbidden'


class NotFoundError(FlashcardError):
    """Raised for missing resources and for resources owned by someone else."""
    status_code = 404
    code = 'NOT_FOUND'
    default_message = 'Not found'


class LimitExceededError(FlashcardError):
    """Raised when an operation would push a user past the card ceiling."""
    status_code = 403
    code = 'LIMIT_EXCEEDED'
    default_message = 'Card limit reached'


class RateLimitError(FlashcardError):
    """Raised when a client exceeds the request budget of a guarded route."""
    status_code = 429
    code = 'RATE_LIMITED'
    default_message = 'Too many requests, please try again later'

    def __init__(self, retry_after, message=None):
        self.retry_after = int(retry_after)
        super().__init__(message or f"Too many requests, please try again in {self.retry_after} seconds")

    def to_dict(self):
        body = super().to_dict()
        body['retryAfter'] = self.retry_after
        return body

    def headers(self):
        return {'Retry-After': str(self.retry_after)}
