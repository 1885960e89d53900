from typing import List, Optional


class BookingAPIError(Exception):
    """
    Base class for errors that map onto a client-visible HTTP status.
    The message is safe to return to the caller.
    """
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BookingAPIError):
    status_code = 400
    default_message = "Invalid request"

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors) or self.default_message)


class RateLimitExceeded(BookingAPIError):
    status_code = 429
    default_message = "Too many requests. Please try again later."


class NotFound(BookingAPIError):
    status_code = 404
    default_message = "Not found"


class Forbidden(BookingAPIError):
    status_code = 403
    default_message = "Forbidden"


class SignatureInvalid(BookingAPIError):
    status_code = 400
    default_message = "Invalid signature"


class MalformedPayload(BookingAPIError):
    status_code = 400
    default_message = "Malformed payload"


class PersistenceError(BookingAPIError):
    status_code = 500
    default_message = "Failed to persist booking data"


class UpstreamProviderError(BookingAPIError):
    status_code = 500
    default_message = "Upstream provider request failed"
