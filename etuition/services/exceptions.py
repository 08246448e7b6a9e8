"""Domain errors raised by the service layer and mapped to HTTP responses"""


class DomainError(Exception):
    """Base class for errors that carry a user-facing message and status code"""

    status_code: int = 500
    default_message: str = "An error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(DomainError):
    status_code = 401
    default_message = "unauthorized access"


class Forbidden(DomainError):
    status_code = 403
    default_message = "forbidden access"


class NotFound(DomainError):
    status_code = 404
    default_message = "not found"


class ValidationError(DomainError):
    status_code = 400
    default_message = "invalid request"


class DuplicateApplication(DomainError):
    status_code = 400
    default_message = "You have already applied to this tuition!"


class InvalidTransition(DomainError):
    status_code = 400
    default_message = "invalid status transition"


class SettlementError(DomainError):
    status_code = 500
    default_message = "payment settlement failed"
