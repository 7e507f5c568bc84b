"""Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; ``main.py`` registers a single
handler that renders ``{"detail": message}`` for all of them.
"""


class FundryError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FundryError):
    status_code = 400


class InvalidStateError(ValidationError):
    """Requested transition is not allowed from the record's current state."""

    status_code = 409


class AuthenticationError(FundryError):
    status_code = 401


class ForbiddenError(FundryError):
    status_code = 403


class NotFoundError(FundryError):
    status_code = 404


class PaymentError(FundryError):
    """The payment processor rejected or failed the request."""

    status_code = 502


class ExternalServiceError(FundryError):
    status_code = 503
