"""
Domain errors. Messages are user-safe and returned verbatim by the API layer.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(DomainError):
    """Missing or not owned by the caller; the two are never distinguished."""

    status_code = 404


class PreconditionError(DomainError):
    status_code = 409


class PaymentConfigurationError(DomainError):
    status_code = 500


class MetadataError(ValueError):
    """Checkout session metadata failed validation on read-back."""
