"""Domain-specific exceptions"""

from enum import Enum


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class FailureKind(str, Enum):
    """Closed classification of API failures, decided at the transport boundary"""

    ABSENCE = "absence"
    TRANSIENT = "transient"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"


class ApiFailure(DomainException):
    """Ledger API request failed"""

    kind: FailureKind

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AbsenceError(ApiFailure):
    """Requested per-customer resource does not exist (404)"""

    kind = FailureKind.ABSENCE


class TransientServiceError(ApiFailure):
    """Service temporarily unavailable: 5xx, timeout or transport failure"""

    kind = FailureKind.TRANSIENT


class AuthorizationError(ApiFailure):
    """Request rejected with 401/403"""

    kind = FailureKind.AUTHORIZATION


class ValidationFailure(ApiFailure):
    """Request rejected by the server with a 4xx validation message"""

    kind = FailureKind.VALIDATION


class InvalidResponseError(DomainException):
    """Ledger API returned a payload that does not match the expected shape"""

    pass


class InvalidStatusTransitionError(DomainException):
    """Collection status transition is not allowed from the current state"""

    pass
