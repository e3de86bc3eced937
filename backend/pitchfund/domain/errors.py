"""Domain error taxonomy shared by services and the HTTP layer."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION = "VALIDATION"
    INVALID_INPUT = "INVALID_INPUT"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    RATE_LIMITED = "RATE_LIMITED"
    ONBOARDING_INCOMPLETE = "ONBOARDING_INCOMPLETE"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    DIVISION_BY_ZERO = "DIVISION_BY_ZERO"
    UPSTREAM = "UPSTREAM"


class DomainError(Exception):
    """Base domain error with code, user-safe message and HTTP status."""

    code: ErrorCode = ErrorCode.VALIDATION
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(DomainError):
    """Missing or malformed input; the message names the offending field."""

    code = ErrorCode.VALIDATION


class InvalidInputError(ValidationError):
    code = ErrorCode.INVALID_INPUT


class AuthenticationError(DomainError):
    code = ErrorCode.UNAUTHENTICATED
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class AuthorizationError(DomainError):
    code = ErrorCode.FORBIDDEN
    status_code = 403

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Absent or not owned by the caller; the two are deliberately conflated."""

    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str) -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource


class CapacityExceededError(DomainError):
    code = ErrorCode.CAPACITY_EXCEEDED

    def __init__(self, message: str = "Event is full") -> None:
        super().__init__(message)


class RateLimitedError(DomainError):
    code = ErrorCode.RATE_LIMITED

    def __init__(self, remaining_days: int, *, action: str = "change your nickname") -> None:
        super().__init__(
            f"You can {action} again later: {remaining_days} days remaining"
        )
        self.remaining_days = remaining_days


class OnboardingIncompleteError(DomainError):
    code = ErrorCode.ONBOARDING_INCOMPLETE

    def __init__(
        self,
        message: str = "The organizer must complete payout setup before accepting online payments",
    ) -> None:
        super().__init__(message)


class SignatureVerificationError(DomainError):
    code = ErrorCode.INVALID_SIGNATURE

    def __init__(self, message: str = "Webhook signature verification failed") -> None:
        super().__init__(message)


class DivisionByZeroError(DomainError, ZeroDivisionError):
    code = ErrorCode.DIVISION_BY_ZERO


class UpstreamServiceError(DomainError):
    """Payment processor or data store unavailable; callers may retry."""

    code = ErrorCode.UPSTREAM
    status_code = 500


__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "CapacityExceededError",
    "DivisionByZeroError",
    "DomainError",
    "ErrorCode",
    "InvalidInputError",
    "NotFoundError",
    "OnboardingIncompleteError",
    "RateLimitedError",
    "SignatureVerificationError",
    "UpstreamServiceError",
    "ValidationError",
]
