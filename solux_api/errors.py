"""
Error taxonomy for the enrollment flow.

Every error is scoped to a single wizard session and is recoverable by
repeating the affected step:

- ValidationError: malformed input, shown inline, no state transition
- ExpiredOrConsumed: the code is gone, a new one must be requested
- ExternalServiceError: mail or issuing API failure, operator may retry
- PermissionDenied: camera refused, the wizard aborts to the welcome step
"""

from __future__ import annotations

from typing import Any, Optional


class EnrollmentError(Exception):
    """Base class for all operator-facing enrollment errors."""

    default_message = "Enrollment failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ============================================================================
# Validation
# ============================================================================


class ValidationError(EnrollmentError):
    default_message = "Invalid input"


class EmailInvalid(ValidationError):
    default_message = "Please enter a valid email address"


class CodeFormatInvalid(ValidationError):
    default_message = "Please enter the 6-digit code"


class CodeMismatch(ValidationError):
    default_message = "Invalid verification code"


class ProfileIncomplete(ValidationError):
    default_message = "Please complete all required fields"


class DocumentMissing(ValidationError):
    default_message = "Please select an identity document"


# ============================================================================
# Expired / consumed codes
# ============================================================================


class ExpiredOrConsumed(EnrollmentError):
    default_message = "Verification code is no longer valid. Please request a new one."


class NoCodeIssued(ExpiredOrConsumed):
    default_message = "No verification code found. Please request a new one."


class CodeExpired(ExpiredOrConsumed):
    default_message = "Verification code expired. Please request a new one."


# ============================================================================
# External services
# ============================================================================


class ExternalServiceError(EnrollmentError):
    """
    Failure reported by (or while reaching) an external collaborator.

    Attributes:
        code: Stable machine-readable identifier for the failing operation
        message: Provider message when available, else a generic fallback
        payload: Raw provider payload (None when the provider was unreachable)
        status_code: Provider HTTP status (None when unreachable)
    """

    code = "external_service_error"
    default_message = "Connection failed. Please try again."

    def __init__(
        self,
        message: Optional[str] = None,
        payload: Any = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.payload = payload
        self.status_code = status_code


class MailDispatchFailed(ExternalServiceError):
    code = "mail_dispatch_failed"
    default_message = "Failed to send verification code"


class AccountCreationFailed(ExternalServiceError):
    code = "account_creation_failed"
    default_message = "Failed to create account"


class CardCreationFailed(ExternalServiceError):
    code = "card_creation_failed"
    default_message = "Failed to create card"


# ============================================================================
# Device access
# ============================================================================


class PermissionDenied(EnrollmentError):
    default_message = "Camera is required for Identity Verification. Please enable permissions."


class InvalidTransition(RuntimeError):
    """A wizard operation was called in a step that does not allow it."""
