"""Verifier-service exceptions mapped to API error codes.

- Network/timeout failures → VERIFIER_UNAVAILABLE (recoverable)
- Non-2xx responses → VERIFIER_REQUEST_FAILED
- Unusable response bodies → VERIFIER_RESPONSE_INVALID
"""

from typing import Optional

from app.api.models import ErrorCode


class VerifierError(Exception):
    """Base exception for external verifier calls.

    Carries an error code that maps to ErrorCode constants and the verifier
    operation that was attempted.
    """

    def __init__(self, code: str, message: str, operation: str = ""):
        self.code = code
        self.message = message
        self.operation = operation
        super().__init__(message)


class VerifierUnavailableError(VerifierError):
    """Verifier unreachable (timeout, connection refused, DNS)."""

    def __init__(self, message: str = "Verifier service unavailable", operation: str = ""):
        super().__init__(ErrorCode.VERIFIER_UNAVAILABLE, message, operation)


class VerifierRequestError(VerifierError):
    """Verifier answered with a non-2xx status."""

    def __init__(
        self,
        message: str = "Verifier request failed",
        operation: str = "",
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(ErrorCode.VERIFIER_REQUEST_FAILED, message, operation)


class VerifierResponseError(VerifierError):
    """Verifier answered 2xx but the body is missing required fields."""

    def __init__(self, message: str = "Verifier response invalid", operation: str = ""):
        super().__init__(ErrorCode.VERIFIER_RESPONSE_INVALID, message, operation)


class InvalidInvitationError(VerifierError):
    """Invitation URL is not something a wallet can open."""

    def __init__(self, message: str = "Invalid invitation URL", operation: str = "prepare_invitation"):
        super().__init__(ErrorCode.INVITATION_INVALID, message, operation)
