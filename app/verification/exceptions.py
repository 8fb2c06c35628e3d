"""Verification orchestration exceptions."""

from app.api.models import ErrorCode


class VerificationError(Exception):
    """Base exception for orchestration failures that are not verifier errors."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class SessionNotFoundError(VerificationError):
    """Proof id is unknown, expired, cancelled or already verified."""

    def __init__(self, proof_id: str):
        self.proof_id = proof_id
        super().__init__(
            ErrorCode.SESSION_NOT_FOUND,
            f"Proof request {proof_id} expired or not found",
        )


class FormNotFoundError(VerificationError):
    def __init__(self, form_id):
        self.form_id = form_id
        super().__init__(ErrorCode.FORM_NOT_FOUND, f"Form {form_id} not found")


class MockModeRequiredError(VerificationError):
    """Simulated verification is only available with the mock verifier."""

    def __init__(self):
        super().__init__(
            ErrorCode.MOCK_MODE_REQUIRED,
            "Verification can only be simulated when the mock verifier is active",
        )
