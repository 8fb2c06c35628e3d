"""
VC Forms verifier API models.

Request/response bodies for the HTTP surface, the error code registry and the
boundary models that validate untrusted verifier payloads.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Error Models
# =============================================================================

class ErrorCode:
    """Error code registry."""
    # Verifier service
    VERIFIER_UNAVAILABLE = "VERIFIER_UNAVAILABLE"
    VERIFIER_REQUEST_FAILED = "VERIFIER_REQUEST_FAILED"
    VERIFIER_RESPONSE_INVALID = "VERIFIER_RESPONSE_INVALID"
    INVITATION_INVALID = "INVITATION_INVALID"

    # Sessions
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    FORM_NOT_FOUND = "FORM_NOT_FOUND"
    MOCK_MODE_REQUIRED = "MOCK_MODE_REQUIRED"

    # Branding
    BRANDING_FETCH_FAILED = "BRANDING_FETCH_FAILED"
    BRANDING_PARSE_FAILED = "BRANDING_PARSE_FAILED"
    BRANDING_REFERENCE_INVALID = "BRANDING_REFERENCE_INVALID"
    ASSET_FETCH_FAILED = "ASSET_FETCH_FAILED"
    CREDENTIAL_NOT_FOUND = "CREDENTIAL_NOT_FOUND"
    BRANDING_NOT_FOUND = "BRANDING_NOT_FOUND"
    REPOSITORY_INVALID = "REPOSITORY_INVALID"

    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_RECOVERABILITY: Dict[str, bool] = {
    ErrorCode.VERIFIER_UNAVAILABLE: True,
    ErrorCode.VERIFIER_REQUEST_FAILED: True,
    ErrorCode.VERIFIER_RESPONSE_INVALID: False,
    ErrorCode.INVITATION_INVALID: False,
    ErrorCode.SESSION_NOT_FOUND: False,
    ErrorCode.FORM_NOT_FOUND: False,
    ErrorCode.MOCK_MODE_REQUIRED: False,
    ErrorCode.BRANDING_FETCH_FAILED: True,
    ErrorCode.BRANDING_PARSE_FAILED: False,
    ErrorCode.BRANDING_REFERENCE_INVALID: False,
    ErrorCode.ASSET_FETCH_FAILED: True,
    ErrorCode.CREDENTIAL_NOT_FOUND: False,
    ErrorCode.BRANDING_NOT_FOUND: False,
    ErrorCode.REPOSITORY_INVALID: False,
    ErrorCode.INTERNAL_ERROR: True,
}


class ErrorDetail(BaseModel):
    code: str
    message: str
    recoverable: bool

    @classmethod
    def of(cls, code: str, message: str) -> "ErrorDetail":
        return cls(
            code=code,
            message=message,
            recoverable=ERROR_RECOVERABILITY.get(code, False),
        )


class ErrorResponse(BaseModel):
    error: ErrorDetail


# =============================================================================
# Proof Requests
# =============================================================================

class InitProofRequest(BaseModel):
    """Body for POST /proofs/init."""
    model_config = ConfigDict(populate_by_name=True)

    form_id: int | str = Field(alias="formId")
    client_id: Optional[str] = Field(default=None, alias="clientId")


class InitProofResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str  # "ok" | "no-vc"
    proof_id: Optional[str] = Field(default=None, alias="proofId")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    invitation_url: Optional[str] = Field(default=None, alias="invitationUrl")
    svg: Optional[str] = None
    message: Optional[str] = None
    mock: bool = False
    dropped_requirements: int = Field(default=0, alias="droppedRequirements")


class InvitationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    svg: str
    invitation_url: str = Field(alias="invitationUrl")
    expires_at: float = Field(alias="expiresAt")


class ProofStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    proof_id: str = Field(alias="proofId")
    status: str
    attributes: Dict[str, Any] = Field(default_factory=dict)


class SimulateVerificationRequest(BaseModel):
    attributes: Dict[str, Any] = Field(default_factory=dict)


class BroadcastRequest(BaseModel):
    type: str = "system"
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Branding
# =============================================================================

class TestUrlRequest(BaseModel):
    url: str


class TestUrlResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    canonical_url: Optional[str] = Field(default=None, alias="canonicalUrl")
    overlays: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class RepositoryRequest(BaseModel):
    """Body for POST /oca/repositories."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    base_url: str = Field(alias="baseUrl")
    type: str = "github"  # "github" | "direct"


class RefreshAllResponse(BaseModel):
    success: int
    failed: int
    results: List[Dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    ok: bool
    verifier_mode: str
    active_sessions: int
    connected_clients: int


# =============================================================================
# Admin
# =============================================================================

class LogLevelRequest(BaseModel):
    level: str
