"""Verifier client interface.

The external verifier is an opaque capability with three operations:
define a proof, prepare an invitation for it, and report the status of a
presentation request. Implementations are chosen once at startup.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.verification.proof_definition import ProofDefinition

# Verifier statuses that mean the presentation was cryptographically verified.
VERIFIED_STATUSES = frozenset({"verified", "presentation_verified"})


@dataclass(frozen=True)
class PreparedInvitation:
    """Invitation issued by the verifier for one proof definition.

    Attributes:
        request_id: Verifier transaction id used for status and webhooks.
        invitation_url: URL the wallet opens (encoded in the QR code).
        qr_svg: QR image supplied by the verifier, if any.
    """

    request_id: str
    invitation_url: str
    qr_svg: Optional[str] = None


@dataclass(frozen=True)
class ProofStatus:
    status: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def verified(self) -> bool:
        return self.status in VERIFIED_STATUSES


class VerifierEvent(BaseModel):
    """State change reported by the verifier (webhook body or poll result).

    The verifier identifies a request by our proof id, its own transaction id,
    or both. Numeric ids are accepted as strings; ids of any other type and
    a null or malformed attributes object are treated as absent, so an event
    is never rejected for its shape. Unknown fields are ignored.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    proof_id: Optional[str] = Field(default=None, alias="proofId")
    tx_id: Optional[str] = Field(default=None, alias="txId")
    proof_request_id: Optional[str] = Field(default=None, alias="proofRequestId")
    request_ref: Optional[str] = Field(default=None, alias="requestId")
    state: Optional[str] = None
    status: Optional[str] = None
    verified: Optional[bool] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("proof_id", "tx_id", "proof_request_id", "request_ref", "state", "status", mode="before")
    @classmethod
    def _text_or_none(cls, value: Any) -> Optional[str]:
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @field_validator("verified", mode="before")
    @classmethod
    def _bool_or_none(cls, value: Any) -> Optional[bool]:
        return value if isinstance(value, bool) else None

    @field_validator("attributes", mode="before")
    @classmethod
    def _attributes_or_empty(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @property
    def request_id(self) -> Optional[str]:
        """Verifier-side id, whichever spelling the event used."""
        return self.tx_id or self.proof_request_id or self.request_ref

    @property
    def outcome(self) -> Optional[str]:
        return self.state or self.status


class VerifierClient(ABC):
    """Abstract verifier client."""

    #: "live" or "mock"; surfaced by /healthz and /admin.
    mode: str = "live"

    @property
    def is_mock(self) -> bool:
        return self.mode == "mock"

    @abstractmethod
    async def define_proof(self, definition: ProofDefinition) -> str:
        """Register a proof definition. Returns the verifier's definition id."""
        ...

    @abstractmethod
    async def prepare_invitation(self, definition_id: str) -> PreparedInvitation:
        """Create a presentation request for a defined proof."""
        ...

    @abstractmethod
    async def get_status(self, request_id: str) -> ProofStatus:
        """Current status of a presentation request."""
        ...

    async def close(self) -> None:
        """Release network resources. Default is a no-op."""
