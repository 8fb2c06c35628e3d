"""Credential proof-request orchestration.

Extracts the credential attributes a form needs, builds the verifier proof
definition and tracks each proof request until it is verified, expires or is
cancelled. VerificationService (service.py) ties the pieces together and is
imported from its module directly.
"""

from .credential_types import (
    BUILTIN_CREDENTIAL_TYPES,
    CredentialTypeDescriptor,
    CredentialTypeRegistry,
    VerifierCredentialIds,
)
from .dispatcher import NotificationDispatcher
from .exceptions import (
    FormNotFoundError,
    MockModeRequiredError,
    SessionNotFoundError,
    VerificationError,
)
from .invitation_cache import InvitationArtifact, InvitationCache
from .mapping import AttributeRequirement, extract_mappings
from .proof_definition import (
    BuildResult,
    ProofDefinition,
    build_define_payload,
    build_proof_definition,
    extract_invitation_url,
)
from .sessions import SessionRegistry, SessionState, VerificationSession

__all__ = [
    # Credential types
    "BUILTIN_CREDENTIAL_TYPES",
    "CredentialTypeDescriptor",
    "CredentialTypeRegistry",
    "VerifierCredentialIds",
    # Exceptions
    "VerificationError",
    "SessionNotFoundError",
    "FormNotFoundError",
    "MockModeRequiredError",
    # Extraction / building
    "AttributeRequirement",
    "extract_mappings",
    "BuildResult",
    "ProofDefinition",
    "build_define_payload",
    "build_proof_definition",
    "extract_invitation_url",
    # Lifecycle stores
    "SessionRegistry",
    "SessionState",
    "VerificationSession",
    "NotificationDispatcher",
    "InvitationArtifact",
    "InvitationCache",
]
