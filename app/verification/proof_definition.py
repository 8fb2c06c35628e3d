"""Proof-definition building for the verifier API.

Turns the attribute requirements of a form into the verifier's
define-proof-request body. Only attribute disclosure is requested;
requestedPredicates is always empty.

Requirements whose credential type cannot be resolved are dropped with a
warning rather than failing the build. BuildResult.dropped makes that visible
to callers. When nothing resolvable remains the result is None, meaning
"no proof needed", which is different from a proof of zero attributes.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from .credential_types import (
    CredentialTypeDescriptor,
    CredentialTypeRegistry,
    VerifierCredentialIds,
)
from .mapping import AttributeRequirement

log = logging.getLogger(__name__)

PROOF_CRED_FORMAT = "ANONCREDS"


class AnonCredsRestriction(BaseModel):
    """Restriction built from a static credential type descriptor."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    cred_def_id: str = Field(alias="anoncredsCredDefId")
    issuer_did: str = Field(alias="anoncredsIssuerDid")
    schema_name: str = Field(alias="anoncredsSchemaName")
    schema_version: str = Field(alias="anoncredsSchemaVersion")
    schema_id: str = Field(alias="anoncredsSchemaId")

    @classmethod
    def from_descriptor(cls, descriptor: CredentialTypeDescriptor) -> "AnonCredsRestriction":
        return cls(
            cred_def_id=descriptor.cred_def_id,
            issuer_did=descriptor.issuer_did,
            schema_name=descriptor.schema_name,
            schema_version=descriptor.schema_version,
            schema_id=descriptor.schema_id,
        )


class VerifierIdRestriction(BaseModel):
    """Restriction using the verifier's own numeric schema/credential ids."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    schema_id: int = Field(alias="schemaId")
    credential_id: int = Field(alias="credentialId")


Restriction = Union[AnonCredsRestriction, VerifierIdRestriction]


class RequestedAttribute(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    restrictions: tuple[Restriction, ...]


class ProofDefinition(BaseModel):
    """Verifier define-proof-request body. Immutable once built."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    proof_name: str = Field(alias="proofName")
    proof_purpose: str = Field(alias="proofPurpose")
    proof_cred_format: str = Field(default=PROOF_CRED_FORMAT, alias="proofCredFormat")
    requested_attributes: tuple[RequestedAttribute, ...] = Field(alias="requestedAttributes")
    requested_predicates: tuple[Any, ...] = Field(default=(), alias="requestedPredicates")

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation (camelCase keys, lists)."""
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class BuildResult:
    definition: Optional[ProofDefinition]
    dropped: List[AttributeRequirement] = field(default_factory=list)

    @property
    def proof_needed(self) -> bool:
        return self.definition is not None


def _restriction_for(
    credential_type: str,
    registry: CredentialTypeRegistry,
    overrides: Optional[Mapping[str, VerifierCredentialIds]],
) -> Optional[Restriction]:
    if overrides and credential_type in overrides:
        ids = overrides[credential_type]
        return VerifierIdRestriction(schema_id=ids.schema_id, credential_id=ids.cred_def_id)

    descriptor = registry.get(credential_type)
    if descriptor is None:
        return None
    return AnonCredsRestriction.from_descriptor(descriptor)


def build_proof_definition(
    mappings: Sequence[AttributeRequirement],
    form_name: str = "Form",
    registry: Optional[CredentialTypeRegistry] = None,
    overrides: Optional[Mapping[str, VerifierCredentialIds]] = None,
) -> BuildResult:
    """Build a proof definition, reporting requirements that were dropped.

    Args:
        mappings: Requirements from extract_mappings().
        form_name: Display name used for proofName/proofPurpose.
        registry: Static credential type table (built-ins when None).
        overrides: Verifier-assigned numeric ids per credential type.

    Returns:
        BuildResult whose definition is None when no requirement resolved.
    """
    if registry is None:
        registry = CredentialTypeRegistry()
    if not mappings or not isinstance(mappings, Iterable) or isinstance(mappings, (str, bytes, dict)):
        return BuildResult(definition=None)
    if overrides is not None and not isinstance(overrides, Mapping):
        overrides = None

    # One restriction object per credential type so every attribute of that
    # type carries an identical block.
    restrictions: Dict[str, Optional[Restriction]] = {}
    requested: List[RequestedAttribute] = []
    dropped: List[AttributeRequirement] = []
    seen: set = set()

    for mapping in mappings:
        if not isinstance(mapping, AttributeRequirement) or mapping.key in seen:
            continue
        seen.add(mapping.key)

        ctype = mapping.credential_type
        if ctype not in restrictions:
            restrictions[ctype] = _restriction_for(ctype, registry, overrides)
        restriction = restrictions[ctype]

        if restriction is None:
            log.warning(f"Unknown credential type, dropping requirement: {ctype}")
            dropped.append(mapping)
            continue
        requested.append(RequestedAttribute(name=mapping.attribute_name, restrictions=(restriction,)))

    if not requested:
        return BuildResult(definition=None, dropped=dropped)

    definition = ProofDefinition(
        proof_name=f"{form_name} proof",
        proof_purpose=f"Verification for {form_name}",
        requested_attributes=tuple(requested),
    )
    log.debug(
        f"Built proof definition '{definition.proof_name}' "
        f"(attributes={len(requested)}, dropped={len(dropped)})"
    )
    return BuildResult(definition=definition, dropped=dropped)


def build_define_payload(
    mappings: Sequence[AttributeRequirement],
    form_name: str = "Form",
    registry: Optional[CredentialTypeRegistry] = None,
    overrides: Optional[Mapping[str, VerifierCredentialIds]] = None,
) -> Optional[ProofDefinition]:
    """Build a proof definition or None when no proof is needed."""
    return build_proof_definition(mappings, form_name, registry, overrides).definition


def extract_invitation_url(response: Any) -> Optional[str]:
    """Pick the wallet-friendly invitation URL from a verifier response."""
    if not isinstance(response, dict):
        return None
    for key in ("shortUrl", "longUrl"):
        value = response.get(key)
        if isinstance(value, str) and value:
            return value
    oob = response.get("oobInvitation")
    if isinstance(oob, dict) and isinstance(oob.get("url"), str) and oob["url"]:
        return oob["url"]
    return None
