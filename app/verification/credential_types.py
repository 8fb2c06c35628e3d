"""Known credential types and the verifier identifiers that restrict them.

The static table is loaded once at process start and is read-only afterwards.
Deployments can extend it with a JSON file (VCF_CREDENTIAL_TYPES_FILE) holding
a list of descriptor objects; file entries replace built-ins of the same name.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialTypeDescriptor:
    """Verifier-facing identifiers for one credential type (AnonCreds)."""

    name: str
    issuer_did: str
    schema_id: str
    schema_name: str
    schema_version: str
    cred_def_id: str

    @classmethod
    def from_dict(cls, data: Dict) -> "CredentialTypeDescriptor":
        return cls(
            name=data["name"],
            issuer_did=data.get("issuerDid") or data["issuer_did"],
            schema_id=data.get("schemaId") or data["schema_id"],
            schema_name=data.get("schemaName") or data["schema_name"],
            schema_version=data.get("schemaVersion") or data.get("schema_version", "1.0"),
            cred_def_id=data.get("credDefId") or data["cred_def_id"],
        )


@dataclass(frozen=True)
class VerifierCredentialIds:
    """Numeric ids assigned by the verifier to a dynamically issued credential.

    When present for a credential type these take priority over the static
    descriptor.
    """

    schema_id: int
    cred_def_id: int


BUILTIN_CREDENTIAL_TYPES = (
    CredentialTypeDescriptor(
        name="Unverified Person",
        issuer_did="QzLYGuAebsy3MXQ6b1sFiT",
        schema_id="QzLYGuAebsy3MXQ6b1sFiT:2:person_credential:1.0",
        schema_name="person_credential",
        schema_version="1.0",
        cred_def_id="QzLYGuAebsy3MXQ6b1sFiT:3:CL:123456:default",
    ),
    CredentialTypeDescriptor(
        name="BC Digital Business Card v1",
        issuer_did="RGjWbW1eycP7FrMf4QJvX8",
        schema_id="RGjWbW1eycP7FrMf4QJvX8:2:digital_business_card:1.0",
        schema_name="digital_business_card",
        schema_version="1.0",
        cred_def_id="RGjWbW1eycP7FrMf4QJvX8:3:CL:13:MYCO_Biomarker",
    ),
    CredentialTypeDescriptor(
        name="BC Lawyer Credential v1",
        issuer_did="QzLYGuAebsy3MXQ6b1sFiT",
        schema_id="QzLYGuAebsy3MXQ6b1sFiT:2:legal-professional:1.0",
        schema_name="legal_professional",
        schema_version="1.0",
        cred_def_id="QzLYGuAebsy3MXQ6b1sFiT:3:CL:789:legal_professional",
    ),
)


class CredentialTypeRegistry:
    """Read-only lookup of credential type name → descriptor."""

    def __init__(self, descriptors: Iterable[CredentialTypeDescriptor] = BUILTIN_CREDENTIAL_TYPES):
        table: Dict[str, CredentialTypeDescriptor] = {}
        for descriptor in descriptors:
            table[descriptor.name] = descriptor
        self._table: Mapping[str, CredentialTypeDescriptor] = MappingProxyType(table)

    def get(self, name: str) -> Optional[CredentialTypeDescriptor]:
        return self._table.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def __len__(self) -> int:
        return len(self._table)

    def names(self) -> list[str]:
        return sorted(self._table)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "CredentialTypeRegistry":
        """Build the registry from built-ins plus an optional JSON file.

        A missing or unreadable file is logged and ignored; the built-in table
        is always available.
        """
        descriptors = list(BUILTIN_CREDENTIAL_TYPES)
        if path:
            try:
                raw = json.loads(Path(path).read_text(encoding="utf-8"))
                descriptors.extend(CredentialTypeDescriptor.from_dict(d) for d in raw)
                log.info(f"Loaded {len(raw)} credential types from {path}")
            except (OSError, ValueError, KeyError, TypeError) as e:
                log.error(f"Failed to load credential types from {path}: {e}")
        return cls(descriptors)
