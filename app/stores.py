"""Form and credential stores.

Form/credential persistence belongs to the surrounding application; this
module only defines the read interface the verification and branding
services consume, plus in-memory implementations (optionally seeded from
JSON files) so the service runs standalone.

Seed file formats:
- Forms (VCF_FORMS_FILE): list of {"id", "name", "formSchema", "metadata"}
- Credentials (VCF_CREDENTIALS_FILE): list of {"id", "label", "credDefId",
  "schemaId", "issuer", "brandingMetadata": {"ocaBundleUrl"}, "verifierSchemaId",
  "verifierCredDefId"}
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.verification.credential_types import VerifierCredentialIds

log = logging.getLogger(__name__)

RecordId = Union[int, str]


def _key(record_id: RecordId) -> str:
    return str(record_id)


class FormRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: RecordId
    name: str = "Form"
    form_schema: Dict[str, Any] = Field(default_factory=dict, alias="formSchema")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def definition(self) -> Dict[str, Any]:
        """Shape accepted by extract_mappings()."""
        return {"formSchema": self.form_schema, "metadata": self.metadata}


class CredentialRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: RecordId
    label: str
    issuer: Optional[str] = None
    cred_def_id: Optional[str] = Field(default=None, alias="credDefId")
    schema_id: Optional[str] = Field(default=None, alias="schemaId")
    branding_metadata: Dict[str, Any] = Field(default_factory=dict, alias="brandingMetadata")
    verifier_schema_id: Optional[int] = Field(default=None, alias="verifierSchemaId")
    verifier_cred_def_id: Optional[int] = Field(default=None, alias="verifierCredDefId")

    @property
    def bundle_references(self) -> List[str]:
        """OCA bundle references, test and prod variants included."""
        meta = self.branding_metadata
        refs: List[str] = []
        for key in ("ocaBundleUrl", "bundleUrl"):
            if isinstance(meta.get(key), str) and meta[key].strip():
                refs.append(meta[key].strip())
        urls = meta.get("ocaBundleUrls")
        if isinstance(urls, list):
            refs.extend(u.strip() for u in urls if isinstance(u, str) and u.strip())
        return list(dict.fromkeys(refs))

    @property
    def oca_repository_id(self) -> Optional[str]:
        repo_id = self.branding_metadata.get("ocaRepositoryId")
        if not isinstance(repo_id, str):
            return None
        return repo_id.strip() or None

    @property
    def issuer_name(self) -> Optional[str]:
        meta = self.branding_metadata
        return self.issuer or meta.get("issuerName") or meta.get("issuer")

    @property
    def verifier_ids(self) -> Optional[VerifierCredentialIds]:
        if self.verifier_schema_id is None or self.verifier_cred_def_id is None:
            return None
        return VerifierCredentialIds(self.verifier_schema_id, self.verifier_cred_def_id)


class FormStore(ABC):
    @abstractmethod
    async def get_form(self, form_id: RecordId) -> Optional[FormRecord]:
        ...


class CredentialStore(ABC):
    @abstractmethod
    async def get_credential(self, credential_id: RecordId) -> Optional[CredentialRecord]:
        ...

    @abstractmethod
    async def list_credentials(self) -> List[CredentialRecord]:
        ...

    async def verifier_overrides(self) -> Dict[str, VerifierCredentialIds]:
        """Verifier-assigned numeric ids keyed by credential type name."""
        overrides: Dict[str, VerifierCredentialIds] = {}
        for record in await self.list_credentials():
            if record.verifier_ids is not None:
                overrides[record.label] = record.verifier_ids
        return overrides


def _load_records(path: Optional[str], model: type, kind: str) -> List[Any]:
    if not path:
        return []
    try:
        with open(Path(path), "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        log.error(f"Invalid JSON in {kind} file {path}: {e}")
        return []
    except OSError as e:
        log.error(f"Error loading {kind} file {path}: {e}")
        return []

    records = []
    for item in raw if isinstance(raw, list) else []:
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            log.warning(f"Skipping invalid {kind} record: {e.error_count()} errors")
    log.info(f"Loaded {len(records)} {kind} records from {path}")
    return records


class InMemoryFormStore(FormStore):
    def __init__(self, forms: Iterable[FormRecord] = ()):
        self._forms: Dict[str, FormRecord] = {}
        self._lock = asyncio.Lock()
        for form in forms:
            self._forms[_key(form.id)] = form

    @classmethod
    def from_file(cls, path: Optional[str]) -> "InMemoryFormStore":
        return cls(_load_records(path, FormRecord, "form"))

    async def get_form(self, form_id: RecordId) -> Optional[FormRecord]:
        return self._forms.get(_key(form_id))

    async def put(self, form: FormRecord) -> None:
        async with self._lock:
            self._forms[_key(form.id)] = form


class InMemoryCredentialStore(CredentialStore):
    def __init__(self, credentials: Iterable[CredentialRecord] = ()):
        self._credentials: Dict[str, CredentialRecord] = {}
        self._lock = asyncio.Lock()
        for record in credentials:
            self._credentials[_key(record.id)] = record

    @classmethod
    def from_file(cls, path: Optional[str]) -> "InMemoryCredentialStore":
        return cls(_load_records(path, CredentialRecord, "credential"))

    async def get_credential(self, credential_id: RecordId) -> Optional[CredentialRecord]:
        return self._credentials.get(_key(credential_id))

    async def list_credentials(self) -> List[CredentialRecord]:
        return list(self._credentials.values())

    async def put(self, record: CredentialRecord) -> None:
        async with self._lock:
            self._credentials[_key(record.id)] = record
