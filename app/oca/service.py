"""Credential branding service.

Looks up a credential's OCA bundle reference(s), resolves branding through
BrandingResolver and keeps the result per credential for
BRANDING_CACHE_TTL_SECONDS. When every reference fails the credential gets
default branding (cached for a shorter window so resolution is retried).

Repository-relative references resolve against the credential's
``ocaRepositoryId`` repository (see repositories.py). preview_branding()
pairs branding with sample card values for its attribute roles.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from app.core.config import (
    BRANDING_CACHE_TTL_SECONDS,
    BRANDING_FAILURE_TTL_SECONDS,
    OCA_PREVIEW_VARIANTS,
)
from app.stores import CredentialRecord, CredentialStore, RecordId

from .environment import classify_environment, prefer_environment
from .exceptions import BrandingError, BrandingNotFoundError, CredentialNotFoundError
from .models import BrandingBundle, default_branding
from .repositories import OcaRepository, RepositoryRegistry
from .resolver import BrandingResolver

log = logging.getLogger(__name__)

# Placeholder card values for the preview, keyed by branding attribute role.
PREVIEW_ROLE_VALUES = {
    "primary_attribute": "John Doe",
    "secondary_attribute": "Software Engineer",
    "issued_date_attribute": "2024-01-15",
    "expiry_date_attribute": "2025-01-15",
}
PREVIEW_COMMON_VALUES = {
    "given_names": "John",
    "family_name": "Doe",
    "member_status": "Active",
}


@dataclass(frozen=True)
class BundleTestResult:
    valid: bool
    canonical_url: Optional[str] = None
    overlays: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class BrandingPreview:
    branding: BrandingBundle
    sample_data: Dict[str, str]
    variants: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "branding": self.branding.to_dict(),
            "sampleData": self.sample_data,
            "variants": self.variants,
        }


@dataclass
class _CacheEntry:
    bundle: BrandingBundle
    expires_at: float


class BrandingService:
    def __init__(
        self,
        credentials: CredentialStore,
        resolver: BrandingResolver,
        ttl_seconds: float = BRANDING_CACHE_TTL_SECONDS,
        failure_ttl_seconds: float = BRANDING_FAILURE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        repositories: Optional[RepositoryRegistry] = None,
    ):
        self._credentials = credentials
        self._resolver = resolver
        self.repositories = repositories if repositories is not None else RepositoryRegistry()
        self._ttl = ttl_seconds
        self._failure_ttl = failure_ttl_seconds
        self._clock = clock
        self._cache: Dict[str, _CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def resolve_branding(self, credential_id: RecordId) -> Optional[BrandingBundle]:
        """Branding for a credential, or None when it has no bundle reference.

        Raises:
            CredentialNotFoundError: Unknown credential id.
        """
        record = await self._get_record(credential_id)
        key = str(record.id)

        async with self._lock:
            entry = self._cache.get(key)
            if entry is not None and entry.expires_at > self._clock():
                return entry.bundle

        return await self._resolve_and_store(record, refresh_assets=False)

    async def refresh_branding(self, credential_id: RecordId) -> Optional[BrandingBundle]:
        """Re-resolve branding, bypassing the branding and asset caches."""
        record = await self._get_record(credential_id)
        async with self._lock:
            self._cache.pop(str(record.id), None)
        return await self._resolve_and_store(record, refresh_assets=True)

    async def refresh_all(self) -> Dict[str, Any]:
        """Refresh every credential that has a bundle reference."""
        results: List[Dict[str, Any]] = []
        success = failed = 0
        for record in await self._credentials.list_credentials():
            if not record.bundle_references:
                results.append({"id": record.id, "status": "no_oca_url"})
                continue
            bundle = await self.refresh_branding(record.id)
            if bundle is None or bundle.is_default:
                failed += 1
                results.append({"id": record.id, "status": "failed"})
            else:
                success += 1
                results.append({"id": record.id, "status": "success"})
        log.info(f"Branding refresh complete: {success} succeeded, {failed} failed")
        return {"success": success, "failed": failed, "results": results}

    async def test_bundle_url(self, reference: str) -> BundleTestResult:
        """Check that a reference resolves to a parseable bundle."""
        try:
            location, overlays = await self._resolver.load_overlays(reference)
        except BrandingError as e:
            return BundleTestResult(valid=False, error=e.message)
        return BundleTestResult(
            valid=True,
            canonical_url=location.url,
            overlays=[o.type for o in overlays],
        )

    async def preview_branding(self, credential_id: RecordId) -> BrandingPreview:
        """Branding plus sample values for a card preview.

        Raises:
            CredentialNotFoundError: Unknown credential id.
            BrandingNotFoundError: Credential has no bundle reference.
        """
        bundle = await self.resolve_branding(credential_id)
        if bundle is None:
            raise BrandingNotFoundError(credential_id)

        sample: Dict[str, str] = {}
        for role, value in PREVIEW_ROLE_VALUES.items():
            attribute = getattr(bundle, role)
            if attribute:
                sample[attribute] = value
        for attribute, value in PREVIEW_COMMON_VALUES.items():
            sample.setdefault(attribute, value)
        return BrandingPreview(branding=bundle, sample_data=sample, variants=list(OCA_PREVIEW_VARIANTS))

    def list_repositories(self) -> List[OcaRepository]:
        return self.repositories.list()

    async def add_repository(self, repo: OcaRepository) -> OcaRepository:
        """Register a repository. Replacing one drops cached branding.

        Raises:
            RepositoryError: Invalid repository definition.
        """
        replacing = self.repositories.get(repo.id) is not None
        self.repositories.add(repo)
        if replacing:
            async with self._lock:
                self._cache.clear()
        return repo

    async def invalidate(self, credential_id: RecordId) -> bool:
        async with self._lock:
            return self._cache.pop(str(credential_id), None) is not None

    async def _get_record(self, credential_id: RecordId) -> CredentialRecord:
        record = await self._credentials.get_credential(credential_id)
        if record is None:
            raise CredentialNotFoundError(credential_id)
        return record

    async def _resolve_and_store(
        self, record: CredentialRecord, refresh_assets: bool
    ) -> Optional[BrandingBundle]:
        refs = [
            self.repositories.reference_for(ref, record.oca_repository_id)
            for ref in record.bundle_references
        ]
        if not refs:
            log.info(f"Credential {record.id} has no OCA bundle reference")
            return None

        if record.cred_def_id:
            preferred = prefer_environment(refs, classify_environment(record.cred_def_id), lambda r: [r])
            refs = list(dict.fromkeys(preferred + refs))

        bundle: Optional[BrandingBundle] = None
        for ref in refs:
            try:
                bundle = await self._resolver.resolve(
                    ref, cred_def_id=record.cred_def_id, refresh_assets=refresh_assets
                )
                break
            except BrandingError as e:
                log.warning(f"Branding for credential {record.id} failed from {ref}: {e.message}")

        if bundle is None:
            bundle = default_branding(name=record.label, issuer=record.issuer_name)
            ttl = self._failure_ttl
        else:
            bundle = replace(
                bundle,
                meta=replace(
                    bundle.meta,
                    name=bundle.meta.name or record.label,
                    issuer=bundle.meta.issuer or record.issuer_name,
                ),
            )
            ttl = self._ttl

        async with self._lock:
            self._cache[str(record.id)] = _CacheEntry(bundle, self._clock() + ttl)
        return bundle
