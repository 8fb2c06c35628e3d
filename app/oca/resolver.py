"""Branding resolution: bundle reference → BrandingBundle.

Steps:
1. Normalize the reference to its canonical bundle URL
2. Fetch and parse the bundle document
3. Locate the branding and meta overlays
4. With a credential definition id, prefer branding overlays whose asset
   paths (or the bundle path) name the same environment (test/prod)
5. Resolve relative asset paths against the bundle directory and warm the
   asset cache; a failed asset leaves its field None
6. When the overlay names no logo, look for a logo at conventional locations next
   to the bundle (OCA_LOGO_DISCOVERY)

Fetch and parse failures propagate as BrandingFetchError/BrandingParseError;
the caller decides on fallback branding.
"""

import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

from app.core.config import OCA_LOGO_DISCOVERY

from .assets import AssetCache
from .environment import classify_environment, path_environment, prefer_environment
from .exceptions import AssetFetchError, BrandingParseError
from .fetch import discover_logo, fetch_bundle_document
from .models import (
    BrandingBundle,
    OcaOverlay,
    meta_from_overlays,
    parse_overlays,
)
from .urls import BundleLocation, normalize_bundle_reference, resolve_asset_ref

log = logging.getLogger(__name__)

BundleFetcher = Callable[[str], Awaitable[Any]]
LogoFinder = Callable[[str], Awaitable[Optional[str]]]

_ASSET_FIELDS = ("logo", "background_image", "background_image_slice")


class BrandingResolver:
    """Resolves bundle references into branding, caching assets as it goes."""

    def __init__(
        self,
        asset_cache: Optional[AssetCache] = None,
        fetcher: BundleFetcher = fetch_bundle_document,
        clock: Callable[[], float] = time.time,
        logo_finder: Optional[LogoFinder] = None,
        discover_logos: bool = OCA_LOGO_DISCOVERY,
    ):
        self._assets = asset_cache
        self._fetch = fetcher
        self._clock = clock
        self._find_logo = logo_finder if logo_finder is not None else discover_logo
        self._discover_logos = discover_logos

    async def load_overlays(self, reference: str) -> tuple[BundleLocation, List[OcaOverlay]]:
        """Normalize, fetch and parse a bundle reference."""
        location = normalize_bundle_reference(reference)
        document = await self._fetch(location.url)
        return location, parse_overlays(document)

    async def resolve(
        self,
        reference: str,
        cred_def_id: Optional[str] = None,
        refresh_assets: bool = False,
    ) -> BrandingBundle:
        """Resolve a bundle reference.

        Args:
            reference: Relative path, repository URL, raw URL or document URL.
            cred_def_id: Credential definition id used to pick test/prod
                branding variants.
            refresh_assets: Re-download assets instead of using cached copies.

        Raises:
            BrandingReferenceError: Reference cannot be normalized.
            BrandingFetchError: Bundle could not be downloaded.
            BrandingParseError: Bundle is not a usable OCA document.
        """
        location, overlays = await self.load_overlays(reference)

        environment = (
            classify_environment(cred_def_id) if cred_def_id else path_environment(location.path)
        )
        branding = self._select_branding(overlays, location, environment if cred_def_id else None)
        if branding is None:
            raise BrandingParseError(f"Bundle at {location.url} has no branding overlay")

        refs = {
            name: resolve_asset_ref(branding.get_str(name), location.base_url)
            for name in _ASSET_FIELDS
        }
        for name, url in refs.items():
            if url is not None:
                refs[name] = await self._warm_asset(url, refresh_assets)
        if self._discover_logos and branding.get_str("logo") is None:
            found = await self._find_logo(location.base_url)
            if found is not None:
                refs["logo"] = await self._warm_asset(found, refresh_assets)

        bundle = BrandingBundle(
            primary_color=branding.get_str("primary_background_color", "primary_colour"),
            secondary_color=branding.get_str("secondary_background_color", "secondary_colour"),
            logo_ref=refs["logo"],
            background_image_ref=refs["background_image"],
            background_image_slice_ref=refs["background_image_slice"],
            layout=branding.get_str("layout", "card_layout"),
            primary_attribute=branding.get_str("primary_attribute"),
            secondary_attribute=branding.get_str("secondary_attribute"),
            issued_date_attribute=branding.get_str("issued_date_attribute"),
            expiry_date_attribute=branding.get_str("expiry_date_attribute"),
            meta=meta_from_overlays(overlays),
            environment=environment,
            source_repository=location.repository,
            source_path=location.path,
            source_url=location.url,
            resolved_at=self._clock(),
        )
        log.info(
            f"Resolved branding from {location.url} "
            f"(environment={environment}, logo={'yes' if bundle.logo_ref else 'no'})"
        )
        return bundle

    def _select_branding(
        self,
        overlays: List[OcaOverlay],
        location: BundleLocation,
        environment: Optional[str],
    ) -> Optional[OcaOverlay]:
        candidates = [o for o in overlays if o.is_branding]
        if not candidates:
            return None
        if environment:
            candidates = prefer_environment(
                candidates,
                environment,
                lambda o: [location.path, *(o.get_str(f) for f in _ASSET_FIELDS)],
            )
        return candidates[0]

    async def _warm_asset(self, url: str, refresh: bool) -> Optional[str]:
        """Fetch url through the asset cache; None when it cannot be fetched."""
        if self._assets is None or url.startswith("data:"):
            return url
        try:
            if refresh:
                await self._assets.refresh(url)
            else:
                await self._assets.fetch(url)
        except AssetFetchError as e:
            log.warning(f"Branding asset unavailable, leaving unset: {e}")
            return None
        return url
