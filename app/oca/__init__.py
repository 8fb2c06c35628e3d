"""OCA branding bundle resolution and asset caching."""

from .assets import AssetCache, CachedAsset
from .environment import PROD, TEST, classify_environment, path_environment
from .exceptions import (
    AssetFetchError,
    BrandingError,
    BrandingFetchError,
    BrandingParseError,
    BrandingReferenceError,
    CredentialNotFoundError,
)
from .models import BrandingBundle, BrandingMeta, default_branding
from .resolver import BrandingResolver
from .urls import BundleLocation, normalize_bundle_reference

__all__ = [
    "AssetCache",
    "CachedAsset",
    "PROD",
    "TEST",
    "classify_environment",
    "path_environment",
    "AssetFetchError",
    "BrandingError",
    "BrandingFetchError",
    "BrandingParseError",
    "BrandingReferenceError",
    "CredentialNotFoundError",
    "BrandingBundle",
    "BrandingMeta",
    "default_branding",
    "BrandingResolver",
    "BundleLocation",
    "normalize_bundle_reference",
]
