"""
VC Forms verifier configuration constants.

Constants are organized into:
- POLICY: Implementation choices (timeouts, TTLs, size limits)
- VERIFIER: External verifier service settings (env vars)
- OCA: Branding bundle and asset settings
- OPERATIONAL: Deployment-specific settings (env vars)
"""

import os
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


# =============================================================================
# POLICY CONSTANTS
# =============================================================================

# Lifetime of a verification session (proof id) before the sweep retires it.
SESSION_TTL_SECONDS: int = int(os.getenv("VCF_SESSION_TTL_SECONDS", "600"))

# How often the background sweep removes expired sessions.
SESSION_SWEEP_INTERVAL_SECONDS: int = int(os.getenv("VCF_SESSION_SWEEP_INTERVAL", "30"))

# Number of retired proof ids remembered so late callbacks can be classified.
SESSION_RETIRED_MEMORY: int = int(os.getenv("VCF_SESSION_RETIRED_MEMORY", "1000"))

# QR/invitation artifacts are regenerated after this window.
INVITATION_TTL_SECONDS: int = 300

# Undelivered proof notifications are held this long per client id.
# 0 keeps at-most-once delivery: a push to a disconnected client is dropped.
PENDING_NOTIFICATION_TTL_SECONDS: int = int(
    os.getenv("VCF_PENDING_NOTIFICATION_TTL_SECONDS", "0")
)

# Maximum queued notifications per disconnected client.
PENDING_NOTIFICATION_MAX: int = 10

# Poll interval of the per-proof status stream (/proofs/{id}/stream).
STATUS_STREAM_INTERVAL_SECONDS: float = float(os.getenv("VCF_STATUS_STREAM_INTERVAL", "2.5"))


# =============================================================================
# VERIFIER SERVICE (Orbit-style LOB API)
# =============================================================================

# When false (or credentials are absent) the mock verifier is used.
VERIFIER_ENABLED: bool = _env_bool("VCF_VERIFIER_ENABLED", "false")

VERIFIER_BASE_URL: str = os.getenv(
    "VCF_VERIFIER_BASE_URL", "https://devapi-verifier.nborbit.ca/"
)
VERIFIER_API_KEY: Optional[str] = os.getenv("VCF_VERIFIER_API_KEY") or None
VERIFIER_LOB_ID: Optional[str] = os.getenv("VCF_VERIFIER_LOB_ID") or None

# API keys that are known placeholders and never reach the network.
VERIFIER_PLACEHOLDER_KEYS: frozenset[str] = frozenset({
    "demo-key",
    "dummy-api-key",
    "your_verifier_api_key_here",
})

VERIFIER_TIMEOUT_SECONDS: float = float(os.getenv("VCF_VERIFIER_TIMEOUT", "15"))

# Invitation URL schemes a wallet can act on.
ACCEPTED_INVITATION_SCHEMES: tuple[str, ...] = ("didcomm://", "https://")

# Return the QR/invitation together with the proof id from /proofs/init.
COMBINED_INIT: bool = _env_bool("VCF_COMBINED_INIT", "true")

# Base used to build the non-functional mock invitation URL.
MOCK_INVITATION_BASE: str = (
    "https://digitalwallet.gov.bc.ca/presentation-request?request_uri="
    "https://testapi-verifier.nborbit.ca/api/proof-request/"
)


# =============================================================================
# OCA BRANDING
# =============================================================================

# Repository used for bare repository-relative bundle paths.
OCA_DEFAULT_REPOSITORY: str = os.getenv("VCF_OCA_REPOSITORY", "bcgov/aries-oca-bundles")
OCA_DEFAULT_BRANCH: str = os.getenv("VCF_OCA_BRANCH", "main")
OCA_BUNDLE_FILENAME: str = "OCABundle.json"
OCA_RAW_HOST: str = "raw.githubusercontent.com"

OCA_FETCH_TIMEOUT_SECONDS: float = 10.0
OCA_MAX_BUNDLE_BYTES: int = 2_097_152  # 2 MB
OCA_MAX_REDIRECTS: int = 3

# Fallback branding when a bundle cannot be resolved.
DEFAULT_PRIMARY_COLOR: str = "#00698c"
DEFAULT_SECONDARY_COLOR: str = "#1a2930"
DEFAULT_LAYOUT: str = "default"

# Resolved branding per credential is reused for this long.
BRANDING_CACHE_TTL_SECONDS: float = float(os.getenv("VCF_BRANDING_CACHE_TTL", "3600"))

# Fallback branding after a failed resolution is reused this long before retrying.
BRANDING_FAILURE_TTL_SECONDS: float = 60.0

# When an overlay names no logo, these bundle-relative paths are checked with HEAD
# in order and the first that answers 2xx is used.
OCA_LOGO_DISCOVERY: bool = _env_bool("VCF_OCA_LOGO_DISCOVERY", "true")
OCA_LOGO_CANDIDATES: tuple[str, ...] = (
    "logo.png",
    "logo.svg",
    "assets/logo.png",
    "assets/logo.svg",
)

# Repository types accepted by POST /oca/repositories.
OCA_REPOSITORY_TYPES: tuple[str, ...] = ("github", "direct")

# Card layouts offered by the branding preview.
OCA_PREVIEW_VARIANTS: tuple[str, ...] = (
    "banner-bottom",
    "banner-top",
    "full-background",
    "minimal",
)

# Asset cache
ASSET_MAX_BYTES: int = 5_242_880  # 5 MB per image
ASSET_CACHE_MAX_ENTRIES: int = int(os.getenv("VCF_ASSET_CACHE_MAX_ENTRIES", "500"))
ASSET_CACHE_DIR: Optional[str] = os.getenv("VCF_ASSET_CACHE_DIR") or None


# =============================================================================
# OPERATIONAL SETTINGS
# =============================================================================

# Controls whether /admin returns configuration data.
ADMIN_ENDPOINT_ENABLED: bool = _env_bool("VCF_ADMIN_ENDPOINT_ENABLED", "true")

# Optional JSON files seeding the in-memory collaborator stores.
CREDENTIAL_TYPES_FILE: Optional[str] = os.getenv("VCF_CREDENTIAL_TYPES_FILE") or None
FORMS_FILE: Optional[str] = os.getenv("VCF_FORMS_FILE") or None
CREDENTIALS_FILE: Optional[str] = os.getenv("VCF_CREDENTIALS_FILE") or None


def verifier_credentials_present() -> bool:
    """True when a non-placeholder API key and LOB id are configured."""
    if not VERIFIER_API_KEY or not VERIFIER_LOB_ID:
        return False
    return VERIFIER_API_KEY not in VERIFIER_PLACEHOLDER_KEYS
