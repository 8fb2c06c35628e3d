"""OCA branding exceptions mapped to API error codes.

Bundle failures are caught by BrandingService, which falls back to default
branding. Unknown credentials and asset failures on /oca/assets reach the
API as structured errors.
"""

from app.api.models import ErrorCode


class BrandingError(Exception):
    """Base exception for branding bundle operations."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class BrandingReferenceError(BrandingError):
    """Bundle reference cannot be turned into a fetchable URL."""

    def __init__(self, message: str = "Bundle reference invalid"):
        super().__init__(ErrorCode.BRANDING_REFERENCE_INVALID, message)


class BrandingFetchError(BrandingError):
    """HTTP fetch of the bundle document failed.

    Used when:
    - Network timeout
    - HTTP error status
    - Too many redirects
    - Response too large
    """

    def __init__(self, message: str = "Bundle fetch failed"):
        super().__init__(ErrorCode.BRANDING_FETCH_FAILED, message)


class BrandingParseError(BrandingError):
    """Bundle document is not JSON or has no overlays."""

    def __init__(self, message: str = "Bundle parse failed"):
        super().__init__(ErrorCode.BRANDING_PARSE_FAILED, message)


class AssetFetchError(BrandingError):
    """Logo/background image could not be downloaded."""

    def __init__(self, message: str = "Asset fetch failed"):
        super().__init__(ErrorCode.ASSET_FETCH_FAILED, message)


class CredentialNotFoundError(BrandingError):
    def __init__(self, credential_id):
        self.credential_id = credential_id
        super().__init__(ErrorCode.CREDENTIAL_NOT_FOUND, f"Credential {credential_id} not found")


class BrandingNotFoundError(BrandingError):
    """Credential exists but has no bundle reference to brand it."""

    def __init__(self, credential_id):
        self.credential_id = credential_id
        super().__init__(
            ErrorCode.BRANDING_NOT_FOUND, f"No OCA branding found for credential {credential_id}"
        )


class RepositoryError(BrandingError):
    """Repository registration rejected (bad type or base URL)."""

    def __init__(self, message: str = "Repository invalid"):
        super().__init__(ErrorCode.REPOSITORY_INVALID, message)
