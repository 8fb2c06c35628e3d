"""Branding bundle data model and OCA document parsing.

An OCA bundle document is either a list of bundles (each with an
``overlays`` list) or a single bundle object. Only the branding overlay
(type contains "branding") and the meta overlay (type contains "meta") are
read; everything else is ignored.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from app.core.config import DEFAULT_LAYOUT, DEFAULT_PRIMARY_COLOR, DEFAULT_SECONDARY_COLOR

from .exceptions import BrandingParseError

DEFAULT_SOURCE = "default"


@dataclass(frozen=True)
class BrandingMeta:
    name: Optional[str] = None
    issuer: Optional[str] = None
    issuer_url: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class BrandingBundle:
    """Resolved credential card branding.

    Fields absent from the bundle are None rather than omitted. Asset refs
    are absolute URLs; an asset that could not be fetched is None.
    """

    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    logo_ref: Optional[str] = None
    background_image_ref: Optional[str] = None
    background_image_slice_ref: Optional[str] = None
    layout: Optional[str] = None
    primary_attribute: Optional[str] = None
    secondary_attribute: Optional[str] = None
    issued_date_attribute: Optional[str] = None
    expiry_date_attribute: Optional[str] = None
    meta: BrandingMeta = field(default_factory=BrandingMeta)
    environment: Optional[str] = None
    source_repository: Optional[str] = None
    source_path: Optional[str] = None
    source_url: Optional[str] = None
    resolved_at: Optional[float] = None

    @property
    def is_default(self) -> bool:
        return self.source_repository == DEFAULT_SOURCE

    def to_dict(self) -> Dict[str, Any]:
        """camelCase representation for API responses."""
        return {
            "primaryColor": self.primary_color,
            "secondaryColor": self.secondary_color,
            "logoRef": self.logo_ref,
            "backgroundImageRef": self.background_image_ref,
            "backgroundImageSliceRef": self.background_image_slice_ref,
            "layout": self.layout,
            "primaryAttribute": self.primary_attribute,
            "secondaryAttribute": self.secondary_attribute,
            "issuedDateAttribute": self.issued_date_attribute,
            "expiryDateAttribute": self.expiry_date_attribute,
            "meta": {
                "name": self.meta.name,
                "issuer": self.meta.issuer,
                "issuerUrl": self.meta.issuer_url,
                "description": self.meta.description,
            },
            "environment": self.environment,
            "source": {
                "repository": self.source_repository,
                "path": self.source_path,
                "url": self.source_url,
                "resolvedAt": self.resolved_at,
            },
            "isDefault": self.is_default,
        }


def default_branding(name: Optional[str] = None, issuer: Optional[str] = None) -> BrandingBundle:
    """Fallback branding used when a bundle cannot be resolved."""
    return BrandingBundle(
        primary_color=DEFAULT_PRIMARY_COLOR,
        secondary_color=DEFAULT_SECONDARY_COLOR,
        layout=DEFAULT_LAYOUT,
        meta=BrandingMeta(name=name, issuer=issuer),
        source_repository=DEFAULT_SOURCE,
    )


# =============================================================================
# Bundle document parsing
# =============================================================================

class OcaOverlay(BaseModel):
    """One overlay of a bundle; unknown keys are kept as extras."""
    model_config = ConfigDict(extra="allow")

    type: str
    language: Optional[str] = None

    def get(self, key: str) -> Any:
        return (self.model_extra or {}).get(key)

    def get_str(self, *keys: str) -> Optional[str]:
        for key in keys:
            value = self.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    @property
    def is_branding(self) -> bool:
        return "branding" in self.type.lower()

    @property
    def is_meta(self) -> bool:
        return "meta" in self.type.lower()


class OcaBundleEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    overlays: List[OcaOverlay]


def parse_overlays(document: Any) -> List[OcaOverlay]:
    """All overlays of a bundle document.

    Raises:
        BrandingParseError: Document is neither a bundle object nor a list
            of bundles, or contains no overlays.
    """
    if isinstance(document, dict):
        entries = [document]
    elif isinstance(document, list):
        entries = [e for e in document if isinstance(e, dict)]
    else:
        raise BrandingParseError(f"Bundle document is {type(document).__name__}, expected object or array")

    overlays: List[OcaOverlay] = []
    for entry in entries:
        if "overlays" not in entry:
            continue
        try:
            overlays.extend(OcaBundleEntry.model_validate(entry).overlays)
        except ValidationError as e:
            raise BrandingParseError(f"Malformed overlays: {e.error_count()} errors")

    if not overlays:
        raise BrandingParseError("Bundle document has no overlays")
    return overlays


def meta_from_overlays(overlays: List[OcaOverlay], language: str = "en") -> BrandingMeta:
    """Meta overlay fields, preferring the given language."""
    metas = [o for o in overlays if o.is_meta]
    if not metas:
        return BrandingMeta()
    preferred = [o for o in metas if (o.language or "").lower().startswith(language)]
    meta = (preferred or metas)[0]
    return BrandingMeta(
        name=meta.get_str("name"),
        issuer=meta.get_str("issuer", "issuer_name"),
        issuer_url=meta.get_str("issuer_url"),
        description=meta.get_str("description", "issuer_description"),
    )

