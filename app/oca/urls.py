"""Bundle reference normalization.

Three spellings of the same bundle collapse to one canonical raw URL:

- repository-relative path:  OCABundles/schema/bcgov-digital-trust/LSBC/Lawyer/Test
- browsable repository URL:  https://github.com/<owner>/<repo>/tree/<branch>/<path>
- raw-document URL:          https://raw.githubusercontent.com/<owner>/<repo>/<branch>/<path>/OCABundle.json

Any other http(s) URL is taken as a direct document URL and passed through.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin, urlsplit

from app.core.config import (
    OCA_BUNDLE_FILENAME,
    OCA_DEFAULT_BRANCH,
    OCA_DEFAULT_REPOSITORY,
    OCA_RAW_HOST,
)

from .exceptions import BrandingReferenceError

_BROWSE_RE = re.compile(
    r"^/(?P<owner>[^/]+)/(?P<repo>[^/]+)/(?:tree|blob)/(?P<branch>[^/]+)(?:/(?P<path>.*))?$"
)
_RAW_RE = re.compile(
    r"^/(?P<owner>[^/]+)/(?P<repo>[^/]+)/(?P<branch>[^/]+)(?:/(?P<path>.*))?$"
)


@dataclass(frozen=True)
class BundleLocation:
    """Where a bundle document lives.

    Attributes:
        url: Canonical fetch URL of the bundle document.
        base_url: Directory URL that relative asset paths resolve against.
        repository: "<owner>/<repo>" for repository-hosted bundles.
        branch: Repository branch, when known.
        path: Bundle directory inside the repository, when known.
    """

    url: str
    base_url: str
    repository: Optional[str] = None
    branch: Optional[str] = None
    path: Optional[str] = None


def _repository_location(owner: str, repo: str, branch: str, path: str) -> BundleLocation:
    path = path.strip("/")
    if path.lower().endswith(".json"):
        directory, _, _ = path.rpartition("/")
        filename = path
    else:
        directory = path
        filename = f"{path}/{OCA_BUNDLE_FILENAME}" if path else OCA_BUNDLE_FILENAME

    root = f"https://{OCA_RAW_HOST}/{owner}/{repo}/{branch}"
    return BundleLocation(
        url=f"{root}/{filename}",
        base_url=f"{root}/{directory}" if directory else root,
        repository=f"{owner}/{repo}",
        branch=branch,
        path=directory,
    )


def normalize_bundle_reference(
    reference: str,
    repository: str = OCA_DEFAULT_REPOSITORY,
    branch: str = OCA_DEFAULT_BRANCH,
) -> BundleLocation:
    """Turn any accepted bundle reference into its canonical location.

    Args:
        reference: Relative path, browsable repository URL, raw URL or
            direct document URL.
        repository: "<owner>/<repo>" used for relative paths.
        branch: Branch used for relative paths.

    Raises:
        BrandingReferenceError: Empty reference, unsupported scheme, or a
            repository URL without owner/repo/branch.
    """
    if not isinstance(reference, str) or not reference.strip():
        raise BrandingReferenceError("Bundle reference is empty")
    reference = reference.strip()

    if "://" not in reference:
        owner, _, repo = repository.partition("/")
        if not owner or not repo:
            raise BrandingReferenceError(f"Invalid default repository: {repository!r}")
        return _repository_location(owner, repo, branch, reference)

    parts = urlsplit(reference)
    if parts.scheme not in ("http", "https"):
        raise BrandingReferenceError(f"Unsupported bundle URL scheme: {parts.scheme}")
    host = (parts.hostname or "").lower()
    path = parts.path.rstrip("/")

    if host in ("github.com", "www.github.com"):
        match = _BROWSE_RE.match(path)
        if not match:
            raise BrandingReferenceError(f"Unrecognized repository URL: {reference}")
        return _repository_location(
            match["owner"], match["repo"], match["branch"], match["path"] or ""
        )

    if host == OCA_RAW_HOST:
        match = _RAW_RE.match(path)
        if not match:
            raise BrandingReferenceError(f"Unrecognized raw document URL: {reference}")
        return _repository_location(
            match["owner"], match["repo"], match["branch"], match["path"] or ""
        )

    base_url, _, _ = reference.split("?", 1)[0].split("#", 1)[0].rpartition("/")
    return BundleLocation(url=reference, base_url=base_url)


def resolve_asset_ref(ref: Optional[str], base_url: str) -> Optional[str]:
    """Absolute URL for an overlay asset reference.

    Absolute http(s) and data: URIs are returned unchanged; anything else is
    joined to the bundle directory.
    """
    if not isinstance(ref, str) or not ref.strip():
        return None
    ref = ref.strip()
    if ref.startswith(("http://", "https://", "data:")):
        return ref
    return urljoin(base_url.rstrip("/") + "/", ref)
