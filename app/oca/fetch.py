"""HTTP fetch of OCA bundle documents.

Enforces:
- Timeout (OCA_FETCH_TIMEOUT_SECONDS)
- Response size limit (OCA_MAX_BUNDLE_BYTES)
- Redirect limit (OCA_MAX_REDIRECTS)
- JSON body (raw repository hosts serve JSON as text/plain, so the
  content-type header is not trusted)

discover_logo() checks conventional logo locations next to a bundle.
"""

import json
import logging
from typing import Any, Optional, Sequence

import httpx

from app.core.config import (
    OCA_FETCH_TIMEOUT_SECONDS,
    OCA_LOGO_CANDIDATES,
    OCA_MAX_BUNDLE_BYTES,
    OCA_MAX_REDIRECTS,
)

from .exceptions import BrandingFetchError, BrandingParseError

log = logging.getLogger(__name__)


async def fetch_bundle_document(url: str) -> Any:
    """Fetch and decode a bundle document.

    Args:
        url: Canonical bundle URL from normalize_bundle_reference().

    Returns:
        Decoded JSON (list or dict).

    Raises:
        BrandingFetchError: Network, timeout, status or size failure.
        BrandingParseError: Body is not valid JSON.
    """
    try:
        async with httpx.AsyncClient(
            timeout=OCA_FETCH_TIMEOUT_SECONDS,
            max_redirects=OCA_MAX_REDIRECTS,
            follow_redirects=True,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()

            content = response.content
            if len(content) > OCA_MAX_BUNDLE_BYTES:
                raise BrandingFetchError(
                    f"Response size {len(content)} bytes exceeds limit "
                    f"of {OCA_MAX_BUNDLE_BYTES} bytes"
                )

    except BrandingFetchError:
        raise
    except httpx.TimeoutException:
        raise BrandingFetchError(
            f"Timeout after {OCA_FETCH_TIMEOUT_SECONDS}s fetching {url}"
        )
    except httpx.TooManyRedirects:
        raise BrandingFetchError(
            f"Exceeded {OCA_MAX_REDIRECTS} redirects fetching {url}"
        )
    except httpx.HTTPStatusError as e:
        raise BrandingFetchError(
            f"HTTP {e.response.status_code}: {e.response.reason_phrase}"
        )
    except httpx.RequestError as e:
        raise BrandingFetchError(f"Request failed: {e}")

    try:
        document = json.loads(content)
    except (ValueError, UnicodeDecodeError) as e:
        raise BrandingParseError(f"Bundle at {url} is not JSON: {e}")

    log.info(f"Fetched OCA bundle: {url} ({len(content)} bytes)")
    return document


async def discover_logo(
    base_url: str,
    candidates: Sequence[str] = OCA_LOGO_CANDIDATES,
) -> Optional[str]:
    """First conventional logo location next to a bundle that exists.

    Each candidate is requested with HEAD; network errors and non-2xx answers
    move on to the next one.

    Returns:
        Absolute logo URL, or None when no candidate answers.
    """
    if not base_url.startswith(("http://", "https://")):
        return None
    base = base_url.rstrip("/")
    async with httpx.AsyncClient(
        timeout=OCA_FETCH_TIMEOUT_SECONDS,
        max_redirects=OCA_MAX_REDIRECTS,
        follow_redirects=True,
    ) as client:
        for candidate in candidates:
            url = f"{base}/{candidate}"
            try:
                response = await client.head(url)
            except httpx.HTTPError as e:
                log.debug(f"Logo lookup failed for {url}: {e}")
                continue
            if 200 <= response.status_code < 300:
                log.info(f"Discovered logo at {url}")
                return url
    return None
