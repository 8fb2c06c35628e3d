"""Tests for BrandingResolver (bundle → BrandingBundle)."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.oca.exceptions import AssetFetchError, BrandingFetchError, BrandingParseError
from app.oca.fetch import discover_logo, fetch_bundle_document
from app.oca.models import parse_overlays
from app.oca.resolver import BrandingResolver

BUNDLE_PATH = "OCABundles/schema/bcgov-digital-trust/LSBC/Lawyer/Prod"
BASE = f"https://raw.githubusercontent.com/bcgov/aries-oca-bundles/main/{BUNDLE_PATH}"


def bundle_document(branding_overlays, meta=None):
    overlays = [{"type": "spec/overlays/character_encoding/1.0"}]
    overlays.append(meta or {
        "type": "spec/overlays/meta/1.0",
        "language": "en",
        "name": "Lawyer Credential",
        "issuer": "Law Society of British Columbia",
    })
    overlays.extend(branding_overlays)
    return [{"capture_base": {"type": "spec/capture_base/1.0"}, "overlays": overlays}]


def branding(**fields):
    return {"type": "aries/overlays/branding/1.0", **fields}


def fetcher_for(document):
    return AsyncMock(return_value=document)


class TestResolve:
    """Single-bundle resolution."""

    @pytest.mark.asyncio
    async def test_no_background_image_is_unset(self):
        document = bundle_document([branding(primary_background_color="#003366", logo="logo.png")])
        resolver = BrandingResolver(fetcher=fetcher_for(document))

        bundle = await resolver.resolve(BUNDLE_PATH)

        assert bundle.background_image_ref is None
        assert bundle.primary_color == "#003366"
        assert bundle.logo_ref == f"{BASE}/logo.png"

    @pytest.mark.asyncio
    async def test_fields_and_meta(self):
        document = bundle_document([branding(
            primary_background_color="#003366",
            secondary_background_color="#fcba19",
            primary_attribute="given_name",
            secondary_attribute="surname",
            issued_date_attribute="issued",
            expiry_date_attribute="expires",
        )])
        resolver = BrandingResolver(fetcher=fetcher_for(document))

        bundle = await resolver.resolve(BUNDLE_PATH)

        assert bundle.secondary_color == "#fcba19"
        assert bundle.primary_attribute == "given_name"
        assert bundle.expiry_date_attribute == "expires"
        assert bundle.meta.name == "Lawyer Credential"
        assert bundle.meta.issuer == "Law Society of British Columbia"
        assert bundle.source_repository == "bcgov/aries-oca-bundles"
        assert bundle.source_url == f"{BASE}/OCABundle.json"
        assert bundle.environment == "prod"

    @pytest.mark.asyncio
    async def test_fetches_canonical_url(self):
        fetcher = fetcher_for(bundle_document([branding()]))
        resolver = BrandingResolver(fetcher=fetcher)

        await resolver.resolve(f"https://github.com/bcgov/aries-oca-bundles/tree/main/{BUNDLE_PATH}")

        fetcher.assert_awaited_once_with(f"{BASE}/OCABundle.json")

    @pytest.mark.asyncio
    async def test_colour_spelling_and_card_layout_fallback(self):
        document = bundle_document([branding(primary_colour="#111111", card_layout="compact")])
        bundle = await BrandingResolver(fetcher=fetcher_for(document)).resolve(BUNDLE_PATH)
        assert bundle.primary_color == "#111111"
        assert bundle.layout == "compact"

    @pytest.mark.asyncio
    async def test_no_branding_overlay_raises(self):
        resolver = BrandingResolver(fetcher=fetcher_for(bundle_document([])))
        with pytest.raises(BrandingParseError):
            await resolver.resolve(BUNDLE_PATH)

    @pytest.mark.asyncio
    async def test_fetch_error_propagates(self):
        resolver = BrandingResolver(fetcher=AsyncMock(side_effect=BrandingFetchError("HTTP 404")))
        with pytest.raises(BrandingFetchError):
            await resolver.resolve(BUNDLE_PATH)


class TestAssets:
    """Asset warming through the cache."""

    @pytest.mark.asyncio
    async def test_assets_warmed(self):
        assets = MagicMock()
        assets.fetch = AsyncMock()
        document = bundle_document([branding(logo="logo.png", background_image="https://cdn/bg.png")])
        resolver = BrandingResolver(asset_cache=assets, fetcher=fetcher_for(document))

        bundle = await resolver.resolve(BUNDLE_PATH)

        assert bundle.background_image_ref == "https://cdn/bg.png"
        fetched = {call.args[0] for call in assets.fetch.await_args_list}
        assert fetched == {f"{BASE}/logo.png", "https://cdn/bg.png"}

    @pytest.mark.asyncio
    async def test_failed_asset_left_unset(self):
        assets = MagicMock()

        async def fetch(url):
            if "logo" in url:
                raise AssetFetchError("HTTP 404")

        assets.fetch = AsyncMock(side_effect=fetch)
        document = bundle_document([branding(logo="logo.png", background_image="bg.png")])
        resolver = BrandingResolver(asset_cache=assets, fetcher=fetcher_for(document))

        bundle = await resolver.resolve(BUNDLE_PATH)

        assert bundle.logo_ref is None
        assert bundle.background_image_ref == f"{BASE}/bg.png"

    @pytest.mark.asyncio
    async def test_refresh_assets_uses_refresh(self):
        assets = MagicMock()
        assets.fetch = AsyncMock()
        assets.refresh = AsyncMock()
        document = bundle_document([branding(logo="logo.png")])
        resolver = BrandingResolver(asset_cache=assets, fetcher=fetcher_for(document))

        await resolver.resolve(BUNDLE_PATH, refresh_assets=True)

        assets.refresh.assert_awaited_once_with(f"{BASE}/logo.png")
        assets.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_data_uri_not_fetched(self):
        assets = MagicMock()
        assets.fetch = AsyncMock()
        document = bundle_document([branding(logo="data:image/png;base64,AAAA")])
        resolver = BrandingResolver(asset_cache=assets, fetcher=fetcher_for(document))

        bundle = await resolver.resolve(BUNDLE_PATH)

        assert bundle.logo_ref == "data:image/png;base64,AAAA"
        assets.fetch.assert_not_awaited()


class TestEnvironmentSelection:
    """Test/prod branding variants within one bundle."""

    DOCUMENT = bundle_document([
        branding(logo="prod/logo.png", primary_background_color="#000001"),
        branding(logo="test/logo.png", primary_background_color="#000002"),
    ])

    @pytest.mark.asyncio
    async def test_test_cred_def_picks_test_variant(self):
        resolver = BrandingResolver(fetcher=fetcher_for(self.DOCUMENT))
        bundle = await resolver.resolve("cards/lawyer", cred_def_id="candy:test:QzLY:3:CL:1:x")
        assert bundle.primary_color == "#000002"
        assert bundle.environment == "test"

    @pytest.mark.asyncio
    async def test_prod_cred_def_picks_prod_variant(self):
        resolver = BrandingResolver(fetcher=fetcher_for(self.DOCUMENT))
        bundle = await resolver.resolve("cards/lawyer", cred_def_id="QzLY:3:CL:789:legal")
        assert bundle.primary_color == "#000001"
        assert bundle.environment == "prod"

    @pytest.mark.asyncio
    async def test_without_cred_def_first_overlay(self):
        resolver = BrandingResolver(fetcher=fetcher_for(self.DOCUMENT))
        bundle = await resolver.resolve("cards/lawyer")
        assert bundle.primary_color == "#000001"
        assert bundle.environment is None


class TestParseOverlays:
    def test_single_bundle_object(self):
        overlays = parse_overlays({"overlays": [{"type": "aries/overlays/branding/1.0"}]})
        assert overlays[0].is_branding

    @pytest.mark.parametrize("document", ["text", 42, [], {"capture_base": {}}])
    def test_unusable_documents(self, document):
        with pytest.raises(BrandingParseError):
            parse_overlays(document)


class TestFetchBundleDocument:
    """HTTP fetch limits and JSON decoding."""

    URL = f"{BASE}/OCABundle.json"

    def _patched(self, mock_client_class, response=None, side_effect=None):
        mock_client = AsyncMock()
        if side_effect is not None:
            mock_client.get.side_effect = side_effect
        else:
            mock_client.get.return_value = response
        mock_client_class.return_value.__aenter__.return_value = mock_client
        return mock_client

    def _response(self, content):
        response = MagicMock()
        response.content = content
        response.raise_for_status = MagicMock()
        return response

    @pytest.mark.asyncio
    async def test_text_plain_json_decoded(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            self._patched(mock_client_class, self._response(b'[{"overlays": []}]'))
            document = await fetch_bundle_document(self.URL)
        assert document == [{"overlays": []}]

    @pytest.mark.asyncio
    async def test_not_json(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            self._patched(mock_client_class, self._response(b"<html>404</html>"))
            with pytest.raises(BrandingParseError):
                await fetch_bundle_document(self.URL)

    @pytest.mark.asyncio
    async def test_oversized(self):
        with patch("httpx.AsyncClient") as mock_client_class, \
                patch("app.oca.fetch.OCA_MAX_BUNDLE_BYTES", 4):
            self._patched(mock_client_class, self._response(b"[1, 2, 3]"))
            with pytest.raises(BrandingFetchError):
                await fetch_bundle_document(self.URL)

    @pytest.mark.asyncio
    async def test_timeout(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            self._patched(mock_client_class, side_effect=httpx.TimeoutException("slow"))
            with pytest.raises(BrandingFetchError):
                await fetch_bundle_document(self.URL)

    @pytest.mark.asyncio
    async def test_http_status(self):
        request = httpx.Request("GET", self.URL)
        response = self._response(b"")
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "not found", request=request, response=httpx.Response(404, request=request)
        )
        with patch("httpx.AsyncClient") as mock_client_class:
            self._patched(mock_client_class, response)
            with pytest.raises(BrandingFetchError) as exc_info:
                await fetch_bundle_document(self.URL)
        assert "404" in exc_info.value.message


class TestLogoDiscovery:
    """Conventional logo locations when the overlay names none."""

    @pytest.mark.asyncio
    async def test_discovered_logo_used(self):
        finder = AsyncMock(return_value=f"{BASE}/assets/logo.svg")
        document = bundle_document([branding(primary_background_color="#003366")])
        resolver = BrandingResolver(fetcher=fetcher_for(document), logo_finder=finder)

        bundle = await resolver.resolve(BUNDLE_PATH)

        finder.assert_awaited_once_with(BASE)
        assert bundle.logo_ref == f"{BASE}/assets/logo.svg"

    @pytest.mark.asyncio
    async def test_overlay_logo_wins(self):
        finder = AsyncMock(return_value=f"{BASE}/assets/logo.svg")
        document = bundle_document([branding(logo="brand.png")])
        resolver = BrandingResolver(fetcher=fetcher_for(document), logo_finder=finder)

        bundle = await resolver.resolve(BUNDLE_PATH)

        finder.assert_not_awaited()
        assert bundle.logo_ref == f"{BASE}/brand.png"

    @pytest.mark.asyncio
    async def test_discovery_disabled(self):
        finder = AsyncMock(return_value=f"{BASE}/logo.png")
        document = bundle_document([branding(primary_background_color="#003366")])
        resolver = BrandingResolver(
            fetcher=fetcher_for(document), logo_finder=finder, discover_logos=False
        )

        bundle = await resolver.resolve(BUNDLE_PATH)

        finder.assert_not_awaited()
        assert bundle.logo_ref is None

    @pytest.mark.asyncio
    async def test_first_existing_candidate_returned(self):
        missing = MagicMock(status_code=404)
        found = MagicMock(status_code=200)
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = AsyncMock()
            mock_client.head.side_effect = [httpx.ConnectError("refused"), missing, found]
            mock_client_class.return_value.__aenter__.return_value = mock_client

            url = await discover_logo(BASE)

        assert url == f"{BASE}/assets/logo.png"
        requested = [call.args[0] for call in mock_client.head.await_args_list]
        assert requested == [f"{BASE}/logo.png", f"{BASE}/logo.svg", f"{BASE}/assets/logo.png"]

    @pytest.mark.asyncio
    async def test_no_candidate_found(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = AsyncMock()
            mock_client.head.return_value = MagicMock(status_code=404)
            mock_client_class.return_value.__aenter__.return_value = mock_client

            assert await discover_logo(f"{BASE}/") is None
        assert mock_client.head.await_count == 4

    @pytest.mark.asyncio
    async def test_non_http_base_skipped(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            assert await discover_logo("file:///tmp/bundles") is None
        mock_client_class.assert_not_called()
