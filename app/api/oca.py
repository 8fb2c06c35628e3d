"""OCA branding endpoints."""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from app.api.models import (
    RefreshAllResponse,
    RepositoryRequest,
    TestUrlRequest,
    TestUrlResponse,
)
from app.container import ServiceContainer, get_services
from app.oca.repositories import OcaRepository

log = logging.getLogger(__name__)
router = APIRouter(prefix="/oca", tags=["oca"])


@router.get("/credentials/{credential_id}/branding")
async def credential_branding(
    credential_id: str,
    services: ServiceContainer = Depends(get_services),
):
    """Branding for a credential; ``branding`` is null when it has no bundle."""
    bundle = await services.branding.resolve_branding(credential_id)
    return {"credentialId": credential_id, "branding": bundle.to_dict() if bundle else None}


@router.post("/credentials/{credential_id}/refresh")
async def refresh_credential_branding(
    credential_id: str,
    services: ServiceContainer = Depends(get_services),
):
    bundle = await services.branding.refresh_branding(credential_id)
    return {"credentialId": credential_id, "branding": bundle.to_dict() if bundle else None}


@router.post("/refresh-all", response_model=RefreshAllResponse)
async def refresh_all_branding(
    services: ServiceContainer = Depends(get_services),
) -> RefreshAllResponse:
    return RefreshAllResponse(**await services.branding.refresh_all())


@router.post("/test-url", response_model=TestUrlResponse, response_model_by_alias=True)
async def test_bundle_url(
    body: TestUrlRequest,
    services: ServiceContainer = Depends(get_services),
) -> TestUrlResponse:
    result = await services.branding.test_bundle_url(body.url)
    return TestUrlResponse(
        valid=result.valid,
        canonical_url=result.canonical_url,
        overlays=result.overlays,
        error=result.error,
    )


@router.get("/assets")
async def branding_asset(
    url: str = Query(..., description="Absolute asset URL from a branding bundle"),
    services: ServiceContainer = Depends(get_services),
) -> Response:
    """Serve a branding asset from the cache, fetching it on a miss."""
    asset = await services.assets.fetch(url)
    return Response(
        content=asset.content,
        media_type=asset.content_type,
        headers={"Cache-Control": "public, max-age=3600"},
    )


@router.get("/preview/{credential_id}")
async def branding_preview(
    credential_id: str,
    services: ServiceContainer = Depends(get_services),
):
    """Branding with sample card values and the supported layout variants."""
    preview = await services.branding.preview_branding(credential_id)
    return preview.to_dict()


@router.get("/repositories")
async def list_repositories(services: ServiceContainer = Depends(get_services)):
    return [repo.to_dict() for repo in services.branding.list_repositories()]


@router.post("/repositories")
async def add_repository(
    body: RepositoryRequest,
    services: ServiceContainer = Depends(get_services),
):
    repo = await services.branding.add_repository(
        OcaRepository(
            id=body.id.strip(),
            name=body.name.strip(),
            base_url=body.base_url.strip(),
            type=body.type,
        )
    )
    return {"message": "Repository added", "repository": repo.to_dict()}
