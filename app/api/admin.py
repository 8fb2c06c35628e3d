"""Operator endpoints.

All routes are gated by ADMIN_ENDPOINT_ENABLED (default: True for dev,
set False for prod).
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.models import BroadcastRequest, LogLevelRequest
from app.container import ServiceContainer, get_services
from app.core import config

log = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _disabled() -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Admin endpoint disabled"})


@router.get("")
async def admin(services: ServiceContainer = Depends(get_services)):
    """Return all configurable items for operator visibility."""
    if not config.ADMIN_ENDPOINT_ENABLED:
        return _disabled()

    root_level = logging.getLogger().getEffectiveLevel()
    return {
        "configurable": {
            "session_ttl_seconds": config.SESSION_TTL_SECONDS,
            "session_sweep_interval_seconds": config.SESSION_SWEEP_INTERVAL_SECONDS,
            "pending_notification_ttl_seconds": config.PENDING_NOTIFICATION_TTL_SECONDS,
            "branding_cache_ttl_seconds": config.BRANDING_CACHE_TTL_SECONDS,
        },
        "policy": {
            "invitation_ttl_seconds": config.INVITATION_TTL_SECONDS,
            "verifier_timeout_seconds": config.VERIFIER_TIMEOUT_SECONDS,
            "oca_fetch_timeout_seconds": config.OCA_FETCH_TIMEOUT_SECONDS,
            "oca_max_bundle_bytes": config.OCA_MAX_BUNDLE_BYTES,
            "oca_max_redirects": config.OCA_MAX_REDIRECTS,
            "asset_max_bytes": config.ASSET_MAX_BYTES,
        },
        "features": {
            "verifier_enabled": config.VERIFIER_ENABLED,
            "verifier_mode": services.verifier.mode,
            "verifier_credentials_present": config.verifier_credentials_present(),
            "combined_init": config.COMBINED_INIT,
            "admin_endpoint_enabled": config.ADMIN_ENDPOINT_ENABLED,
        },
        "environment": {
            "verifier_base_url": config.VERIFIER_BASE_URL,
            "oca_default_repository": config.OCA_DEFAULT_REPOSITORY,
            "log_level": root_level,
            "log_level_name": logging.getLevelName(root_level),
        },
        "runtime": {
            "active_sessions": services.sessions.active_count,
            "connected_clients": services.dispatcher.connected_count,
        },
        "cache_config": {
            "asset_cache_max_entries": config.ASSET_CACHE_MAX_ENTRIES,
            "asset_cache_dir": config.ASSET_CACHE_DIR,
        },
        "cache_metrics": {
            "invitation": services.invitations.metrics().to_dict(),
            "asset": services.assets.metrics().to_dict(),
        },
    }


@router.post("/log-level")
def set_log_level(req: LogLevelRequest):
    """Change log level at runtime (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""
    if not config.ADMIN_ENDPOINT_ENABLED:
        return _disabled()

    level_upper = req.level.upper()
    if level_upper not in VALID_LOG_LEVELS:
        return JSONResponse(
            status_code=400,
            content={"detail": f"Invalid log level. Must be one of: {VALID_LOG_LEVELS}"},
        )

    logging.getLogger().setLevel(getattr(logging, level_upper))
    logging.getLogger("vcf").setLevel(getattr(logging, level_upper))
    log.info(f"Log level changed to {level_upper}")

    return {
        "success": True,
        "log_level": level_upper,
        "message": f"Log level set to {level_upper}",
    }


@router.post("/broadcast")
async def broadcast(req: BroadcastRequest, services: ServiceContainer = Depends(get_services)):
    """Push a system event to every connected client."""
    if not config.ADMIN_ENDPOINT_ENABLED:
        return _disabled()

    payload = {"type": req.type, "data": req.data}
    if req.message is not None:
        payload["message"] = req.message
    delivered = await services.dispatcher.broadcast(payload)
    return {"delivered": delivered}
