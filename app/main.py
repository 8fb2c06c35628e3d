import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api import admin, health, oca, proofs, ws
from app.api.models import ErrorCode, ErrorDetail, ErrorResponse
from app.container import ServiceContainer, build_services
from app.core.config import SESSION_SWEEP_INTERVAL_SECONDS
from app.logging_config import configure_logging
from app.oca.exceptions import BrandingError
from app.verification.exceptions import VerificationError
from app.verifier.exceptions import VerifierError

configure_logging()
log = logging.getLogger("vcf")

_VERIFICATION_STATUS = {
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.FORM_NOT_FOUND: 404,
    ErrorCode.MOCK_MODE_REQUIRED: 409,
}

_BRANDING_STATUS = {
    ErrorCode.CREDENTIAL_NOT_FOUND: 404,
    ErrorCode.BRANDING_NOT_FOUND: 404,
    ErrorCode.BRANDING_REFERENCE_INVALID: 400,
    ErrorCode.REPOSITORY_INVALID: 400,
}


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail.of(code, message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the FastAPI app; tests pass a prepared container."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Starting VC Forms verifier service...")
        container: ServiceContainer = app.state.services
        sweeper = asyncio.create_task(
            container.sessions.run_sweeper(
                SESSION_SWEEP_INTERVAL_SECONDS,
                after_sweep=container.verification.housekeeping,
            )
        )
        log.info(
            f"Session sweeper started (interval: {SESSION_SWEEP_INTERVAL_SECONDS}s, "
            f"verifier: {container.verifier.mode})"
        )

        yield

        log.info("Shutting down VC Forms verifier service...")
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        await container.verifier.close()
        log.info("VC Forms verifier service stopped")

    app = FastAPI(
        title="VC Forms Verifier",
        version="0.1.0",
        description="Proof request orchestration and OCA branding for VC Forms",
        lifespan=lifespan,
    )
    app.state.services = services if services is not None else build_services()

    @app.middleware("http")
    async def req_log(request: Request, call_next):
        start = time.time()
        route = request.url.path
        remote = request.client.host if request.client else "-"
        resp = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)
        log.info(f"request_complete status={resp.status_code} duration_ms={duration_ms}",
                 extra={"request_id": "-", "route": route, "remote_addr": remote})
        return resp

    @app.exception_handler(VerifierError)
    async def verifier_error_handler(request: Request, exc: VerifierError):
        status = 503 if exc.code == ErrorCode.VERIFIER_UNAVAILABLE else 502
        log.warning(f"Verifier error during {exc.operation or 'request'}: {exc.message}",
                    extra={"route": request.url.path})
        return _error_response(status, exc.code, exc.message)

    @app.exception_handler(VerificationError)
    async def verification_error_handler(request: Request, exc: VerificationError):
        return _error_response(_VERIFICATION_STATUS.get(exc.code, 400), exc.code, exc.message)

    @app.exception_handler(BrandingError)
    async def branding_error_handler(request: Request, exc: BrandingError):
        return _error_response(_BRANDING_STATUS.get(exc.code, 502), exc.code, exc.message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log.exception(f"Unhandled error: {exc}", extra={"route": request.url.path})
        return _error_response(500, ErrorCode.INTERNAL_ERROR, "Internal server error")

    app.include_router(health.router)
    app.include_router(proofs.router)
    app.include_router(oca.router)
    app.include_router(ws.router)
    app.include_router(admin.router)
    return app


app = create_app()
