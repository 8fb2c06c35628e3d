"""Proof request endpoints and verifier webhook."""

import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api.models import (
    InitProofRequest,
    InitProofResponse,
    InvitationResponse,
    ProofStatusResponse,
    SimulateVerificationRequest,
)
from app.container import ServiceContainer, get_services
from app.verification.exceptions import VerificationError
from app.verification.service import StatusView
from app.verifier import VerifierError, VerifierEvent

log = logging.getLogger(__name__)
router = APIRouter(tags=["proofs"])


@router.post("/proofs/init", response_model=InitProofResponse, response_model_by_alias=True)
async def init_proof(
    body: InitProofRequest,
    services: ServiceContainer = Depends(get_services),
) -> InitProofResponse:
    """Start a proof request for a form.

    Returns status "no-vc" when the form has no credential-backed fields.
    In combined mode the QR/invitation is included.
    """
    result = await services.verification.initiate_verification(body.form_id, body.client_id)
    response = InitProofResponse(
        status=result.status,
        proof_id=result.proof_id,
        client_id=result.client_id,
        message=result.message,
        mock=result.mock,
        dropped_requirements=len(result.dropped),
    )
    if result.invitation is not None:
        response.svg = result.invitation.svg
        response.invitation_url = result.invitation.invitation_url
    log.info(
        f"proof_init status={result.status} form={body.form_id}",
        extra={"proof_id": result.proof_id, "client_id": body.client_id, "route": "/proofs/init"},
    )
    return response


@router.get("/proofs/{proof_id}/qr", response_model=InvitationResponse, response_model_by_alias=True)
async def proof_qr(
    proof_id: str,
    services: ServiceContainer = Depends(get_services),
) -> InvitationResponse:
    artifact = await services.verification.get_invitation(proof_id)
    return InvitationResponse(
        svg=artifact.svg,
        invitation_url=artifact.invitation_url,
        expires_at=artifact.expires_at,
    )


@router.get("/proofs/{proof_id}/status", response_model=ProofStatusResponse, response_model_by_alias=True)
async def proof_status(
    proof_id: str,
    services: ServiceContainer = Depends(get_services),
) -> ProofStatusResponse:
    """Poll path; a verified status also notifies the waiting client."""
    view = await services.verification.poll_status(proof_id)
    return ProofStatusResponse(proof_id=view.proof_id, status=view.status, attributes=view.attributes)


def _sse(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def _view_payload(view: StatusView) -> dict:
    return {"proofId": view.proof_id, "status": view.status, "attributes": view.attributes}


@router.get("/proofs/{proof_id}/stream")
async def proof_status_stream(
    proof_id: str,
    services: ServiceContainer = Depends(get_services),
) -> StreamingResponse:
    """Server-sent status events for one proof.

    Emits ``status`` on each change, ``done`` once the proof reaches a
    terminal state and ``error`` if polling fails mid-stream. Unknown proof
    ids are rejected before the stream opens.
    """
    first = await services.verification.poll_status(proof_id)

    async def events() -> AsyncIterator[str]:
        try:
            async for view in services.verification.watch_status(proof_id, initial=first):
                yield _sse("done" if view.terminal else "status", _view_payload(view))
        except (VerifierError, VerificationError) as e:
            log.warning(f"Status stream for {proof_id} ended: {e.message}")
            yield _sse("error", {"error": e.message})

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.delete("/proofs/{proof_id}")
async def cancel_proof(
    proof_id: str,
    services: ServiceContainer = Depends(get_services),
):
    cancelled = await services.verification.cancel_verification(proof_id)
    return {"proofId": proof_id, "cancelled": cancelled}


@router.post("/proofs/{proof_id}/simulate")
async def simulate_proof(
    proof_id: str,
    body: SimulateVerificationRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Complete a mock-mode proof request as if the wallet presented."""
    outcome = await services.verification.simulate_verification(proof_id, body.attributes)
    return {"proofId": proof_id, "outcome": outcome}


@router.post("/webhook/verifier")
async def verifier_webhook(
    event: VerifierEvent,
    services: ServiceContainer = Depends(get_services),
):
    """Ingress for verifier state changes.

    Always 200 so the verifier does not retry events we chose to drop.
    """
    outcome = await services.verification.handle_verifier_event(event)
    log.info(
        f"verifier_webhook state={event.outcome} outcome={outcome}",
        extra={"proof_id": event.proof_id, "route": "/webhook/verifier"},
    )
    return {"received": True, "outcome": outcome}
