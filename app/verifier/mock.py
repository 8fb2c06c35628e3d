"""Offline verifier used when the real service is disabled or unconfigured.

Never touches the network. Ids and invitation URLs are well formed but do
not lead anywhere, and status never becomes verified on its own: a mock
verification only completes through the explicit simulate trigger.
"""

import logging
import time
import uuid

from app.core.config import MOCK_INVITATION_BASE
from app.verification.proof_definition import ProofDefinition
from app.verification.qr import render_qr_svg

from .client import PreparedInvitation, ProofStatus, VerifierClient

log = logging.getLogger(__name__)

MOCK_PENDING_STATUS = "request_sent"


class MockVerifierClient(VerifierClient):
    mode = "mock"

    def __init__(self, invitation_base: str = MOCK_INVITATION_BASE):
        self._invitation_base = invitation_base

    async def define_proof(self, definition: ProofDefinition) -> str:
        definition_id = f"mock-proof-def-{uuid.uuid4().hex[:12]}"
        log.info(f"Mock verifier: defined '{definition.proof_name}' as {definition_id}")
        return definition_id

    async def prepare_invitation(self, definition_id: str) -> PreparedInvitation:
        request_id = f"mock-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
        invitation_url = f"{self._invitation_base}{request_id}"
        log.info(f"Mock verifier: invitation {request_id} for {definition_id}")
        return PreparedInvitation(
            request_id=request_id,
            invitation_url=invitation_url,
            qr_svg=render_qr_svg(invitation_url),
        )

    async def get_status(self, request_id: str) -> ProofStatus:
        return ProofStatus(status=MOCK_PENDING_STATUS)
