"""Verification orchestration.

Wires the form store, extractor, proof-definition builder, verifier client,
session registry, invitation cache and notification dispatcher into the
proof-request lifecycle:

    initiate → invitation (QR) → wait (webhook or poll) → verified → notify

Correctness over liveness: an event for an expired, cancelled or already
verified session is dropped and logged, never pushed to a client.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from app.core.config import COMBINED_INIT, STATUS_STREAM_INTERVAL_SECONDS
from app.stores import CredentialStore, FormRecord, FormStore, RecordId
from app.verifier.client import VERIFIED_STATUSES, VerifierClient, VerifierEvent
from app.verifier.exceptions import VerifierError

from .credential_types import CredentialTypeRegistry
from .dispatcher import NotificationDispatcher
from .exceptions import FormNotFoundError, MockModeRequiredError, SessionNotFoundError
from .invitation_cache import InvitationArtifact, InvitationCache
from .mapping import AttributeRequirement, extract_mappings
from .proof_definition import ProofDefinition, build_proof_definition
from .qr import render_qr_svg
from .sessions import SessionRegistry, SessionState, VerificationSession

log = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_NO_VC = "no-vc"
STATUS_PENDING = "pending"
TERMINAL_STATUSES = frozenset(state.value for state in SessionState if state.terminal)
PROOF_VERIFIED_EVENT = "proof_verified"


@dataclass
class InitiationResult:
    status: str
    proof_id: Optional[str] = None
    client_id: Optional[str] = None
    invitation: Optional[InvitationArtifact] = None
    message: Optional[str] = None
    mock: bool = False
    dropped: List[AttributeRequirement] = field(default_factory=list)


@dataclass
class StatusView:
    proof_id: str
    status: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class VerificationService:
    """Proof-request lifecycle for forms with credential-backed fields."""

    def __init__(
        self,
        forms: FormStore,
        credentials: CredentialStore,
        verifier: VerifierClient,
        sessions: SessionRegistry,
        dispatcher: NotificationDispatcher,
        invitations: InvitationCache,
        registry: Optional[CredentialTypeRegistry] = None,
        combined_init: bool = COMBINED_INIT,
    ):
        self.forms = forms
        self.credentials = credentials
        self.verifier = verifier
        self.sessions = sessions
        self.dispatcher = dispatcher
        self.invitations = invitations
        self.registry = registry if registry is not None else CredentialTypeRegistry()
        self.combined_init = combined_init
        # form id → (definition payload, verifier definition id)
        self._definitions: Dict[str, Tuple[Dict[str, Any], str]] = {}
        self._definitions_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Initiation
    # -------------------------------------------------------------------------

    async def initiate_verification(
        self, form_id: RecordId, client_id: Optional[str] = None
    ) -> InitiationResult:
        """Start a proof request for a form.

        Returns:
            status "no-vc" when the form needs no credential, else "ok" with
            a proof id (and the invitation when combined init is on).

        Raises:
            FormNotFoundError: Unknown form id.
            VerifierError: Live verifier failed; no session is left behind.
        """
        form = await self.forms.get_form(form_id)
        if form is None:
            raise FormNotFoundError(form_id)

        mappings = extract_mappings(form.definition())
        if not mappings:
            return InitiationResult(
                status=STATUS_NO_VC, message="No verifiable credential fields found"
            )

        overrides = await self.credentials.verifier_overrides()
        built = build_proof_definition(mappings, form.name, self.registry, overrides)
        if built.dropped:
            log.warning(
                f"Form {form.id}: {len(built.dropped)} requirement(s) dropped "
                f"(unknown credential types: {sorted({d.credential_type for d in built.dropped})})"
            )
        if not built.proof_needed:
            return InitiationResult(
                status=STATUS_NO_VC,
                message="Unable to build proof request from mappings",
                dropped=built.dropped,
            )

        definition_id = await self._definition_id(form, built.definition)
        proof_id = await self.sessions.begin(
            client_id, form.id, proof_definition_id=definition_id
        )

        invitation = None
        if self.combined_init:
            try:
                invitation = await self.get_invitation(proof_id)
            except VerifierError:
                await self.sessions.cancel(proof_id)
                raise

        return InitiationResult(
            status=STATUS_OK,
            proof_id=proof_id,
            client_id=client_id,
            invitation=invitation,
            mock=self.verifier.is_mock,
            dropped=built.dropped,
        )

    async def _definition_id(self, form: FormRecord, definition: ProofDefinition) -> str:
        """Verifier definition id for form, reused while the definition is unchanged."""
        payload = definition.to_payload()
        key = str(form.id)
        async with self._definitions_lock:
            cached = self._definitions.get(key)
            if cached is not None and cached[0] == payload:
                return cached[1]

        definition_id = await self.verifier.define_proof(definition)
        async with self._definitions_lock:
            self._definitions[key] = (payload, definition_id)
        return definition_id

    # -------------------------------------------------------------------------
    # Invitation
    # -------------------------------------------------------------------------

    async def get_invitation(self, proof_id: str) -> InvitationArtifact:
        """QR/invitation for a live session, cached for the invitation TTL.

        Raises:
            SessionNotFoundError: Unknown, expired or finished session.
        """
        if self.sessions.resolve(proof_id) is None:
            raise SessionNotFoundError(proof_id)
        return await self.invitations.get_or_create(proof_id, self._generate_invitation)

    async def _generate_invitation(self, proof_id: str) -> InvitationArtifact:
        session = self.sessions.resolve(proof_id)
        if session is None:
            raise SessionNotFoundError(proof_id)

        # Once the verifier has issued a request for this session, a stale
        # QR is re-rendered from the same URL rather than requesting again.
        if session.invitation_url:
            url = session.invitation_url
            svg = render_qr_svg(url)
        else:
            prepared = await self.verifier.prepare_invitation(session.proof_definition_id)
            url = prepared.invitation_url
            svg = prepared.qr_svg or render_qr_svg(url)
            await self.sessions.attach(
                proof_id,
                verifier_request_id=prepared.request_id,
                invitation_url=url,
            )

        return InvitationArtifact(
            proof_id=proof_id,
            svg=svg,
            invitation_url=url,
            expires_at=session.expires_at,
        )

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    async def poll_status(self, proof_id: str) -> StatusView:
        """Ask the verifier for the session's status; dispatches on verified.

        Recently finished sessions report their terminal state.

        Raises:
            SessionNotFoundError: Unknown proof id.
        """
        session = self.sessions.resolve(proof_id)
        if session is None:
            retired = self.sessions.retired_state(proof_id)
            if retired is None:
                raise SessionNotFoundError(proof_id)
            return StatusView(proof_id=proof_id, status=retired.value)

        if self.verifier.is_mock or not session.verifier_request_id:
            return StatusView(proof_id=proof_id, status=STATUS_PENDING)

        status = await self.verifier.get_status(session.verifier_request_id)
        if status.verified:
            if await self._complete(session, status.attributes):
                return StatusView(
                    proof_id=proof_id,
                    status=SessionState.VERIFIED.value,
                    attributes=status.attributes,
                )
            retired = self.sessions.retired_state(proof_id)
            return StatusView(proof_id=proof_id, status=(retired or SessionState.EXPIRED).value)
        return StatusView(proof_id=proof_id, status=status.status)

    async def watch_status(
        self,
        proof_id: str,
        interval: Optional[float] = None,
        initial: Optional[StatusView] = None,
    ) -> AsyncIterator[StatusView]:
        """Yield the session status each time it changes, ending on a terminal one.

        Polls through poll_status() every ``interval`` seconds. ``initial`` is
        a view the caller already fetched; it is yielded first.

        Raises:
            SessionNotFoundError: Unknown proof id.
            VerifierError: Verifier status request failed.
        """
        delay = STATUS_STREAM_INTERVAL_SECONDS if interval is None else interval
        view = initial if initial is not None else await self.poll_status(proof_id)
        last = None
        while True:
            if (view.status, view.attributes) != last:
                last = (view.status, view.attributes)
                yield view
            if view.terminal:
                return
            await asyncio.sleep(delay)
            view = await self.poll_status(proof_id)

    async def handle_verifier_event(self, event: VerifierEvent) -> str:
        """Match a webhook event to its session and deliver it.

        Returns:
            "verified" when delivered to the session's flow, "pending" for a
            non-final state, "dropped" for unknown or finished sessions.
        """
        session: Optional[VerificationSession] = None
        if event.proof_id:
            session = self.sessions.resolve(event.proof_id)
        if session is None and event.request_id:
            session = self.sessions.resolve_by_request(event.request_id)

        if session is None:
            ref = event.proof_id or event.request_id
            retired = self.sessions.retired_state(event.proof_id) if event.proof_id else None
            if retired is not None:
                log.warning(
                    f"Dropping late verifier event for {retired.value} session",
                    extra={"proof_id": event.proof_id},
                )
            else:
                log.warning(f"Dropping verifier event for unknown request {ref}")
            return "dropped"

        verified = event.verified is True or (event.outcome or "") in VERIFIED_STATUSES
        if not verified:
            log.info(
                f"Verifier event state={event.outcome}, waiting",
                extra={"proof_id": session.proof_id},
            )
            return "pending"

        if not await self._complete(session, event.attributes):
            return "dropped"
        return SessionState.VERIFIED.value

    async def simulate_verification(
        self, proof_id: str, attributes: Optional[Dict[str, Any]] = None
    ) -> str:
        """External trigger that completes a session in mock mode only.

        Raises:
            MockModeRequiredError: Live verifier is active.
            SessionNotFoundError: Unknown, expired or finished session.
        """
        if not self.verifier.is_mock:
            raise MockModeRequiredError()
        if self.sessions.resolve(proof_id) is None:
            raise SessionNotFoundError(proof_id)
        log.info("Simulating verification", extra={"proof_id": proof_id})
        return await self.handle_verifier_event(
            VerifierEvent(proof_id=proof_id, state="verified", attributes=attributes or {})
        )

    async def cancel_verification(self, proof_id: str) -> bool:
        """Cancel a live session. Later events for it are dropped."""
        retired = await self.sessions.cancel(proof_id)
        await self.invitations.invalidate(proof_id)
        return retired is not None and retired.state is SessionState.CANCELLED

    async def _complete(self, session: VerificationSession, attributes: Dict[str, Any]) -> bool:
        """Retire session as verified and notify its client.

        The session is retired before the push so two concurrent events for
        the same proof deliver at most one notification.
        """
        retired = await self.sessions.complete(session.proof_id)
        if retired is None or retired.state is not SessionState.VERIFIED:
            log.warning(
                "Verification arrived for a session that is no longer live",
                extra={"proof_id": session.proof_id},
            )
            return False

        await self.invitations.invalidate(session.proof_id)
        payload = {
            "type": PROOF_VERIFIED_EVENT,
            "proofId": session.proof_id,
            "formId": session.form_id,
            "attributes": attributes,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self.dispatcher.notify(session.client_id, payload)
        return True

    async def housekeeping(self) -> None:
        """Purge stale invitations and held notifications."""
        purged = await self.invitations.purge_expired()
        dropped = self.dispatcher.purge_pending()
        if purged or dropped:
            log.debug(f"Housekeeping purged {purged} invitations, {dropped} held notifications")
