"""Tests for VerificationService (proof-request lifecycle)."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.verification.dispatcher import NotificationDispatcher
from app.verification.exceptions import (
    FormNotFoundError,
    MockModeRequiredError,
    SessionNotFoundError,
)
from app.verification.invitation_cache import InvitationCache
from app.verification.service import (
    PROOF_VERIFIED_EVENT,
    STATUS_NO_VC,
    STATUS_OK,
    STATUS_PENDING,
    VerificationService,
)
from app.verification.sessions import SessionRegistry, SessionState
from app.verifier import MockVerifierClient, VerifierUnavailableError
from app.verifier.client import ProofStatus, VerifierEvent

from conftest import FakeClock, FakeConnection, StubLiveVerifier, make_form, verified_field


def build(form_store, credential_store, verifier=None, clock=None, combined_init=True):
    clock = clock or FakeClock()
    sessions = SessionRegistry(ttl_seconds=600, clock=clock)
    dispatcher = NotificationDispatcher()
    service = VerificationService(
        forms=form_store,
        credentials=credential_store,
        verifier=verifier or MockVerifierClient(),
        sessions=sessions,
        dispatcher=dispatcher,
        invitations=InvitationCache(ttl_seconds=300, clock=clock),
        combined_init=combined_init,
    )
    return service


class TestInitiate:
    """initiate_verification()."""

    @pytest.mark.asyncio
    async def test_unknown_form(self, form_store, credential_store):
        service = build(form_store, credential_store)
        with pytest.raises(FormNotFoundError):
            await service.initiate_verification(404)

    @pytest.mark.asyncio
    async def test_form_without_vc_fields(self, form_store, credential_store):
        service = build(form_store, credential_store)

        result = await service.initiate_verification(2, "client-1")

        assert result.status == STATUS_NO_VC
        assert result.proof_id is None
        assert service.sessions.active_count == 0

    @pytest.mark.asyncio
    async def test_only_unknown_types_is_no_vc(self, form_store, credential_store):
        await form_store.put(make_form(3, "Legacy", [verified_field("x", "Deleted Template", "x")]))
        service = build(form_store, credential_store)

        result = await service.initiate_verification(3)

        assert result.status == STATUS_NO_VC
        assert len(result.dropped) == 1

    @pytest.mark.asyncio
    async def test_mock_mode_combined(self, form_store, credential_store):
        service = build(form_store, credential_store)

        result = await service.initiate_verification(1, "client-1")

        assert result.status == STATUS_OK
        assert result.mock is True
        assert result.invitation is not None
        assert "<svg" in result.invitation.svg
        session = service.sessions.resolve(result.proof_id)
        assert session.client_id == "client-1"
        assert session.verifier_request_id.startswith("mock-")
        assert session.invitation_url == result.invitation.invitation_url

    @pytest.mark.asyncio
    async def test_split_init_defers_invitation(self, form_store, credential_store):
        verifier = StubLiveVerifier()
        service = build(form_store, credential_store, verifier=verifier, combined_init=False)

        result = await service.initiate_verification(1, "client-1")

        assert result.invitation is None
        verifier.prepare_invitation.assert_not_awaited()
        artifact = await service.get_invitation(result.proof_id)
        assert artifact.invitation_url == "https://wallet.example/tx-1"
        verifier.prepare_invitation.assert_awaited_once_with("def-1")

    @pytest.mark.asyncio
    async def test_definition_reused_for_same_form(self, form_store, credential_store):
        verifier = StubLiveVerifier()
        service = build(form_store, credential_store, verifier=verifier)

        await service.initiate_verification(1, "a")
        await service.initiate_verification(1, "b")

        assert verifier.define_proof.await_count == 1
        assert verifier.prepare_invitation.await_count == 2

    @pytest.mark.asyncio
    async def test_verifier_failure_leaves_no_session(self, form_store, credential_store):
        verifier = StubLiveVerifier()
        verifier.prepare_invitation.side_effect = VerifierUnavailableError("down", "prepare_invitation")
        service = build(form_store, credential_store, verifier=verifier)

        with pytest.raises(VerifierUnavailableError):
            await service.initiate_verification(1, "client-1")

        assert service.sessions.active_count == 0


class TestInvitation:
    """get_invitation()."""

    @pytest.mark.asyncio
    async def test_unknown_proof(self, form_store, credential_store):
        service = build(form_store, credential_store)
        with pytest.raises(SessionNotFoundError):
            await service.get_invitation("nope")

    @pytest.mark.asyncio
    async def test_stale_qr_rerendered_from_same_url(self, form_store, credential_store):
        clock = FakeClock()
        verifier = StubLiveVerifier()
        service = build(form_store, credential_store, verifier=verifier, clock=clock)
        result = await service.initiate_verification(1, "c")
        clock.advance(301)

        artifact = await service.get_invitation(result.proof_id)

        assert artifact.invitation_url == result.invitation.invitation_url
        assert artifact.expires_at > result.invitation.expires_at
        assert verifier.prepare_invitation.await_count == 1


class TestCompletion:
    """Webhook, poll and simulate paths."""

    @pytest.mark.asyncio
    async def test_webhook_verified_notifies_client(self, form_store, credential_store):
        service = build(form_store, credential_store, verifier=StubLiveVerifier())
        conn = FakeConnection()
        await service.dispatcher.register("client-1", conn)
        result = await service.initiate_verification(1, "client-1")

        outcome = await service.handle_verifier_event(VerifierEvent(
            proof_id=result.proof_id, state="verified", attributes={"birthdate_dateint": "19900101"},
        ))

        assert outcome == "verified"
        assert len(conn.sent) == 1
        payload = conn.sent[0]
        assert payload["type"] == PROOF_VERIFIED_EVENT
        assert payload["proofId"] == result.proof_id
        assert payload["formId"] == 1
        assert payload["attributes"] == {"birthdate_dateint": "19900101"}
        assert service.sessions.retired_state(result.proof_id) is SessionState.VERIFIED

    @pytest.mark.asyncio
    async def test_webhook_matched_by_request_id(self, form_store, credential_store):
        service = build(form_store, credential_store, verifier=StubLiveVerifier())
        result = await service.initiate_verification(1, "client-1")

        outcome = await service.handle_verifier_event(VerifierEvent(tx_id="tx-1", state="presentation_verified"))

        assert outcome == "verified"
        assert service.sessions.resolve(result.proof_id) is None

    @pytest.mark.asyncio
    async def test_non_final_state_pending(self, form_store, credential_store):
        service = build(form_store, credential_store, verifier=StubLiveVerifier())
        result = await service.initiate_verification(1, "client-1")

        outcome = await service.handle_verifier_event(
            VerifierEvent(proof_id=result.proof_id, state="request_sent")
        )

        assert outcome == "pending"
        assert service.sessions.resolve(result.proof_id) is not None

    @pytest.mark.asyncio
    async def test_duplicate_events_notify_once(self, form_store, credential_store):
        service = build(form_store, credential_store, verifier=StubLiveVerifier())
        conn = FakeConnection()
        await service.dispatcher.register("client-1", conn)
        result = await service.initiate_verification(1, "client-1")
        event = VerifierEvent(proof_id=result.proof_id, state="verified")

        outcomes = await asyncio.gather(*(service.handle_verifier_event(event) for _ in range(3)))

        assert sorted(outcomes) == ["dropped", "dropped", "verified"]
        assert len(conn.sent) == 1

    @pytest.mark.asyncio
    async def test_event_after_expiry_dropped(self, form_store, credential_store):
        clock = FakeClock()
        service = build(form_store, credential_store, verifier=StubLiveVerifier(), clock=clock)
        conn = FakeConnection()
        await service.dispatcher.register("client-1", conn)
        result = await service.initiate_verification(1, "client-1")
        clock.advance(601)
        await service.sessions.sweep()

        outcome = await service.handle_verifier_event(VerifierEvent(proof_id=result.proof_id, state="verified"))

        assert outcome == "dropped"
        assert conn.sent == []

    @pytest.mark.asyncio
    async def test_event_after_cancel_dropped(self, form_store, credential_store):
        service = build(form_store, credential_store, verifier=StubLiveVerifier())
        result = await service.initiate_verification(1, "client-1")

        assert await service.cancel_verification(result.proof_id) is True
        outcome = await service.handle_verifier_event(VerifierEvent(proof_id=result.proof_id, verified=True))

        assert outcome == "dropped"
        assert await service.cancel_verification(result.proof_id) is False

    @pytest.mark.asyncio
    async def test_unknown_event_dropped(self, form_store, credential_store):
        service = build(form_store, credential_store)
        assert await service.handle_verifier_event(VerifierEvent(tx_id="ghost", state="verified")) == "dropped"

    @pytest.mark.asyncio
    async def test_poll_verified_completes(self, form_store, credential_store):
        verifier = StubLiveVerifier()
        verifier.get_status.return_value = ProofStatus(status="verified", attributes={"a": 1})
        service = build(form_store, credential_store, verifier=verifier)
        conn = FakeConnection()
        await service.dispatcher.register("client-1", conn)
        result = await service.initiate_verification(1, "client-1")

        view = await service.poll_status(result.proof_id)

        assert view.status == "verified"
        assert view.attributes == {"a": 1}
        verifier.get_status.assert_awaited_once_with("tx-1")
        assert len(conn.sent) == 1
        # Recently finished proof reports its terminal state.
        assert (await service.poll_status(result.proof_id)).status == "verified"

    @pytest.mark.asyncio
    async def test_poll_pending_live(self, form_store, credential_store):
        service = build(form_store, credential_store, verifier=StubLiveVerifier())
        result = await service.initiate_verification(1, "client-1")
        assert (await service.poll_status(result.proof_id)).status == "request_sent"

    @pytest.mark.asyncio
    async def test_poll_unknown(self, form_store, credential_store):
        service = build(form_store, credential_store)
        with pytest.raises(SessionNotFoundError):
            await service.poll_status("nope")


class TestStatusStream:
    """watch_status() yields each change and ends on a terminal status."""

    @pytest.mark.asyncio
    async def test_changes_only_until_verified(self, form_store, credential_store):
        verifier = StubLiveVerifier()
        verifier.get_status.side_effect = [
            ProofStatus(status="request_sent"),
            ProofStatus(status="request_sent"),
            ProofStatus(status="presentation_received"),
            ProofStatus(status="presentation_verified", attributes={"a": 1}),
        ]
        service = build(form_store, credential_store, verifier=verifier)
        result = await service.initiate_verification(1, "client-1")

        views = [view async for view in service.watch_status(result.proof_id, interval=0)]

        assert [view.status for view in views] == ["request_sent", "presentation_received", "verified"]
        assert views[-1].terminal
        assert views[-1].attributes == {"a": 1}
        assert verifier.get_status.await_count == 4

    @pytest.mark.asyncio
    async def test_simulated_completion_ends_stream(self, form_store, credential_store):
        service = build(form_store, credential_store)
        result = await service.initiate_verification(1, "client-1")
        stream = service.watch_status(result.proof_id, interval=0)

        first = await stream.__anext__()
        await service.simulate_verification(result.proof_id, {"a": 1})
        last = await stream.__anext__()

        assert first.status == STATUS_PENDING
        assert not first.terminal
        assert last.status == SessionState.VERIFIED.value
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_unknown_proof(self, form_store, credential_store):
        service = build(form_store, credential_store)
        with pytest.raises(SessionNotFoundError):
            await service.watch_status("nope", interval=0).__anext__()

    @pytest.mark.asyncio
    async def test_verifier_failure_propagates(self, form_store, credential_store):
        verifier = StubLiveVerifier()
        verifier.get_status.side_effect = [
            ProofStatus(status="request_sent"),
            VerifierUnavailableError("down"),
        ]
        service = build(form_store, credential_store, verifier=verifier)
        result = await service.initiate_verification(1, "client-1")
        stream = service.watch_status(result.proof_id, interval=0)

        assert (await stream.__anext__()).status == "request_sent"
        with pytest.raises(VerifierUnavailableError):
            await stream.__anext__()


class TestMockMode:
    """Mock verification completes only through simulate."""

    @pytest.mark.asyncio
    async def test_poll_stays_pending(self, form_store, credential_store):
        service = build(form_store, credential_store)
        result = await service.initiate_verification(1, "client-1")
        for _ in range(3):
            assert (await service.poll_status(result.proof_id)).status == STATUS_PENDING

    @pytest.mark.asyncio
    async def test_simulate_completes(self, form_store, credential_store):
        service = build(form_store, credential_store)
        conn = FakeConnection()
        await service.dispatcher.register("client-1", conn)
        result = await service.initiate_verification(1, "client-1")

        outcome = await service.simulate_verification(result.proof_id, {"birthdate_dateint": "20000101"})

        assert outcome == "verified"
        assert conn.sent[0]["attributes"] == {"birthdate_dateint": "20000101"}

    @pytest.mark.asyncio
    async def test_simulate_requires_mock(self, form_store, credential_store):
        service = build(form_store, credential_store, verifier=StubLiveVerifier())
        result = await service.initiate_verification(1, "client-1")
        with pytest.raises(MockModeRequiredError):
            await service.simulate_verification(result.proof_id)

    @pytest.mark.asyncio
    async def test_simulate_unknown(self, form_store, credential_store):
        service = build(form_store, credential_store)
        with pytest.raises(SessionNotFoundError):
            await service.simulate_verification("nope")


class TestHousekeeping:
    @pytest.mark.asyncio
    async def test_purges_stale_invitations(self, form_store, credential_store):
        clock = FakeClock()
        service = build(form_store, credential_store, clock=clock)
        await service.initiate_verification(1, "client-1")
        clock.advance(301)

        await service.housekeeping()

        assert service.invitations.size == 0
