"""Shared fixtures for the VC Forms verifier tests."""

from typing import Any, List
from unittest.mock import AsyncMock

import pytest

from app.stores import CredentialRecord, FormRecord, InMemoryCredentialStore, InMemoryFormStore
from app.verifier.client import PreparedInvitation, ProofStatus, VerifierClient


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeConnection:
    """Stand-in for a WebSocket: records sent payloads and close calls."""

    def __init__(self, fail: bool = False):
        self.sent: List[Any] = []
        self.closed = False
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed = True


class StubLiveVerifier(VerifierClient):
    """Live-mode verifier with scripted responses."""

    mode = "live"

    def __init__(self, request_id: str = "tx-1"):
        self.define_proof = AsyncMock(return_value="def-1")
        self.prepare_invitation = AsyncMock(
            return_value=PreparedInvitation(
                request_id=request_id, invitation_url=f"https://wallet.example/{request_id}"
            )
        )
        self.get_status = AsyncMock(return_value=ProofStatus(status="request_sent"))

    async def define_proof(self, definition):  # replaced per instance
        ...

    async def prepare_invitation(self, definition_id):
        ...

    async def get_status(self, request_id):
        ...

def verified_field(key: str, credential_type: str, attribute: str, mode: str = "required") -> dict:
    """Form component backed by a credential attribute."""
    return {
        "key": key,
        "type": "textfield",
        "properties": {
            "dataSource": "verified",
            "credentialMode": mode,
            "vcMapping": {"credentialType": credential_type, "attributeName": attribute},
        },
    }


def make_form(form_id, name: str, components: list) -> FormRecord:
    return FormRecord(id=form_id, name=name, formSchema={"components": components})


@pytest.fixture(autouse=True)
def no_logo_discovery(monkeypatch):
    """Resolvers built in tests never look up logos over the network."""
    monkeypatch.setattr("app.oca.resolver.discover_logo", AsyncMock(return_value=None))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def age_proof_form():
    """Form "Age Proof v2" needing one required birthdate attribute."""
    return make_form(
        1,
        "Age Proof v2",
        [verified_field("birthdate", "Unverified Person", "birthdate_dateint")],
    )


@pytest.fixture
def plain_form():
    """Form with only free-text fields."""
    return make_form(2, "Contact", [{"key": "email", "type": "email"}])


@pytest.fixture
def form_store(age_proof_form, plain_form):
    return InMemoryFormStore([age_proof_form, plain_form])


@pytest.fixture
def credential_store():
    return InMemoryCredentialStore([
        CredentialRecord(
            id=10,
            label="BC Lawyer Credential v1",
            issuer="Law Society of BC",
            credDefId="QzLYGuAebsy3MXQ6b1sFiT:3:CL:789:legal_professional",
            brandingMetadata={"ocaBundleUrl": "OCABundles/schema/bcgov-digital-trust/LSBC/Lawyer/Prod"},
        ),
        CredentialRecord(id=11, label="Unverified Person"),
    ])
