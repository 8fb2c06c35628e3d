"""Verification session registry.

Maps proof id → in-flight verification session. A session moves from CREATED
to exactly one terminal state (VERIFIED, EXPIRED, CANCELLED) and is then
removed; its proof id is never handed out again.

Design decisions:
- Primary key: proof id (uuid4, allocated by begin())
- Secondary index: verifier request id → proof id, for webhooks that only
  carry the verifier's transaction id
- resolve() is read-only; an expired session resolves to None before the
  sweep removes it
- Retired ids are remembered (bounded) so a late callback can be told apart
  from an unknown id in the logs
"""

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

log = logging.getLogger(__name__)

FormId = Union[int, str]


class SessionState(str, Enum):
    CREATED = "created"
    VERIFIED = "verified"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self is not SessionState.CREATED


@dataclass(frozen=True)
class VerificationSession:
    """Snapshot of one in-flight verification.

    Attributes:
        proof_id: Our identifier handed to the client.
        client_id: Push-channel key of the waiting client.
        form_id: Form that requested the proof.
        created_at: Unix timestamp of begin().
        expires_at: Unix timestamp after which the session is dead.
        state: Current lifecycle state.
        verifier_request_id: Verifier transaction id, once known.
        proof_definition_id: Verifier proof definition id, once known.
        invitation_url: Invitation URL issued for this session, once known.
    """

    proof_id: str
    client_id: Optional[str]
    form_id: FormId
    created_at: float
    expires_at: float
    state: SessionState = SessionState.CREATED
    verifier_request_id: Optional[str] = None
    proof_definition_id: Optional[str] = None
    invitation_url: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


_CORRELATION_FIELDS = frozenset({"verifier_request_id", "proof_definition_id", "invitation_url"})


class SessionRegistry:
    """In-memory session store guarded by a single asyncio.Lock.

    Sessions are immutable snapshots; attach() swaps in an updated copy so a
    caller holding an older snapshot never sees a half-written session.
    """

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        retired_memory: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self._sessions: Dict[str, VerificationSession] = {}
        self._by_request: Dict[str, str] = {}
        self._retired: "OrderedDict[str, SessionState]" = OrderedDict()
        self._ttl = ttl_seconds
        self._retired_memory = retired_memory
        self._clock = clock
        self._lock = asyncio.Lock()

    def _new_id(self) -> str:
        while True:
            proof_id = str(uuid.uuid4())
            if proof_id not in self._sessions and proof_id not in self._retired:
                return proof_id

    async def begin(
        self,
        client_id: Optional[str],
        form_id: FormId,
        **correlation: Optional[str],
    ) -> str:
        """Allocate a proof id and store a CREATED session for it."""
        unknown = set(correlation) - _CORRELATION_FIELDS
        if unknown:
            raise TypeError(f"Unknown session fields: {sorted(unknown)}")

        async with self._lock:
            now = self._clock()
            proof_id = self._new_id()
            session = VerificationSession(
                proof_id=proof_id,
                client_id=client_id,
                form_id=form_id,
                created_at=now,
                expires_at=now + self._ttl,
                **correlation,
            )
            self._sessions[proof_id] = session
            if session.verifier_request_id:
                self._by_request[session.verifier_request_id] = proof_id

        log.info(
            f"Verification session started for form {form_id}",
            extra={"proof_id": proof_id, "client_id": client_id},
        )
        return proof_id

    def resolve(self, proof_id: str) -> Optional[VerificationSession]:
        """Live session for proof_id, or None. Never mutates the registry."""
        session = self._sessions.get(proof_id)
        if session is None or session.is_expired(self._clock()):
            return None
        return session

    def resolve_by_request(self, verifier_request_id: str) -> Optional[VerificationSession]:
        """Live session correlated with a verifier transaction id, or None."""
        proof_id = self._by_request.get(verifier_request_id)
        if proof_id is None:
            return None
        return self.resolve(proof_id)

    async def attach(self, proof_id: str, **correlation: Optional[str]) -> Optional[VerificationSession]:
        """Record verifier ids / invitation URL on a live session.

        Returns:
            The updated session, or None if proof_id is not live.
        """
        unknown = set(correlation) - _CORRELATION_FIELDS
        if unknown:
            raise TypeError(f"Unknown session fields: {sorted(unknown)}")

        async with self._lock:
            session = self._sessions.get(proof_id)
            if session is None or session.is_expired(self._clock()):
                return None

            updated = replace(session, **correlation)
            if session.verifier_request_id and session.verifier_request_id != updated.verifier_request_id:
                self._by_request.pop(session.verifier_request_id, None)
            if updated.verifier_request_id:
                self._by_request[updated.verifier_request_id] = proof_id
            self._sessions[proof_id] = updated
            return updated

    async def complete(self, proof_id: str) -> Optional[VerificationSession]:
        """Retire a session as VERIFIED. No-op for unknown or retired ids."""
        return await self._retire(proof_id, SessionState.VERIFIED)

    async def cancel(self, proof_id: str) -> Optional[VerificationSession]:
        """Retire a session as CANCELLED. No-op for unknown or retired ids."""
        return await self._retire(proof_id, SessionState.CANCELLED)

    async def _retire(self, proof_id: str, state: SessionState) -> Optional[VerificationSession]:
        async with self._lock:
            session = self._sessions.get(proof_id)
            if session is None:
                return None
            if session.is_expired(self._clock()):
                # The sweep owns expiry; a late complete/cancel does not rewrite it.
                state = SessionState.EXPIRED
            self._remove(session, state)

        log.info(
            f"Verification session {state.value}",
            extra={"proof_id": proof_id, "client_id": session.client_id},
        )
        return replace(session, state=state)

    async def sweep(self, now: Optional[float] = None) -> int:
        """Retire every session whose expiry has passed.

        Returns:
            Number of sessions retired as EXPIRED.
        """
        async with self._lock:
            now = self._clock() if now is None else now
            expired = [s for s in self._sessions.values() if s.is_expired(now)]
            for session in expired:
                self._remove(session, SessionState.EXPIRED)

        if expired:
            log.info(f"Session sweep expired {len(expired)} sessions")
        return len(expired)

    def retired_state(self, proof_id: str) -> Optional[SessionState]:
        """Terminal state of a recently retired proof id, if remembered."""
        return self._retired.get(proof_id)

    def _remove(self, session: VerificationSession, state: SessionState) -> None:
        """Drop session from all indexes (caller must hold lock)."""
        self._sessions.pop(session.proof_id, None)
        if session.verifier_request_id:
            self._by_request.pop(session.verifier_request_id, None)
        self._retired[session.proof_id] = state
        while len(self._retired) > self._retired_memory:
            self._retired.popitem(last=False)

    @property
    def active_count(self) -> int:
        """Number of stored sessions (including expired ones not yet swept)."""
        return len(self._sessions)

    async def run_sweeper(
        self,
        interval: float,
        after_sweep: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> None:
        """Periodic sweep loop; runs until cancelled.

        Args:
            interval: Seconds between sweeps.
            after_sweep: Optional housekeeping run after each sweep (e.g.
                purging stale invitations).
        """
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
                if after_sweep is not None:
                    await after_sweep()
            except Exception as e:
                log.error(f"Session sweep failed: {e}")
