"""Proof-id keyed cache of rendered invitations (QR SVG + URL).

Design decisions:
- Entries expire after a fixed TTL (300s) independently of the session; a
  stale entry only forces regeneration
- Single-flight: concurrent misses for one proof id share one generator call
- The lock is never held while the generator runs
- A failed generation is not cached; every waiter sees the error
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvitationArtifact:
    """Rendered invitation for one proof id.

    Attributes:
        proof_id: Session the invitation belongs to.
        svg: QR code image (SVG markup).
        invitation_url: URL encoded in the QR code.
        expires_at: Unix timestamp when the cached artifact goes stale.
    """

    proof_id: str
    svg: str
    invitation_url: str
    expires_at: float


Generator = Callable[[str], Awaitable[InvitationArtifact]]


@dataclass
class InvitationCacheMetrics:
    hits: int = 0
    misses: int = 0
    shared: int = 0
    failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "shared": self.shared,
            "failures": self.failures,
            "hit_rate": round(self.hits / total, 4) if total else 0.0,
        }


class InvitationCache:
    """In-memory invitation cache guarded by an asyncio.Lock."""

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.time):
        self._entries: Dict[str, InvitationArtifact] = {}
        self._inflight: Dict[str, "asyncio.Future[InvitationArtifact]"] = {}
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._metrics = InvitationCacheMetrics()

    @property
    def ttl(self) -> float:
        return self._ttl

    async def get_or_create(self, proof_id: str, generator: Generator) -> InvitationArtifact:
        """Return the cached artifact for proof_id, generating it on a miss.

        The stored artifact's expires_at is set from the cache TTL regardless
        of what the generator returned.
        """
        async with self._lock:
            cached = self._entries.get(proof_id)
            if cached is not None and cached.expires_at > self._clock():
                self._metrics.hits += 1
                return cached

            future = self._inflight.get(proof_id)
            if future is not None:
                self._metrics.shared += 1
                owner = False
            else:
                self._metrics.misses += 1
                future = asyncio.get_running_loop().create_future()
                self._inflight[proof_id] = future
                owner = True

        if not owner:
            return await asyncio.shield(future)

        try:
            artifact = await generator(proof_id)
            artifact = InvitationArtifact(
                proof_id=proof_id,
                svg=artifact.svg,
                invitation_url=artifact.invitation_url,
                expires_at=self._clock() + self._ttl,
            )
        except asyncio.CancelledError:
            self._inflight.pop(proof_id, None)
            future.cancel()
            raise
        except Exception as e:
            async with self._lock:
                self._inflight.pop(proof_id, None)
                self._metrics.failures += 1
            future.set_exception(e)
            # Mark retrieved so a future nobody else awaited does not log a warning.
            future.exception()
            log.warning(f"Invitation generation failed: {e}", extra={"proof_id": proof_id})
            raise

        async with self._lock:
            self._entries[proof_id] = artifact
            self._inflight.pop(proof_id, None)
        future.set_result(artifact)
        log.debug("Invitation cached", extra={"proof_id": proof_id})
        return artifact

    async def get(self, proof_id: str) -> Optional[InvitationArtifact]:
        """Cached, unexpired artifact or None. Never generates."""
        async with self._lock:
            cached = self._entries.get(proof_id)
            if cached is None or cached.expires_at <= self._clock():
                return None
            return cached

    async def put(self, artifact: InvitationArtifact) -> None:
        async with self._lock:
            self._entries[artifact.proof_id] = artifact

    async def invalidate(self, proof_id: str) -> bool:
        async with self._lock:
            return self._entries.pop(proof_id, None) is not None

    async def purge_expired(self, now: Optional[float] = None) -> int:
        """Remove expired entries. Returns the number removed."""
        async with self._lock:
            now = self._clock() if now is None else now
            stale = [k for k, v in self._entries.items() if v.expires_at <= now]
            for key in stale:
                del self._entries[key]
        return len(stale)

    @property
    def size(self) -> int:
        return len(self._entries)

    def metrics(self) -> InvitationCacheMetrics:
        return self._metrics
