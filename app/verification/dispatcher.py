"""Push-notification dispatcher keyed by client id.

At most one live connection per client id: registering a new connection
replaces the old one, which is then closed. Delivery is at-most-once unless
a pending window is configured, in which case notifications for a
disconnected client are held briefly and flushed on its next register().
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

log = logging.getLogger(__name__)


class ClientConnection(Protocol):
    """Anything that can push JSON to a client (e.g. a FastAPI WebSocket)."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass
class _Pending:
    payload: Dict[str, Any]
    expires_at: float


class NotificationDispatcher:
    """Registry of live client connections.

    The connection table is guarded by an asyncio.Lock; sends and closes run
    outside it.
    """

    def __init__(
        self,
        pending_ttl_seconds: float = 0.0,
        pending_max: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self._connections: Dict[str, ClientConnection] = {}
        self._pending: Dict[str, Deque[_Pending]] = {}
        self._pending_ttl = pending_ttl_seconds
        self._pending_max = pending_max
        self._clock = clock
        self._lock = asyncio.Lock()

    async def register(self, client_id: str, connection: ClientConnection) -> None:
        """Bind connection to client_id, closing any connection it replaces."""
        async with self._lock:
            previous = self._connections.get(client_id)
            self._connections[client_id] = connection
            queued = self._take_pending(client_id)

        if previous is not None and previous is not connection:
            log.info("Replacing existing connection", extra={"client_id": client_id})
            try:
                await previous.close()
            except Exception as e:
                log.debug(f"Closing replaced connection failed: {e}", extra={"client_id": client_id})

        for index, item in enumerate(queued):
            try:
                await connection.send_json(item.payload)
            except Exception as e:
                remaining = queued[index:]
                async with self._lock:
                    self._requeue(client_id, remaining)
                log.warning(
                    f"Flush failed, holding {len(remaining)} notification(s) again: {e}",
                    extra={"client_id": client_id},
                )
                await self.unregister(client_id, connection)
                return
        if queued:
            log.info(f"Flushed {len(queued)} held notification(s)", extra={"client_id": client_id})

    async def unregister(self, client_id: str, connection: Optional[ClientConnection] = None) -> bool:
        """Remove client_id's connection.

        When connection is given, only removes the entry if it is still that
        connection, so a stale handler cannot evict its replacement.
        """
        async with self._lock:
            current = self._connections.get(client_id)
            if current is None:
                return False
            if connection is not None and current is not connection:
                return False
            del self._connections[client_id]

        log.info("Client disconnected", extra={"client_id": client_id})
        return True

    async def notify(self, client_id: Optional[str], payload: Dict[str, Any]) -> bool:
        """Deliver payload to client_id's live connection.

        Returns:
            True if sent. False when there is no live connection (the payload
            is dropped, or held when a pending window is configured) or the
            send failed (the connection is dropped).
        """
        if not client_id:
            log.warning(f"Notification {payload.get('type')} has no client id, dropped")
            return False

        held = False
        async with self._lock:
            connection = self._connections.get(client_id)
            if connection is None:
                held = self._hold(client_id, payload)

        if connection is None:
            if held:
                log.info(f"Client not connected, holding {payload.get('type')}", extra={"client_id": client_id})
            else:
                log.warning(f"Client not connected, dropping {payload.get('type')}", extra={"client_id": client_id})
            return False

        try:
            await connection.send_json(payload)
        except Exception as e:
            log.warning(f"Send failed, dropping connection: {e}", extra={"client_id": client_id})
            await self.unregister(client_id, connection)
            return False

        log.info(f"Sent {payload.get('type')}", extra={"client_id": client_id})
        return True

    async def broadcast(self, payload: Dict[str, Any]) -> int:
        """Send payload to every live connection. Returns the delivery count."""
        async with self._lock:
            client_ids = list(self._connections)

        delivered = 0
        for client_id in client_ids:
            if await self.notify(client_id, payload):
                delivered += 1
        log.info(f"Broadcast {payload.get('type')} to {delivered}/{len(client_ids)} clients")
        return delivered

    def is_connected(self, client_id: str) -> bool:
        return client_id in self._connections

    @property
    def connected_count(self) -> int:
        return len(self._connections)

    def _hold(self, client_id: str, payload: Dict[str, Any]) -> bool:
        """Queue payload for a disconnected client (caller must hold lock)."""
        if self._pending_ttl <= 0:
            return False
        queue = self._pending.setdefault(client_id, deque(maxlen=self._pending_max))
        queue.append(_Pending(payload, self._clock() + self._pending_ttl))
        return True

    def _take_pending(self, client_id: str) -> List[_Pending]:
        """Pop unexpired held payloads for client_id (caller must hold lock)."""
        queue = self._pending.pop(client_id, None)
        if not queue:
            return []
        now = self._clock()
        return [p for p in queue if p.expires_at > now]

    def _requeue(self, client_id: str, items: List[_Pending]) -> None:
        """Put unsent items back at the head of the queue (caller must hold lock)."""
        queue = self._pending.setdefault(client_id, deque(maxlen=self._pending_max))
        for item in reversed(items):
            queue.appendleft(item)

    def purge_pending(self) -> int:
        """Drop expired held notifications. Returns how many were dropped."""
        now = self._clock()
        dropped = 0
        for client_id in list(self._pending):
            queue = self._pending[client_id]
            live = deque((p for p in queue if p.expires_at > now), maxlen=self._pending_max)
            dropped += len(queue) - len(live)
            if live:
                self._pending[client_id] = live
            else:
                del self._pending[client_id]
        return dropped
