"""Client push channel.

Protocol:
- Client connects to /ws?clientId=<id> (an id is assigned when omitted)
- Server sends: {"type": "connected", "clientId": ...}
- Server sends: {"type": "proof_verified", "proofId", "formId", "attributes", "timestamp"}
- Server sends: broadcast events ({"type": "system", ...})
- Client sends: "ping" → {"type": "pong"}; anything else is ignored
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

log = logging.getLogger(__name__)
router = APIRouter(tags=["ws"])


@router.websocket("/ws")
async def client_channel(
    websocket: WebSocket,
    client_id: Optional[str] = Query(default=None, alias="clientId"),
):
    dispatcher = websocket.app.state.services.dispatcher
    client_id = client_id or str(uuid.uuid4())

    await websocket.accept()
    await websocket.send_json({"type": "connected", "clientId": client_id})
    await dispatcher.register(client_id, websocket)
    log.info(
        f"WebSocket connected (total={dispatcher.connected_count})",
        extra={"client_id": client_id, "route": "/ws"},
    )

    try:
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"type": "pong"})
    except (WebSocketDisconnect, RuntimeError):
        # RuntimeError: the dispatcher already closed this socket (replaced).
        pass
    finally:
        await dispatcher.unregister(client_id, websocket)
