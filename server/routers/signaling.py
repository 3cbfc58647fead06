"""WebSocket router for the signaling relay.

One persistent connection per peer. The relay sends ``peer-id`` right after
accepting, then routes register/discover/offer/answer/ice-candidate frames
until the socket closes.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core.container import container
from core.health import get_relay_stats
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["signaling"])


@router.websocket("/")
@router.websocket("/ws")
async def signaling_endpoint(websocket: WebSocket):
    """Relay signaling messages for one peer until it disconnects."""
    relay = container.relay_service()

    await websocket.accept()
    peer_id = await relay.accept(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await relay.handle_raw(peer_id, raw)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error", peer_id=peer_id, error=str(e), exc_info=True)
    finally:
        await relay.disconnect(peer_id)


@router.get("/stats")
async def relay_stats():
    """Current peer and session counts."""
    return get_relay_stats(container.relay_service())
