"""Process-wide signaling coordinator.

Accepts peer connections, assigns identity, dispatches inbound frames to the
MessageRouter and cleans up when a connection drops. Owns the PeerRegistry
and SessionStore for its lifetime.

Every registry/store mutation runs under one asyncio.Lock. Message volume is
low and nothing under the lock awaits network I/O: sends only enqueue onto a
connection's outbound queue.
"""

import asyncio
from typing import Dict, Optional, Union

from constants import CLOSE_NORMAL, CLOSE_SERVER_SHUTDOWN_REASON
from core.logging import get_logger
from .connection import PeerConnection
from .exceptions import MalformedMessage, PeerUnreachable, SignalingError
from .protocol import Error, PeerAssigned, PeerDisconnected, SignalingMessage, decode
from .registry import PeerRegistry
from .router import MessageRouter
from .sessions import SessionStore

logger = get_logger(__name__)


class RelayService:
    """Coordinates peers, sessions and routing for the whole process."""

    def __init__(self, registry: PeerRegistry, sessions: SessionStore,
                 router: MessageRouter, outbound_queue_size: int = 64):
        self.registry = registry
        self.sessions = sessions
        self.router = router
        self.outbound_queue_size = outbound_queue_size
        self._connections: Dict[str, PeerConnection] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def accept(self, websocket) -> str:
        """Register an already-accepted WebSocket and send it its peer id."""
        async with self._lock:
            peer_id = self.registry.allocate_id()
            connection = PeerConnection(websocket, queue_size=self.outbound_queue_size, label=peer_id)
            connection.start()
            self._connections[peer_id] = connection
            connection.send(PeerAssigned(peer_id=peer_id))

        logger.info("New connection", peer_id=peer_id, total_connections=len(self._connections))
        return peer_id

    async def disconnect(self, peer_id: str) -> None:
        """Tear down a peer: unregister, detach, notify the counterpart once."""
        async with self._lock:
            connection = self._connections.pop(peer_id, None)
            session_id = self.registry.unregister(peer_id)

            counterpart = None
            if session_id is not None:
                counterpart = self.sessions.detach(session_id, peer_id)
                if counterpart is not None:
                    self.router.forward(counterpart, PeerDisconnected(session_id=session_id))

        if connection is not None:
            await connection.close()

        logger.info("Peer disconnected", peer_id=peer_id, session_id=session_id,
                    notified=counterpart.peer_id if counterpart else None,
                    total_connections=len(self._connections))

    async def shutdown(self) -> None:
        """Close every peer connection with a normal close code."""
        async with self._lock:
            connections = list(self._connections.items())
            self._connections.clear()

        logger.info("Closing peer connections", count=len(connections))
        for peer_id, connection in connections:
            try:
                await asyncio.wait_for(connection.flush(), timeout=1.0)
            except asyncio.TimeoutError:
                logger.warning("Outbound queue not drained before shutdown", peer_id=peer_id)
            await connection.close(code=CLOSE_NORMAL, reason=CLOSE_SERVER_SHUTDOWN_REASON)

    # =========================================================================
    # Inbound messages
    # =========================================================================

    async def handle_raw(self, peer_id: str, raw: Union[str, bytes]) -> None:
        """Decode and route one frame. Malformed frames are logged and dropped."""
        try:
            message = decode(raw)
        except MalformedMessage as e:
            logger.warning("Malformed message dropped", peer_id=peer_id, error=e.message)
            return
        await self.handle_message(peer_id, message)

    async def handle_message(self, peer_id: str, message: SignalingMessage) -> None:
        logger.debug("Received", peer_id=peer_id, type=message.type)
        async with self._lock:
            connection = self._connections.get(peer_id)
            if connection is None:
                logger.debug("Message from closed connection ignored", peer_id=peer_id)
                return
            try:
                self.router.dispatch(peer_id, connection, message)
            except PeerUnreachable as e:
                logger.debug("Peer unreachable", peer_id=peer_id, target=e.peer_id)
            except SignalingError as e:
                logger.warning("Rejected message", peer_id=peer_id, type=message.type,
                               code=e.code, error=e.message)
                connection.send(Error(message=e.message, code=e.code))

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_connection(self, peer_id: str) -> Optional[PeerConnection]:
        return self._connections.get(peer_id)

    @property
    def connection_count(self) -> int:
        return len(self._connections)
