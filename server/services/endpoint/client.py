"""
Relay signaling WebSocket client

Endpoint-side connection to the signaling relay.

Connection flow:
1. Connect to ws://<relay-host>:<port>
2. Receive peer-id with the identifier the relay assigned
3. Send register with our role (and session id for a receiver)
4. Exchange offer/answer/ice-candidate until the direct session forms
"""
import asyncio
from typing import Awaitable, Callable, Optional

import aiohttp
import structlog

from services.signaling.exceptions import MalformedMessage
from services.signaling.protocol import PeerAssigned, SignalingMessage, decode_outbound, encode
from .exceptions import RelayConnectionError

logger = structlog.get_logger()


class RelaySignalingClient:
    """WebSocket client that carries one endpoint's signaling messages."""

    def __init__(self, url: str, connect_timeout: float = 5.0):
        """
        Initialize relay client.

        Args:
            url: Relay WebSocket URL (e.g., 'ws://192.168.1.10:8080')
            connect_timeout: Seconds allowed for connecting and receiving peer-id
        """
        self.url = url
        self.connect_timeout = connect_timeout

        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.session: Optional[aiohttp.ClientSession] = None
        self.connected = False
        self.peer_id: Optional[str] = None

        self._receive_task: Optional[asyncio.Task] = None
        self._running = False
        self._closing = False

        # Event callbacks
        self.on_message: Optional[Callable[[SignalingMessage], Awaitable[None]]] = None
        self.on_close: Optional[Callable[[], Awaitable[None]]] = None

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> str:
        """Connect to the relay and wait for our peer id.

        Returns:
            Peer id assigned by the relay

        Raises:
            RelayConnectionError: connection refused, handshake failed or timed out
        """
        try:
            logger.info("[Signaling] Connecting...", url=self.url)
            timeout = aiohttp.ClientTimeout(total=None, connect=self.connect_timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)

            self.ws = await asyncio.wait_for(
                self.session.ws_connect(self.url, autoping=True),
                timeout=self.connect_timeout
            )
            self.connected = True

            msg = await asyncio.wait_for(self.ws.receive(), timeout=self.connect_timeout)
            if msg.type != aiohttp.WSMsgType.TEXT:
                raise RelayConnectionError(f"Unexpected frame during handshake: {msg.type.name}")

            message = decode_outbound(msg.data)
            if not isinstance(message, PeerAssigned):
                raise RelayConnectionError(f"Expected peer-id, got {message.type}")

            self.peer_id = message.peer_id
            self._running = True
            self._receive_task = asyncio.create_task(self._receive_loop())

            logger.info("[Signaling] Connected", url=self.url, peer_id=self.peer_id)
            return self.peer_id

        except RelayConnectionError:
            await self._cleanup()
            raise
        except asyncio.TimeoutError as e:
            logger.error("[Signaling] Connection timeout", url=self.url)
            await self._cleanup()
            raise RelayConnectionError("Signaling connection timeout") from e
        except aiohttp.ClientConnectorError as e:
            logger.error("[Signaling] Connection failed", error=str(e))
            await self._cleanup()
            raise RelayConnectionError(f"Cannot connect to relay: {e}") from e
        except aiohttp.WSServerHandshakeError as e:
            logger.error("[Signaling] WebSocket handshake failed", error=str(e))
            await self._cleanup()
            raise RelayConnectionError(f"WebSocket handshake failed: {e}") from e
        except (aiohttp.ClientError, MalformedMessage) as e:
            logger.error("[Signaling] Connection error", error=str(e))
            await self._cleanup()
            raise RelayConnectionError(f"Signaling connection failed: {e}") from e

    async def close(self):
        """Close the connection. Safe when never connected or already closed."""
        self._closing = True
        self._running = False

        task = self._receive_task
        self._receive_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._cleanup()
        logger.info("[Signaling] Disconnected", peer_id=self.peer_id)

    async def _cleanup(self):
        if self.ws and not self.ws.closed:
            await self.ws.close()
        if self.session and not self.session.closed:
            await self.session.close()
        self.connected = False

    def is_connected(self) -> bool:
        return self.connected and self._running and self.ws is not None and not self.ws.closed

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send(self, message: SignalingMessage) -> bool:
        """Send a message if the socket is open. Returns False otherwise."""
        if not self.is_connected():
            logger.debug("[Signaling] Not connected, message not sent", type=message.type)
            return False
        try:
            await self.ws.send_str(encode(message))
            return True
        except (aiohttp.ClientError, ConnectionResetError) as e:
            logger.warning("[Signaling] Send failed", type=message.type, error=str(e))
            return False

    async def _receive_loop(self):
        """Background task to receive messages."""
        unexpected_disconnect = False
        try:
            while self._running and self.ws and not self.ws.closed:
                msg = await self.ws.receive()

                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        message = decode_outbound(msg.data)
                    except MalformedMessage as e:
                        logger.warning("[Signaling] Malformed message dropped", error=e.message)
                        continue
                    if self.on_message:
                        try:
                            await self.on_message(message)
                        except Exception as e:
                            logger.error("[Signaling] Handler error", type=message.type,
                                         error=str(e), exc_info=True)

                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING,
                                  aiohttp.WSMsgType.CLOSED):
                    logger.warning("[Signaling] Connection closed by relay")
                    unexpected_disconnect = True
                    break

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error("[Signaling] WebSocket error", error=str(self.ws.exception()))
                    unexpected_disconnect = True
                    break

        except asyncio.CancelledError:
            pass
        finally:
            self._running = False
            self.connected = False

            if unexpected_disconnect and not self._closing and self.on_close:
                try:
                    await self.on_close()
                except Exception as e:
                    logger.warning("[Signaling] Close handler failed", error=str(e))
