"""Outbound channel for one peer's WebSocket.

Sends are fire-and-forget: the router enqueues and returns immediately, a
per-connection writer task drains the queue. A stalled peer only fills its
own queue; once full, further messages to it are dropped.
"""

import asyncio
from typing import Optional

from starlette.websockets import WebSocketState

from constants import CLOSE_NORMAL
from core.logging import get_logger
from .protocol import SignalingMessage, encode

logger = get_logger(__name__)


class PeerConnection:
    """Bounded outbound queue plus writer task around a WebSocket."""

    def __init__(self, websocket, queue_size: int = 64, label: str = ""):
        self.websocket = websocket
        self.label = label
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer_task: Optional[asyncio.Task] = None
        self._closed = False
        self.sent_count = 0
        self.dropped_count = 0

    def start(self) -> None:
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(self._writer_loop())

    @property
    def is_open(self) -> bool:
        """True while the socket is connected and we have not closed it."""
        if self._closed:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def send(self, message: SignalingMessage) -> bool:
        """Enqueue a message. Returns False when it was dropped."""
        if not self.is_open:
            self.dropped_count += 1
            return False
        try:
            self._queue.put_nowait(encode(message))
        except asyncio.QueueFull:
            self.dropped_count += 1
            logger.warning("Outbound queue full, dropping message",
                           peer_id=self.label, type=message.type)
            return False
        return True

    async def flush(self) -> None:
        """Wait until everything enqueued so far has been written (or dropped)."""
        if self._writer_task is not None and not self._writer_task.done():
            await self._queue.join()

    async def _writer_loop(self):
        try:
            while True:
                text = await self._queue.get()
                try:
                    if not self._closed:
                        await self.websocket.send_text(text)
                        self.sent_count += 1
                except Exception as e:
                    logger.warning("Send failed, closing outbound channel",
                                   peer_id=self.label, error=str(e))
                    self._closed = True
                finally:
                    self._queue.task_done()
        except asyncio.CancelledError:
            pass

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            self.dropped_count += 1

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Stop the writer and close the socket if it is still open.

        Safe to call more than once and after the remote side has gone.
        """
        was_open = self.is_open
        self._closed = True

        if self._writer_task and not self._writer_task.done():
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
        self._drain()

        if was_open:
            try:
                await self.websocket.close(code=code, reason=reason)
            except Exception as e:
                logger.debug("Close on dead socket ignored", peer_id=self.label, error=str(e))
