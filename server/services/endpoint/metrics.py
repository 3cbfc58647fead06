"""Periodic transport-health sampling for a connected direct session.

Informational only: nothing in the handshake depends on these numbers.
"""

import asyncio
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from core.logging import get_logger
from .interfaces import DirectSession

logger = get_logger(__name__)


@dataclass
class TransportMetrics:
    """Latest outbound video figures."""
    frames_sent: int = 0
    bytes_sent: int = 0
    bitrate_mbps: float = 0.0
    samples: int = 0
    sampled_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MetricsCollector:
    """Polls DirectSession.get_stats() every ``interval`` seconds."""

    def __init__(self, direct_session: DirectSession, interval: float = 2.0):
        self.direct_session = direct_session
        self.interval = interval
        self.metrics = TransportMetrics()
        self._last_bytes = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _loop(self):
        try:
            while True:
                await asyncio.sleep(self.interval)
                await self.collect()
        except asyncio.CancelledError:
            pass

    async def collect(self) -> TransportMetrics:
        """Take one sample. Failures are logged and leave the last sample in place."""
        try:
            reports = await self.direct_session.get_stats()
        except Exception as e:
            logger.warning("Failed to collect stats", error=str(e))
            return self.metrics

        for report in reports or []:
            if report.get("type") != "outbound-rtp" or report.get("kind") != "video":
                continue
            if report.get("framesSent") is not None:
                self.metrics.frames_sent = report["framesSent"]
            if report.get("bytesSent") is not None:
                bytes_sent = report["bytesSent"]
                diff = bytes_sent - self._last_bytes
                self._last_bytes = bytes_sent
                self.metrics.bytes_sent = bytes_sent
                self.metrics.bitrate_mbps = round((diff * 8) / (self.interval * 1_000_000), 2)

        self.metrics.samples += 1
        self.metrics.sampled_at = time.time()
        logger.debug("Transport stats", **self.metrics.to_dict())
        return self.metrics
