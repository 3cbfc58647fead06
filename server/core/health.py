"""Health check utilities for the relay process.

Provides uptime tracking and the payloads for the /health and /stats endpoints.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from services.signaling.relay import RelayService

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


def get_health_status() -> Dict[str, Any]:
    """Fixed liveness payload. Never depends on relay state."""
    return {
        "status": "OK",
        "service": "signaling",
        "uptime_seconds": round(get_uptime(), 1),
    }


def get_relay_stats(relay: "RelayService") -> Dict[str, Any]:
    """Peer and session counts for the /stats endpoint."""
    return {
        "peers": relay.registry.count(),
        "registered_peers": relay.registry.count(registered_only=True),
        "sessions": relay.sessions.count(),
        "sessions_by_state": relay.sessions.count_by_state(),
        "uptime_seconds": round(get_uptime(), 1),
    }
