"""
Signaling relay for remote screen sharing with touch control.

Pairs a screen-sharing sender with a touch-control receiver and relays the
offer/answer/candidate handshake between them over WebSocket.
"""

# Performance: Install uvloop if available (Linux/macOS only)
try:
    import uvloop
    uvloop.install()
except ImportError:
    pass  # Windows - uvloop not available, use default asyncio

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from core.container import container
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import signaling

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)

# Suppress noisy loggers
logging.getLogger("uvicorn").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    set_startup_time()
    logger.info("Signaling relay started", host=settings.host, port=settings.port)
    yield

    logger.info("Shutting down gracefully")
    await container.relay_service().shutdown()
    logger.info("Relay closed")


app = FastAPI(
    title="Screen Share Signaling Relay",
    version="1.0.0",
    description="WebSocket relay for sender/receiver SDP and ICE exchange",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


@app.get("/health")
async def health_check():
    """Liveness check."""
    return get_health_status()


app.include_router(signaling.router)


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting signaling relay on all interfaces",
               host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        # Peers and sessions live in process memory
        workers=1
    )
