import orjson
import pytest
from starlette.websockets import WebSocketState

from core.container import reset_relay_state
from services.signaling.registry import PeerRegistry
from services.signaling.relay import RelayService
from services.signaling.router import MessageRouter
from services.signaling.sessions import SessionStore


class FakeWebSocket:
    """Records what the relay writes to a peer."""

    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []
        self.closed_with = None

    async def send_text(self, text):
        self.sent.append(orjson.loads(text))

    async def close(self, code=1000, reason=None):
        self.closed_with = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED

    def of_type(self, message_type):
        return [m for m in self.sent if m["type"] == message_type]


class FakeConnection:
    """Stand-in for PeerConnection in registry/session tests."""

    def __init__(self, is_open=True):
        self.is_open = is_open
        self.sent = []

    def send(self, message):
        if not self.is_open:
            return False
        self.sent.append(message)
        return True


def make_relay(queue_size=64):
    registry = PeerRegistry()
    sessions = SessionStore()
    router = MessageRouter(registry, sessions)
    return RelayService(registry, sessions, router, outbound_queue_size=queue_size)


@pytest.fixture(autouse=True)
def clean_state():
    reset_relay_state()
    yield
    reset_relay_state()
