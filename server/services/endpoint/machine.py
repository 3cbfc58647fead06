"""Client-side handshake state machine shared by sender and receiver.

Each endpoint owns three independently failable resources: the local
resource (sender only), the relay connection and the direct session.
Closing is always safe, including for resources that were never opened.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional

from core.config import Settings
from core.logging import get_logger
from services.signaling.protocol import (
    Answer,
    Error,
    IceCandidate,
    Offer,
    PeerAssigned,
    PeerDisconnected,
    Register,
    Registered,
    SessionCreated,
    SignalingMessage,
    Superseded,
)
from .client import RelaySignalingClient
from .exceptions import EndpointError, FailureReason, RelayConnectionError
from .interfaces import DirectSession, DirectSessionFactory, SignalingChannel, SignalingChannelFactory

logger = get_logger(__name__)


class EndpointState(str, Enum):
    """Endpoint handshake states.

    Sender:   IDLE -> ACQUIRING_LOCAL_RESOURCE -> CONNECTING_TO_RELAY -> REGISTERED
              -> NEGOTIATION_STARTED -> AWAITING_ANSWER -> CONNECTED -> CLOSED
    Receiver: IDLE -> CONNECTING_TO_RELAY -> REGISTERED -> AWAITING_OFFER
              -> ANSWER_SENT -> CONNECTED -> CLOSED
    Any state may move to CLOSED.
    """
    IDLE = "idle"
    ACQUIRING_LOCAL_RESOURCE = "acquiring_local_resource"
    CONNECTING_TO_RELAY = "connecting_to_relay"
    REGISTERED = "registered"
    NEGOTIATION_STARTED = "negotiation_started"
    AWAITING_ANSWER = "awaiting_answer"
    AWAITING_OFFER = "awaiting_offer"
    ANSWER_SENT = "answer_sent"
    CONNECTED = "connected"
    CLOSED = "closed"


StateCallback = Callable[[EndpointState, Optional[FailureReason]], Awaitable[None]]

# Direct session states reported by the transport
_TRANSPORT_CONNECTED = frozenset(["connected", "completed"])
_TRANSPORT_FAILED = frozenset(["failed"])
_TRANSPORT_CLOSED = frozenset(["closed"])

_NEGOTIATING = frozenset([
    EndpointState.NEGOTIATION_STARTED,
    EndpointState.AWAITING_ANSWER,
    EndpointState.ANSWER_SENT,
])


class EndpointStateMachine:
    """Drives the relay handshake for one role and one session."""

    ROLE: str = ""
    TRANSITIONS: Dict[EndpointState, FrozenSet[EndpointState]] = {}

    def __init__(
        self,
        direct_session_factory: DirectSessionFactory,
        signaling_factory: Optional[SignalingChannelFactory] = None,
        settings: Optional[Settings] = None,
        session_id: Optional[str] = None,
        on_state_change: Optional[StateCallback] = None,
    ):
        self.settings = settings or Settings()
        self.direct_session_factory = direct_session_factory
        self.signaling_factory = signaling_factory or self._default_signaling
        self.on_state_change = on_state_change

        self.state = EndpointState.IDLE
        self.failure: Optional[FailureReason] = None
        self.peer_id: Optional[str] = None
        self.session_id: Optional[str] = session_id

        self.signaling: Optional[SignalingChannel] = None
        self.direct_session: Optional[DirectSession] = None

        self._registered = asyncio.Event()
        self._registration_error: Optional[str] = None
        self._remote_description_set = False
        self._pending_candidates: List[Any] = []

    @property
    def connect_timeout(self) -> float:
        return self.settings.initiator_connect_timeout

    def _default_signaling(self) -> SignalingChannel:
        return RelaySignalingClient(self.settings.relay_url, connect_timeout=self.connect_timeout)

    @property
    def is_closed(self) -> bool:
        return self.state == EndpointState.CLOSED

    # =========================================================================
    # State transitions
    # =========================================================================

    async def _transition(self, target: EndpointState) -> bool:
        if self.state == target:
            return True
        if self.state == EndpointState.CLOSED:
            return False
        if target != EndpointState.CLOSED and target not in self.TRANSITIONS.get(self.state, frozenset()):
            logger.warning("Ignored invalid transition", role=self.ROLE,
                           current=self.state.value, target=target.value)
            return False

        previous, self.state = self.state, target
        logger.info("State changed", role=self.ROLE, session_id=self.session_id,
                    previous=previous.value, state=target.value)
        if self.on_state_change:
            try:
                await self.on_state_change(target, self.failure)
            except Exception as e:
                logger.warning("State callback failed", error=str(e))
        return True

    # =========================================================================
    # Relay connection
    # =========================================================================

    async def _connect_relay(self) -> None:
        await self._transition(EndpointState.CONNECTING_TO_RELAY)
        channel = self.signaling_factory()
        channel.on_message = self.handle_message
        channel.on_close = self._on_relay_closed
        self.signaling = channel

        try:
            self.peer_id = await channel.connect()
        except RelayConnectionError:
            await self.stop(FailureReason.RELAY_CONNECTION)
            raise
        except Exception as e:
            await self.stop(FailureReason.RELAY_CONNECTION)
            raise RelayConnectionError(f"Signaling connection failed: {e}") from e

    async def _register(self, session_id: Optional[str] = None) -> None:
        """Send register and wait for the relay to confirm it."""
        sent = await self.signaling.send(Register(role=self.ROLE, session_id=session_id))
        if not sent:
            await self.stop(FailureReason.RELAY_CONNECTION)
            raise RelayConnectionError("Relay connection closed before registration")

        try:
            await asyncio.wait_for(self._registered.wait(), timeout=self.connect_timeout)
        except asyncio.TimeoutError as e:
            await self.stop(FailureReason.RELAY_CONNECTION)
            raise RelayConnectionError("Registration timeout") from e

        if self._registration_error is not None:
            await self.stop(FailureReason.RELAY_CONNECTION)
            raise RelayConnectionError(f"Registration failed: {self._registration_error}")

    async def send(self, message: SignalingMessage) -> bool:
        if self.signaling is None:
            return False
        return await self.signaling.send(message)

    # =========================================================================
    # Direct session
    # =========================================================================

    def _create_direct_session(self) -> DirectSession:
        session = self.direct_session_factory(list(self.settings.ice_servers))
        session.on_ice_candidate = self._on_local_candidate
        session.on_connection_state_change = self._on_transport_state
        session.on_data = self._on_data
        self.direct_session = session
        return session

    async def _apply_remote_description(self, description: Any) -> None:
        """Set the remote description, then apply candidates that arrived early."""
        await self.direct_session.set_remote_description(description)
        self._remote_description_set = True

        pending, self._pending_candidates = self._pending_candidates, []
        for candidate in pending:
            await self._add_candidate(candidate)

    async def _add_candidate(self, candidate: Any) -> None:
        try:
            await self.direct_session.add_ice_candidate(candidate)
        except Exception as e:
            logger.warning("Failed to add ICE candidate", role=self.ROLE, error=str(e))

    async def _on_local_candidate(self, candidate: Any) -> None:
        if candidate is None or self.is_closed:
            return
        await self.send(IceCandidate(session_id=self.session_id, candidate=candidate))

    async def _on_remote_candidate(self, message: IceCandidate) -> None:
        if message.payload is None or self.direct_session is None:
            return
        if message.session_id != self.session_id:
            logger.debug("Candidate for another session ignored", role=self.ROLE)
            return
        if not self._remote_description_set:
            self._pending_candidates.append(message.payload)
            return
        await self._add_candidate(message.payload)

    async def _on_transport_state(self, state: str) -> None:
        logger.info("Direct session state", role=self.ROLE, state=state)
        if state in _TRANSPORT_CONNECTED:
            if await self._transition(EndpointState.CONNECTED):
                await self._on_connected()
        elif state in _TRANSPORT_FAILED:
            await self.stop(FailureReason.NEGOTIATION)
        elif state in _TRANSPORT_CLOSED:
            await self.stop()

    async def _on_data(self, message: Dict[str, Any]) -> None:
        logger.debug("Data channel message ignored", role=self.ROLE)

    async def _on_connected(self) -> None:
        pass

    # =========================================================================
    # Signaling messages
    # =========================================================================

    async def handle_message(self, message: SignalingMessage) -> None:
        """Entry point for every message the relay sends us."""
        if self.is_closed:
            return

        match message:
            case PeerAssigned():
                self.peer_id = message.peer_id
            case Registered():
                self.peer_id = message.peer_id
                self._registered.set()
                if await self._transition(EndpointState.REGISTERED):
                    await self._on_registered()
            case SessionCreated():
                self.session_id = message.session_id
            case Offer():
                await self._on_offer(message)
            case Answer():
                await self._on_answer(message)
            case IceCandidate():
                await self._on_remote_candidate(message)
            case PeerDisconnected():
                await self._on_peer_disconnected()
            case Superseded():
                logger.warning("Displaced from session", role=self.ROLE, session_id=message.session_id)
                await self.stop(FailureReason.SUPERSEDED)
            case Error():
                logger.error("Signaling error", role=self.ROLE, error=message.message, code=message.code)
                if not self._registered.is_set():
                    self._registration_error = message.message
                    self._registered.set()
                elif self.state in _NEGOTIATING:
                    # The relay refused part of the exchange; it cannot complete
                    await self.stop(FailureReason.NEGOTIATION)
            case _:
                logger.debug("Unhandled signaling message", role=self.ROLE, type=message.type)

    async def _on_registered(self) -> None:
        pass

    async def _on_offer(self, message: Offer) -> None:
        logger.warning("Unexpected offer", role=self.ROLE)

    async def _on_answer(self, message: Answer) -> None:
        logger.warning("Unexpected answer", role=self.ROLE)

    async def _on_peer_disconnected(self) -> None:
        # A formed direct session outlives the relay's view of the counterpart
        if self.state == EndpointState.CONNECTED:
            logger.info("Counterpart left the relay, direct session kept", role=self.ROLE)
            return
        logger.warning("Counterpart disconnected", role=self.ROLE, session_id=self.session_id)
        await self.stop(FailureReason.PEER_DISCONNECTED)

    async def _on_relay_closed(self) -> None:
        if self.state in (EndpointState.CONNECTED, EndpointState.CLOSED):
            return
        logger.warning("Relay connection lost during handshake", role=self.ROLE)
        await self.stop(FailureReason.RELAY_CONNECTION)

    def _ensure_idle(self) -> None:
        if self.state != EndpointState.IDLE:
            raise EndpointError(f"{self.ROLE} already started (state={self.state.value})")

    # =========================================================================
    # Teardown
    # =========================================================================

    async def stop(self, reason: Optional[FailureReason] = None) -> None:
        """Move to CLOSED and release every resource. Idempotent."""
        if self.is_closed:
            return
        self.failure = reason
        if not self._registered.is_set():
            # Release a start() still waiting for registration
            self._registration_error = "Stopped before registration completed"
            self._registered.set()
        await self._transition(EndpointState.CLOSED)
        await self._release_resources()
        logger.info("Stopped", role=self.ROLE, session_id=self.session_id,
                    reason=reason.value if reason else None)

    async def _release_resources(self) -> None:
        await self._close_relay()
        self._close_direct_session()

    async def _close_relay(self) -> None:
        channel, self.signaling = self.signaling, None
        if channel is None:
            return
        try:
            await channel.close()
        except Exception as e:
            logger.warning("Relay close failed", role=self.ROLE, error=str(e))

    def _close_direct_session(self) -> None:
        session, self.direct_session = self.direct_session, None
        if session is None:
            return
        try:
            session.close()
        except Exception as e:
            logger.warning("Direct session close failed", role=self.ROLE, error=str(e))
