"""Receiver (touch-control viewer) side of the handshake."""

from typing import Any, Dict

from constants import ROLE_RECEIVER
from core.logging import get_logger
from services.signaling.protocol import Answer, Offer
from .exceptions import FailureReason
from .machine import EndpointState, EndpointStateMachine

logger = get_logger(__name__)


class ResponderStateMachine(EndpointStateMachine):
    """Joins a session as receiver and answers the sender's offer exactly once.

    Gesture deltas are produced elsewhere; this machine only forwards them
    over the data channel once the direct session is connected.
    """

    ROLE = ROLE_RECEIVER
    TRANSITIONS = {
        EndpointState.IDLE: frozenset([EndpointState.CONNECTING_TO_RELAY]),
        EndpointState.CONNECTING_TO_RELAY: frozenset([EndpointState.REGISTERED]),
        EndpointState.REGISTERED: frozenset([EndpointState.AWAITING_OFFER]),
        EndpointState.AWAITING_OFFER: frozenset([EndpointState.ANSWER_SENT]),
        EndpointState.ANSWER_SENT: frozenset([EndpointState.CONNECTED]),
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gestures_sent = 0
        self.gestures_ignored = 0

    @property
    def connect_timeout(self) -> float:
        return self.settings.responder_connect_timeout

    async def start(self) -> None:
        """Connect, register as receiver and join the session.

        Raises:
            ValueError: no session id given
            RelayConnectionError: relay unreachable or registration failed
        """
        self._ensure_idle()
        if not self.session_id or not self.session_id.strip():
            raise ValueError("Please enter a session ID")
        self.session_id = self.session_id.strip()

        logger.info("Connecting to signaling server", url=self.settings.relay_url,
                    session_id=self.session_id)
        await self._connect_relay()
        self._create_direct_session()
        await self._register(session_id=self.session_id)

    async def _on_registered(self) -> None:
        await self._transition(EndpointState.AWAITING_OFFER)

    async def _on_offer(self, message: Offer) -> None:
        if message.session_id != self.session_id:
            logger.warning("Offer for another session ignored", session_id=message.session_id)
            return
        if self.state != EndpointState.AWAITING_OFFER:
            logger.warning("Offer ignored", state=self.state.value)
            return

        try:
            await self._apply_remote_description(message.payload)
            answer = await self.direct_session.create_answer()
            await self.direct_session.set_local_description(answer)
        except Exception as e:
            logger.error("Failed to handle offer", error=str(e))
            await self.stop(FailureReason.NEGOTIATION)
            return

        if not await self.send(Answer(session_id=self.session_id, answer=answer)):
            await self.stop(FailureReason.RELAY_CONNECTION)
            return
        logger.info("Answer sent to sender", session_id=self.session_id)
        await self._transition(EndpointState.ANSWER_SENT)

    def submit_gesture(self, delta: Dict[str, Any]) -> bool:
        """Forward a gesture delta to the sender. Ignored until CONNECTED."""
        if self.state != EndpointState.CONNECTED or self.direct_session is None:
            self.gestures_ignored += 1
            return False
        try:
            sent = self.direct_session.send_data(delta)
        except Exception as e:
            logger.warning("Failed to send control command", error=str(e))
            return False
        if sent:
            self.gestures_sent += 1
        return bool(sent)

    async def _release_resources(self) -> None:
        self._close_direct_session()
        await self._close_relay()
