"""Sender (screen-sharing host) side of the handshake."""

from typing import Any, Awaitable, Callable, Dict, Optional

from constants import CONTROL_CHANNEL_LABEL, ENDPOINT_SESSION_ID_PREFIX, ROLE_SENDER
from core.logging import get_logger
from services.signaling.protocol import Answer, Offer
from services.signaling.registry import generate_token
from .exceptions import FailureReason, LocalResourceError
from .interfaces import LocalResource
from .machine import EndpointState, EndpointStateMachine
from .metrics import MetricsCollector

logger = get_logger(__name__)

ControlHandler = Callable[[Dict[str, Any]], Awaitable[None]]


def generate_session_id() -> str:
    return generate_token(ENDPOINT_SESSION_ID_PREFIX)


class InitiatorStateMachine(EndpointStateMachine):
    """Acquires capture, registers as sender and sends one offer per session.

    Control commands from the receiver arrive on the direct session's data
    channel and are handed to ``control_handler``.
    """

    ROLE = ROLE_SENDER
    TRANSITIONS = {
        EndpointState.IDLE: frozenset([EndpointState.ACQUIRING_LOCAL_RESOURCE]),
        EndpointState.ACQUIRING_LOCAL_RESOURCE: frozenset([EndpointState.CONNECTING_TO_RELAY]),
        EndpointState.CONNECTING_TO_RELAY: frozenset([EndpointState.REGISTERED]),
        EndpointState.REGISTERED: frozenset([EndpointState.NEGOTIATION_STARTED]),
        EndpointState.NEGOTIATION_STARTED: frozenset([EndpointState.AWAITING_ANSWER]),
        EndpointState.AWAITING_ANSWER: frozenset([EndpointState.CONNECTED]),
    }

    def __init__(self, local_resource: LocalResource, *args,
                 control_handler: Optional[ControlHandler] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.local_resource = local_resource
        self.control_handler = control_handler
        self.control_count = 0
        self.metrics: Optional[MetricsCollector] = None
        self._resource_acquired = False
        self._offer_sent = False

    async def start(self) -> str:
        """Run the sender handshake up to the sent offer.

        Returns:
            The session id the receiver must join.

        Raises:
            LocalResourceError: capture refused; no relay connection was attempted
            RelayConnectionError: relay unreachable or registration failed
        """
        self._ensure_idle()
        logger.info("Starting remote screen sharing")

        await self._transition(EndpointState.ACQUIRING_LOCAL_RESOURCE)
        try:
            await self.local_resource.acquire()
        except Exception as e:
            logger.error("Failed to acquire local resource", error=str(e))
            await self.stop(FailureReason.LOCAL_RESOURCE)
            raise LocalResourceError(f"Failed to start capture: {e}") from e
        self._resource_acquired = True
        self.local_resource.on_ended = self._on_resource_ended

        await self._connect_relay()

        if not self.session_id:
            self.session_id = generate_session_id()

        session = self._create_direct_session()
        session.attach_local_resource(self.local_resource)
        session.open_data_channel(CONTROL_CHANNEL_LABEL, ordered=True)

        await self._register()
        return self.session_id

    # =========================================================================
    # Handshake
    # =========================================================================

    async def _on_registered(self) -> None:
        if self._offer_sent:
            return
        self._offer_sent = True

        await self._transition(EndpointState.NEGOTIATION_STARTED)
        try:
            offer = await self.direct_session.create_offer()
            await self.direct_session.set_local_description(offer)
        except Exception as e:
            logger.error("Failed to create offer", error=str(e))
            await self.stop(FailureReason.NEGOTIATION)
            return

        if not await self.send(Offer(session_id=self.session_id, offer=offer)):
            await self.stop(FailureReason.RELAY_CONNECTION)
            return
        logger.info("Offer sent", session_id=self.session_id)
        await self._transition(EndpointState.AWAITING_ANSWER)

    async def _on_answer(self, message: Answer) -> None:
        if message.session_id != self.session_id:
            logger.warning("Answer for another session ignored", session_id=message.session_id)
            return
        if self.state != EndpointState.AWAITING_ANSWER or self._remote_description_set:
            logger.warning("Answer ignored", state=self.state.value)
            return
        try:
            await self._apply_remote_description(message.payload)
        except Exception as e:
            logger.error("Failed to handle answer", error=str(e))
            await self.stop(FailureReason.NEGOTIATION)
            return
        logger.info("Answer received and set", session_id=self.session_id)

    async def _on_connected(self) -> None:
        self.metrics = MetricsCollector(self.direct_session, interval=self.settings.stats_interval)
        self.metrics.start()

    async def _on_data(self, message: Dict[str, Any]) -> None:
        self.control_count += 1
        if self.control_count % 10 == 0:
            logger.info("Control commands received", count=self.control_count)
        if self.control_handler:
            try:
                await self.control_handler(message)
            except Exception as e:
                logger.warning("Control handler failed", error=str(e))

    async def _on_resource_ended(self) -> None:
        logger.warning("Screen capture ended by user")
        await self.stop()

    # =========================================================================
    # Teardown
    # =========================================================================

    async def _release_resources(self) -> None:
        if self.metrics is not None:
            await self.metrics.stop()
        self._release_local_resource()
        await self._close_relay()
        self._close_direct_session()

    def _release_local_resource(self) -> None:
        if not self._resource_acquired:
            return
        self._resource_acquired = False
        try:
            self.local_resource.release()
        except Exception as e:
            logger.warning("Local resource release failed", error=str(e))
