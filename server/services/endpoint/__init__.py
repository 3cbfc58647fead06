"""
Endpoint Handshake Module

Client-side state machines that drive the signaling handshake against the
relay and report connectivity to the host application.

Components:
- client.py: RelaySignalingClient (aiohttp WebSocket to the relay)
- interfaces.py: LocalResource / DirectSession / SignalingChannel protocols
- machine.py: shared EndpointStateMachine
- initiator.py: sender machine
- responder.py: receiver machine
- metrics.py: transport-health sampling once connected
"""

from .client import RelaySignalingClient
from .exceptions import (
    EndpointError,
    FailureReason,
    LocalResourceError,
    NegotiationError,
    RelayConnectionError,
)
from .machine import EndpointState, EndpointStateMachine
from .initiator import InitiatorStateMachine, generate_session_id
from .responder import ResponderStateMachine

__all__ = [
    "RelaySignalingClient",
    "EndpointError",
    "FailureReason",
    "LocalResourceError",
    "NegotiationError",
    "RelayConnectionError",
    "EndpointState",
    "EndpointStateMachine",
    "InitiatorStateMachine",
    "ResponderStateMachine",
    "generate_session_id",
]
