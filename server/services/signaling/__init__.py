"""
Signaling Relay Module

Brokers the offer/answer/candidate handshake between a screen-sharing sender
and a touch-control receiver.

Components:
- protocol.py: wire message variants and JSON codec
- connection.py: per-peer outbound queue
- registry.py: PeerRegistry (connected peers and roles)
- sessions.py: SessionStore (sender/receiver pairing per session id)
- router.py: MessageRouter (validation and forwarding)
- relay.py: RelayService (accept, dispatch, cleanup)
"""

from .exceptions import (
    InvalidRole,
    MalformedMessage,
    PeerUnreachable,
    ProtocolViolation,
    SessionNotFound,
    SignalingError,
)
from .registry import Peer, PeerRegistry
from .sessions import Session, SessionState, SessionStore
from .router import MessageRouter
from .relay import RelayService

__all__ = [
    "InvalidRole",
    "MalformedMessage",
    "PeerUnreachable",
    "ProtocolViolation",
    "SessionNotFound",
    "SignalingError",
    "Peer",
    "PeerRegistry",
    "Session",
    "SessionState",
    "SessionStore",
    "MessageRouter",
    "RelayService",
]
