"""Endpoint-side failure reasons and exceptions."""

from enum import Enum


class FailureReason(str, Enum):
    """Why an endpoint attempt ended before or after connecting."""
    LOCAL_RESOURCE = "local_resource"        # Capture could not be acquired
    RELAY_CONNECTION = "relay_connection"    # Relay unreachable, timed out or dropped
    NEGOTIATION = "negotiation"              # Offer/answer/transport failure
    PEER_DISCONNECTED = "peer_disconnected"  # Counterpart left the session
    SUPERSEDED = "superseded"                # Another peer took our slot


class EndpointError(Exception):
    """Base exception for endpoint handshake failures."""

    reason = FailureReason.NEGOTIATION

    def __init__(self, message: str, reason: FailureReason = None):
        if reason is not None:
            self.reason = reason
        super().__init__(message)


class LocalResourceError(EndpointError):
    """Local capture acquisition failed. Raised before any relay connection."""

    reason = FailureReason.LOCAL_RESOURCE


class RelayConnectionError(EndpointError):
    """Could not connect or register with the relay."""

    reason = FailureReason.RELAY_CONNECTION


class NegotiationError(EndpointError):
    """Offer/answer exchange failed for this session."""

    reason = FailureReason.NEGOTIATION
