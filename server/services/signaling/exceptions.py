"""Signaling relay exception hierarchy."""

from constants import (
    ERR_INVALID_ROLE,
    ERR_SESSION_NOT_FOUND,
)


class SignalingError(Exception):
    """Base exception for all relay-side signaling errors."""

    code = "signaling_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidRole(SignalingError):
    """Registration with a role other than sender/receiver."""

    code = "invalid_role"

    def __init__(self, role=None):
        self.role = role
        super().__init__(ERR_INVALID_ROLE)


class SessionNotFound(SignalingError):
    """Answer or candidate referencing an unknown session id."""

    code = "session_not_found"

    def __init__(self, session_id=None):
        self.session_id = session_id
        super().__init__(ERR_SESSION_NOT_FOUND)


class MalformedMessage(SignalingError):
    """Undecodable frame or unknown message type. Logged and dropped."""

    code = "malformed_message"


class ProtocolViolation(SignalingError):
    """Well-formed message sent out of turn or by the wrong role."""

    code = "protocol_violation"


class PeerUnreachable(SignalingError):
    """Counterpart's outbound channel is not open. Never reported to peers."""

    code = "peer_unreachable"

    def __init__(self, peer_id: str):
        self.peer_id = peer_id
        super().__init__(f"Peer {peer_id} is not reachable")
