"""Centralized constants for the signaling wire protocol.

Single source of truth for message type tags, roles and close codes shared
by the relay and the endpoint clients.
"""

from typing import FrozenSet

# =============================================================================
# ROLES
# =============================================================================

ROLE_SENDER = 'sender'      # Initiator: screen-sharing host
ROLE_RECEIVER = 'receiver'  # Responder: touch-control viewer

VALID_ROLES: FrozenSet[str] = frozenset([
    ROLE_SENDER,
    ROLE_RECEIVER,
])

# =============================================================================
# MESSAGE TYPES
# =============================================================================

MSG_PEER_ID = 'peer-id'
MSG_REGISTER = 'register'
MSG_REGISTERED = 'registered'
MSG_DISCOVER = 'discover'
MSG_PEERS_AVAILABLE = 'peers-available'
MSG_OFFER = 'offer'
MSG_ANSWER = 'answer'
MSG_ICE_CANDIDATE = 'ice-candidate'
MSG_SESSION_CREATED = 'session-created'
MSG_PEER_DISCONNECTED = 'peer-disconnected'
MSG_SESSION_SUPERSEDED = 'session-superseded'
MSG_ERROR = 'error'

# Messages a peer may send to the relay
INBOUND_MESSAGE_TYPES: FrozenSet[str] = frozenset([
    MSG_REGISTER,
    MSG_DISCOVER,
    MSG_OFFER,
    MSG_ANSWER,
    MSG_ICE_CANDIDATE,
])

# Messages whose payload is forwarded verbatim to the counterpart
RELAYED_MESSAGE_TYPES: FrozenSet[str] = frozenset([
    MSG_OFFER,
    MSG_ANSWER,
    MSG_ICE_CANDIDATE,
])

# =============================================================================
# ERROR MESSAGES
# =============================================================================

ERR_INVALID_ROLE = 'Invalid role. Must be "sender" or "receiver"'
ERR_SESSION_NOT_FOUND = 'Session not found'
ERR_NOT_REGISTERED = 'Peer not registered'
ERR_NOT_SESSION_MEMBER = 'Peer is not a member of this session'
ERR_NO_OFFER_DELIVERED = 'No offer was delivered to this peer for this session'

# =============================================================================
# WEBSOCKET CLOSE CODES
# =============================================================================

CLOSE_NORMAL = 1000
CLOSE_SERVER_SHUTDOWN_REASON = 'Server shutdown'

# =============================================================================
# ID PREFIXES
# =============================================================================

PEER_ID_PREFIX = 'peer'
RELAY_SESSION_ID_PREFIX = 'session'
ENDPOINT_SESSION_ID_PREFIX = 'sess'

# Default public STUN servers handed to the direct transport
DEFAULT_ICE_SERVERS = (
    'stun:stun.l.google.com:19302',
    'stun:stun1.l.google.com:19302',
)

# Data channel the receiver's control commands travel on
CONTROL_CHANNEL_LABEL = 'scroll-commands'
