"""Registry of currently connected, registered peers.

Single writer: only RelayService mutates it, under its lock. The registry
never sends messages.
"""

import secrets
import string
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from constants import PEER_ID_PREFIX, VALID_ROLES
from core.logging import get_logger
from .connection import PeerConnection
from .exceptions import InvalidRole, ProtocolViolation

logger = get_logger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_token(prefix: str, length: int = 9) -> str:
    """``<prefix>_<epoch ms>_<random base36>`` token."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


@dataclass
class Peer:
    """One endpoint's live connection, tagged with its declared role."""
    peer_id: str
    connection: PeerConnection
    role: str
    session_id: Optional[str] = None

    @property
    def reachable(self) -> bool:
        return self.connection.is_open

    def to_summary(self) -> Dict[str, str]:
        return {"peerId": self.peer_id, "role": self.role}


class PeerRegistry:
    """Tracks every registered endpoint and its role."""

    def __init__(self):
        self._peers: Dict[str, Peer] = {}
        self._allocated: set[str] = set()

    def allocate_id(self) -> str:
        """Reserve a fresh peer id for a newly accepted connection."""
        peer_id = generate_token(PEER_ID_PREFIX)
        while peer_id in self._allocated:
            peer_id = generate_token(PEER_ID_PREFIX)
        self._allocated.add(peer_id)
        return peer_id

    def register(self, connection: PeerConnection, role, peer_id: Optional[str] = None) -> str:
        """Record a peer with its role and return its id.

        Raises InvalidRole without touching state. Re-registering the same
        connection keeps its session binding; switching role while bound to
        a session is refused.
        """
        if not isinstance(role, str) or role not in VALID_ROLES:
            raise InvalidRole(role)

        if peer_id is None:
            peer_id = self.allocate_id()

        existing = self._peers.get(peer_id)
        if existing is not None:
            if existing.session_id is not None and existing.role != role:
                raise ProtocolViolation(
                    f"Cannot change role from {existing.role} to {role} while in a session")
            existing.role = role
            return peer_id

        self._allocated.add(peer_id)
        self._peers[peer_id] = Peer(peer_id=peer_id, connection=connection, role=role)
        logger.info("Peer registered", peer_id=peer_id, role=role)
        return peer_id

    def bind_to_session(self, peer_id: str, session_id: Optional[str]) -> None:
        """Set (or with None, clear) the peer's session reference. Idempotent."""
        peer = self._peers.get(peer_id)
        if peer is not None:
            peer.session_id = session_id

    def unregister(self, peer_id: str) -> Optional[str]:
        """Remove the peer. Returns its last known session id."""
        self._allocated.discard(peer_id)
        peer = self._peers.pop(peer_id, None)
        if peer is None:
            return None
        logger.info("Peer unregistered", peer_id=peer_id, session_id=peer.session_id)
        return peer.session_id

    def get(self, peer_id: str) -> Optional[Peer]:
        return self._peers.get(peer_id)

    def available(self, exclude: Optional[str] = None) -> List[Peer]:
        """Registered peers not yet bound to any session."""
        return [
            p for p in self._peers.values()
            if p.session_id is None and p.peer_id != exclude
        ]

    def count(self, registered_only: bool = False) -> int:
        if registered_only:
            return len(self._peers)
        return len(self._allocated)

    def __contains__(self, peer_id: str) -> bool:
        return peer_id in self._peers

    def __len__(self) -> int:
        return len(self._peers)
