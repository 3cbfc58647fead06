"""Session pairing store.

A session pairs at most one initiator (sender) and one responder (receiver)
under a shared session id. It is deleted the moment both slots are empty.

State transitions, as seen from the relay:
    EMPTY -> INITIATOR_WAITING -> PAIRED -> TERMINATED
    EMPTY -> RESPONDER_WAITING -> PAIRED -> TERMINATED
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from constants import RELAY_SESSION_ID_PREFIX
from core.logging import get_logger
from .registry import Peer, generate_token

logger = get_logger(__name__)


class SessionState(str, Enum):
    """Relay-side view of a session's handshake progress."""
    EMPTY = "empty"
    INITIATOR_WAITING = "initiator_waiting"
    RESPONDER_WAITING = "responder_waiting"
    PAIRED = "paired"
    TERMINATED = "terminated"


@dataclass
class Session:
    """Pairing slot keyed by a shared identifier."""
    session_id: str
    initiator: Optional[Peer] = None
    responder: Optional[Peer] = None

    # Last offer from the current initiator, replayed to a late responder
    pending_offer: Any = None
    has_offer: bool = False
    offer_delivered_to: Optional[str] = None

    terminated: bool = False

    @property
    def state(self) -> SessionState:
        if self.terminated:
            return SessionState.TERMINATED
        if self.initiator and self.responder:
            return SessionState.PAIRED
        if self.initiator:
            return SessionState.INITIATOR_WAITING
        if self.responder:
            return SessionState.RESPONDER_WAITING
        return SessionState.EMPTY

    @property
    def is_empty(self) -> bool:
        return self.initiator is None and self.responder is None

    def slot_of(self, peer_id: str) -> Optional[str]:
        if self.initiator and self.initiator.peer_id == peer_id:
            return "initiator"
        if self.responder and self.responder.peer_id == peer_id:
            return "responder"
        return None

    def clear_offer(self) -> None:
        self.pending_offer = None
        self.has_offer = False
        self.offer_delivered_to = None


class SessionStore:
    """Tracks sender/receiver pairing per session id."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def generate_session_id(self) -> str:
        session_id = generate_token(RELAY_SESSION_ID_PREFIX)
        while session_id in self._sessions:
            session_id = generate_token(RELAY_SESSION_ID_PREFIX)
        return session_id

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(session_id=session_id)
            self._sessions[session_id] = session
            logger.info("Session created", session_id=session_id)
        return session

    def attach_initiator(self, session_id: str, peer: Peer) -> Optional[Peer]:
        """Put peer in the initiator slot. Returns the displaced occupant, if any."""
        session = self.get_or_create(session_id)
        displaced = session.initiator
        session.initiator = peer
        if displaced is not None and displaced.peer_id != peer.peer_id:
            # The stale initiator's offer no longer describes a live transport
            session.clear_offer()
            logger.info("Initiator superseded", session_id=session_id,
                        old_peer_id=displaced.peer_id, new_peer_id=peer.peer_id)
            return displaced
        return None

    def attach_responder(self, session_id: str, peer: Peer) -> Optional[Peer]:
        """Put peer in the responder slot. Returns the displaced occupant, if any."""
        session = self.get_or_create(session_id)
        displaced = session.responder
        session.responder = peer
        if displaced is not None and displaced.peer_id != peer.peer_id:
            session.offer_delivered_to = None
            logger.info("Responder superseded", session_id=session_id,
                        old_peer_id=displaced.peer_id, new_peer_id=peer.peer_id)
            return displaced
        return None

    def store_offer(self, session_id: str, payload: Any) -> None:
        session = self.get_or_create(session_id)
        session.pending_offer = payload
        session.has_offer = True
        session.offer_delivered_to = None

    def mark_offer_delivered(self, session_id: str, peer_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.offer_delivered_to = peer_id

    def detach(self, session_id: str, peer_id: str) -> Optional[Peer]:
        """Clear whichever slot holds peer_id.

        Deletes the session once both slots are empty; otherwise returns the
        remaining counterpart so the caller can notify it.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return None

        if session.initiator and session.initiator.peer_id == peer_id:
            session.initiator = None
            session.clear_offer()
        if session.responder and session.responder.peer_id == peer_id:
            session.responder = None
            session.offer_delivered_to = None

        if session.is_empty:
            self._delete(session)
            return None
        return session.initiator or session.responder

    def counterpart_of(self, session_id: str, peer_id: str) -> Optional[Peer]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        slot = session.slot_of(peer_id)
        if slot == "initiator":
            return session.responder
        if slot == "responder":
            return session.initiator
        return None

    def _delete(self, session: Session) -> None:
        session.terminated = True
        self._sessions.pop(session.session_id, None)
        logger.info("Session removed", session_id=session.session_id)

    def count(self) -> int:
        return len(self._sessions)

    def count_by_state(self) -> Dict[str, int]:
        return dict(Counter(s.state.value for s in self._sessions.values()))

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
