"""Validation and forwarding of signaling messages between session members.

The router holds no state of its own: every decision is read from the
PeerRegistry and SessionStore it is given. Callers serialize access (the
RelayService lock), so handlers here are plain synchronous functions.
Payloads of offer/answer/ice-candidate are never inspected.
"""

from typing import Optional

from constants import (
    ERR_NO_OFFER_DELIVERED,
    ERR_NOT_REGISTERED,
    ERR_NOT_SESSION_MEMBER,
    ROLE_RECEIVER,
    ROLE_SENDER,
)
from core.logging import get_logger, log_relay_event
from .connection import PeerConnection
from .exceptions import PeerUnreachable, ProtocolViolation, SessionNotFound
from .protocol import (
    Answer,
    Discover,
    IceCandidate,
    Offer,
    PeerDisconnected,
    PeersAvailable,
    PeerSummary,
    Register,
    Registered,
    SessionCreated,
    SignalingMessage,
    Superseded,
)
from .registry import Peer, PeerRegistry
from .sessions import Session, SessionStore

logger = get_logger(__name__)


class MessageRouter:
    """Routes one inbound message. Raises SignalingError subclasses on rejection."""

    def __init__(self, registry: PeerRegistry, sessions: SessionStore):
        self.registry = registry
        self.sessions = sessions

    # =========================================================================
    # Dispatch
    # =========================================================================

    def dispatch(self, peer_id: str, connection: PeerConnection, message: SignalingMessage) -> None:
        match message:
            case Register():
                self.handle_register(peer_id, connection, message)
            case Discover():
                self.handle_discover(peer_id, connection)
            case Offer():
                self.handle_offer(self._require_role(peer_id, ROLE_SENDER, "offer"), message)
            case Answer():
                self.handle_answer(self._require_role(peer_id, ROLE_RECEIVER, "answer"), message)
            case IceCandidate():
                self.handle_ice_candidate(self._require_registered(peer_id), message)
            case _:
                raise ProtocolViolation(f"Unsupported message type: {message.type}")

    def _require_registered(self, peer_id: str) -> Peer:
        peer = self.registry.get(peer_id)
        if peer is None:
            raise ProtocolViolation(ERR_NOT_REGISTERED)
        return peer

    def _require_role(self, peer_id: str, role: str, action: str) -> Peer:
        peer = self._require_registered(peer_id)
        if peer.role != role:
            raise ProtocolViolation(f"Only a {role} may send {action}")
        return peer

    # =========================================================================
    # Delivery helpers
    # =========================================================================

    def forward(self, target: Optional[Peer], message: SignalingMessage) -> bool:
        """Hand a message to target's outbound queue.

        An absent or closed target is a silent drop: late candidates and
        messages racing a disconnect are expected to land here.
        """
        if target is None or not target.reachable:
            logger.debug("Target unreachable, message dropped",
                         target=target.peer_id if target else None, type=message.type)
            return False
        return target.connection.send(message)

    def deliver(self, target: Peer, message: SignalingMessage) -> None:
        """Hand a message to a session member that is expected to be live."""
        if not target.reachable or not target.connection.send(message):
            raise PeerUnreachable(target.peer_id)

    def _leave_current_session(self, peer: Peer, new_session_id: str) -> None:
        """Detach a peer that moves to another session, notifying who it leaves."""
        old_session_id = peer.session_id
        if old_session_id is None or old_session_id == new_session_id:
            return
        counterpart = self.sessions.detach(old_session_id, peer.peer_id)
        self.registry.bind_to_session(peer.peer_id, None)
        if counterpart is not None:
            self.forward(counterpart, PeerDisconnected(session_id=old_session_id))

    def _notify_displaced(self, displaced: Optional[Peer], session_id: str, role: str) -> None:
        if displaced is None:
            return
        self.registry.bind_to_session(displaced.peer_id, None)
        self.forward(displaced, Superseded(session_id=session_id, role=role))
        log_relay_event(logger, "Peer displaced from session", displaced.peer_id,
                        session_id=session_id, role=role)

    def _attach(self, peer: Peer, session_id: str) -> Session:
        """Attach peer to the slot its role owns and bind it."""
        self._leave_current_session(peer, session_id)
        if peer.role == ROLE_SENDER:
            engaged = self._engaged_responder(session_id)
            displaced = self.sessions.attach_initiator(session_id, peer)
            if displaced is not None and engaged is not None:
                self._release_engaged_responder(session_id, engaged)
        else:
            displaced = self.sessions.attach_responder(session_id, peer)
        self._notify_displaced(displaced, session_id, peer.role)
        self.registry.bind_to_session(peer.peer_id, session_id)
        return self.sessions.get(session_id)

    def _engaged_responder(self, session_id: str) -> Optional[Peer]:
        """Responder that already received the current initiator's offer."""
        session = self.sessions.get(session_id)
        if session is None or session.responder is None:
            return None
        if session.offer_delivered_to != session.responder.peer_id:
            return None
        return session.responder

    def _release_engaged_responder(self, session_id: str, responder: Peer) -> None:
        # Its handshake was with the displaced initiator and cannot complete
        self.sessions.detach(session_id, responder.peer_id)
        self.registry.bind_to_session(responder.peer_id, None)
        self.forward(responder, PeerDisconnected(session_id=session_id))
        log_relay_event(logger, "Receiver released after sender superseded", responder.peer_id,
                        session_id=session_id)

    def _flush_offer(self, session: Session) -> bool:
        """Deliver the buffered offer to the responder if both ends are live."""
        if not session.has_offer or session.initiator is None or session.responder is None:
            return False
        offer = Offer(offer=session.pending_offer).forwarded(
            session.initiator.peer_id, session.session_id)
        if self.forward(session.responder, offer):
            self.sessions.mark_offer_delivered(session.session_id, session.responder.peer_id)
            log_relay_event(logger, "Forwarded offer to receiver", session.initiator.peer_id,
                            session_id=session.session_id, to=session.responder.peer_id)
            return True
        return False

    # =========================================================================
    # Handlers
    # =========================================================================

    def handle_register(self, peer_id: str, connection: PeerConnection, message: Register) -> None:
        self.registry.register(connection, message.role, peer_id=peer_id)
        peer = self.registry.get(peer_id)

        session_id = message.session_id
        if session_id:
            session = self._attach(peer, session_id)
            connection.send(Registered(peer_id=peer_id, role=peer.role, session_id=session_id))
            if peer.role == ROLE_RECEIVER:
                self._flush_offer(session)
        else:
            connection.send(Registered(peer_id=peer_id, role=peer.role))

        log_relay_event(logger, "Registered", peer_id, session_id=session_id, role=peer.role)

    def handle_discover(self, peer_id: str, connection: PeerConnection) -> None:
        peers = [
            PeerSummary(peer_id=p.peer_id, role=p.role)
            for p in self.registry.available(exclude=peer_id)
        ]
        connection.send(PeersAvailable(peers=peers))

    def handle_offer(self, peer: Peer, message: Offer) -> None:
        session_id = message.session_id
        if not session_id:
            session_id = self.sessions.generate_session_id()
            peer.connection.send(SessionCreated(session_id=session_id))

        session = self._attach(peer, session_id)
        self.sessions.store_offer(session_id, message.payload)

        if self._flush_offer(session):
            return
        log_relay_event(logger, "Offer stored, waiting for receiver", peer.peer_id,
                        session_id=session_id)

    def handle_answer(self, peer: Peer, message: Answer) -> None:
        session = self.sessions.get(message.session_id)
        if session is None:
            raise SessionNotFound(message.session_id)
        if session.offer_delivered_to != peer.peer_id:
            raise ProtocolViolation(ERR_NO_OFFER_DELIVERED)

        session = self._attach(peer, session.session_id)
        if session.initiator is None:
            logger.debug("Sender gone, answer dropped", session_id=session.session_id)
            return
        self.deliver(session.initiator, message.forwarded(peer.peer_id, session.session_id))
        log_relay_event(logger, "Forwarded answer to sender", peer.peer_id,
                        session_id=session.session_id)

    def handle_ice_candidate(self, peer: Peer, message: IceCandidate) -> None:
        session = self.sessions.get(message.session_id)
        if session is None:
            raise SessionNotFound(message.session_id)
        if session.slot_of(peer.peer_id) is None:
            raise ProtocolViolation(ERR_NOT_SESSION_MEMBER)

        target = self.sessions.counterpart_of(session.session_id, peer.peer_id)
        if target is None:
            # Counterpart not attached yet: early candidates are dropped
            return
        self.deliver(target, message.forwarded(peer.peer_id, session.session_id))
