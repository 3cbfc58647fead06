from services.signaling.registry import Peer
from services.signaling.sessions import SessionState, SessionStore

from conftest import FakeConnection


def make_peer(peer_id, role):
    return Peer(peer_id=peer_id, connection=FakeConnection(), role=role)


def test_state_progression_initiator_first():
    store = SessionStore()
    sender = make_peer("p1", "sender")
    receiver = make_peer("p2", "receiver")

    session = store.get_or_create("S1")
    assert session.state == SessionState.EMPTY

    store.attach_initiator("S1", sender)
    assert session.state == SessionState.INITIATOR_WAITING

    store.attach_responder("S1", receiver)
    assert session.state == SessionState.PAIRED

    store.detach("S1", "p1")
    assert session.state == SessionState.RESPONDER_WAITING
    store.detach("S1", "p2")
    assert session.state == SessionState.TERMINATED
    assert "S1" not in store


def test_state_progression_responder_first():
    store = SessionStore()
    store.attach_responder("S1", make_peer("p2", "receiver"))
    assert store.get("S1").state == SessionState.RESPONDER_WAITING

    store.attach_initiator("S1", make_peer("p1", "sender"))
    assert store.get("S1").state == SessionState.PAIRED


def test_attach_returns_displaced_peer():
    store = SessionStore()
    first = make_peer("p1", "receiver")
    second = make_peer("p2", "receiver")

    assert store.attach_responder("S1", first) is None
    assert store.attach_responder("S1", first) is None
    assert store.attach_responder("S1", second) is first
    assert store.get("S1").responder is second


def test_new_initiator_discards_stale_offer():
    store = SessionStore()
    store.attach_initiator("S1", make_peer("p1", "sender"))
    store.store_offer("S1", {"sdp": "old"})

    store.attach_initiator("S1", make_peer("p3", "sender"))

    session = store.get("S1")
    assert not session.has_offer
    assert session.pending_offer is None


def test_detach_returns_counterpart():
    store = SessionStore()
    sender = make_peer("p1", "sender")
    receiver = make_peer("p2", "receiver")
    store.attach_initiator("S1", sender)
    store.attach_responder("S1", receiver)

    assert store.counterpart_of("S1", "p1") is receiver
    assert store.counterpart_of("S1", "p2") is sender
    assert store.counterpart_of("S1", "stranger") is None

    assert store.detach("S1", "p1") is receiver
    assert store.detach("S1", "p2") is None
    assert store.detach("S1", "p2") is None
    assert store.count() == 0


def test_initiator_detach_clears_offer():
    store = SessionStore()
    store.attach_initiator("S1", make_peer("p1", "sender"))
    store.attach_responder("S1", make_peer("p2", "receiver"))
    store.store_offer("S1", {"sdp": "x"})
    store.mark_offer_delivered("S1", "p2")

    store.detach("S1", "p1")

    session = store.get("S1")
    assert not session.has_offer
    assert session.offer_delivered_to is None


def test_count_by_state():
    store = SessionStore()
    store.attach_initiator("S1", make_peer("p1", "sender"))
    store.attach_responder("S2", make_peer("p2", "receiver"))
    store.attach_initiator("S3", make_peer("p3", "sender"))
    store.attach_responder("S3", make_peer("p4", "receiver"))

    assert store.count() == 3
    assert store.count_by_state() == {
        "initiator_waiting": 1,
        "responder_waiting": 1,
        "paired": 1,
    }


def test_generated_session_ids_are_prefixed():
    store = SessionStore()
    assert store.generate_session_id().startswith("session_")
    assert store.get(None) is None
