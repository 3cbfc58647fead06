import pytest

from constants import ERR_INVALID_ROLE
from services.signaling.exceptions import InvalidRole, ProtocolViolation
from services.signaling.registry import PeerRegistry, generate_token

from conftest import FakeConnection


def test_generate_token_format():
    token = generate_token("peer")
    prefix, millis, suffix = token.split("_")
    assert prefix == "peer"
    assert millis.isdigit()
    assert len(suffix) == 9
    assert suffix.isalnum() and suffix == suffix.lower()


def test_allocated_ids_are_unique():
    registry = PeerRegistry()
    ids = {registry.allocate_id() for _ in range(200)}
    assert len(ids) == 200
    assert registry.count() == 200
    assert registry.count(registered_only=True) == 0


@pytest.mark.parametrize("role", [None, "", "viewer", "SENDER", 42, ["sender"]])
def test_invalid_role_rejected_without_state_change(role):
    registry = PeerRegistry()
    peer_id = registry.allocate_id()

    with pytest.raises(InvalidRole) as exc_info:
        registry.register(FakeConnection(), role, peer_id=peer_id)

    assert exc_info.value.message == ERR_INVALID_ROLE
    assert peer_id not in registry
    assert len(registry) == 0


def test_valid_register_after_invalid_one():
    registry = PeerRegistry()
    peer_id = registry.allocate_id()
    connection = FakeConnection()

    with pytest.raises(InvalidRole):
        registry.register(connection, "bogus", peer_id=peer_id)
    assert registry.register(connection, "receiver", peer_id=peer_id) == peer_id

    peer = registry.get(peer_id)
    assert peer.role == "receiver"
    assert peer.session_id is None


def test_reregister_keeps_session_binding():
    registry = PeerRegistry()
    peer_id = registry.register(FakeConnection(), "sender")
    registry.bind_to_session(peer_id, "S1")

    registry.register(FakeConnection(), "sender", peer_id=peer_id)

    assert registry.get(peer_id).session_id == "S1"


def test_role_change_refused_while_bound():
    registry = PeerRegistry()
    peer_id = registry.register(FakeConnection(), "sender")
    registry.bind_to_session(peer_id, "S1")

    with pytest.raises(ProtocolViolation):
        registry.register(FakeConnection(), "receiver", peer_id=peer_id)
    assert registry.get(peer_id).role == "sender"


def test_role_change_allowed_when_unbound():
    registry = PeerRegistry()
    peer_id = registry.register(FakeConnection(), "sender")
    registry.register(FakeConnection(), "receiver", peer_id=peer_id)
    assert registry.get(peer_id).role == "receiver"


def test_available_excludes_bound_peers_and_requester():
    registry = PeerRegistry()
    a = registry.register(FakeConnection(), "sender")
    b = registry.register(FakeConnection(), "receiver")
    c = registry.register(FakeConnection(), "receiver")
    registry.bind_to_session(c, "S1")

    available = registry.available(exclude=a)

    assert [p.peer_id for p in available] == [b]
    assert available[0].to_summary() == {"peerId": b, "role": "receiver"}


def test_unregister_returns_last_session():
    registry = PeerRegistry()
    peer_id = registry.register(FakeConnection(), "receiver")
    registry.bind_to_session(peer_id, "S9")

    assert registry.unregister(peer_id) == "S9"
    assert peer_id not in registry
    assert registry.unregister(peer_id) is None
    assert registry.count() == 0


def test_reachable_follows_connection():
    registry = PeerRegistry()
    connection = FakeConnection()
    peer_id = registry.register(connection, "sender")

    assert registry.get(peer_id).reachable
    connection.is_open = False
    assert not registry.get(peer_id).reachable
