from fastapi.testclient import TestClient

from main import app

OFFER = {"type": "offer", "sdp": "v=0\r\no=- 4611731400430051336 2 IN IP4 127.0.0.1\r\ns=-\r\n"}
ANSWER = {"type": "answer", "sdp": "v=0\r\no=- 1 2 IN IP4 127.0.0.1\r\n"}
CANDIDATE = {"candidate": "candidate:1 1 udp 2122260223 10.0.0.2 54400 typ host", "sdpMid": "0",
             "sdpMLineIndex": 0}


def open_peer(ws):
    """Read the peer-id the relay sends first."""
    message = ws.receive_json()
    assert message["type"] == "peer-id"
    return message["peerId"]


def register(ws, role, session_id=None):
    payload = {"type": "register", "role": role}
    if session_id:
        payload["sessionId"] = session_id
    ws.send_json(payload)
    return ws.receive_json()


def barrier(ws):
    """Round-trip a discover so everything sent before it has been routed."""
    ws.send_json({"type": "discover"})
    reply = ws.receive_json()
    assert reply["type"] == "peers-available"
    return reply


def test_health_endpoint():
    with TestClient(app) as client:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "OK"
        assert data["service"] == "signaling"


def test_offer_buffered_until_receiver_joins():
    with TestClient(app) as client:
        with client.websocket_connect("/") as sender, client.websocket_connect("/") as receiver:
            sender_id = open_peer(sender)
            receiver_id = open_peer(receiver)

            assert register(sender, "sender") == {"type": "registered", "peerId": sender_id, "role": "sender"}
            sender.send_json({"type": "offer", "sessionId": "S1", "offer": OFFER})
            barrier(sender)

            assert register(receiver, "receiver", "S1") == {
                "type": "registered", "peerId": receiver_id, "role": "receiver", "sessionId": "S1",
            }
            assert receiver.receive_json() == {
                "type": "offer", "sessionId": "S1", "offer": OFFER, "from": sender_id,
            }

            receiver.send_json({"type": "answer", "sessionId": "S1", "answer": ANSWER})
            assert sender.receive_json() == {
                "type": "answer", "sessionId": "S1", "answer": ANSWER, "from": receiver_id,
            }


def test_receiver_first_gets_offer_when_sent():
    with TestClient(app) as client:
        with client.websocket_connect("/") as sender, client.websocket_connect("/") as receiver:
            sender_id = open_peer(sender)
            open_peer(receiver)

            register(receiver, "receiver", "S1")
            register(sender, "sender")
            sender.send_json({"type": "offer", "sessionId": "S1", "offer": OFFER})

            assert receiver.receive_json() == {
                "type": "offer", "sessionId": "S1", "offer": OFFER, "from": sender_id,
            }


def test_offer_without_session_creates_one():
    with TestClient(app) as client:
        with client.websocket_connect("/") as sender, client.websocket_connect("/") as receiver:
            open_peer(sender)
            open_peer(receiver)

            register(sender, "sender")
            sender.send_json({"type": "offer", "offer": OFFER})
            created = sender.receive_json()
            assert created["type"] == "session-created"
            session_id = created["sessionId"]
            assert session_id.startswith("session_")

            register(receiver, "receiver", session_id)
            offer = receiver.receive_json()
            assert offer["type"] == "offer"
            assert offer["sessionId"] == session_id


def test_ice_candidates_relayed_both_ways():
    with TestClient(app) as client:
        with client.websocket_connect("/") as sender, client.websocket_connect("/") as receiver:
            sender_id = open_peer(sender)
            receiver_id = open_peer(receiver)

            register(sender, "sender", "S1")
            register(receiver, "receiver", "S1")

            sender.send_json({"type": "ice-candidate", "sessionId": "S1", "candidate": CANDIDATE})
            assert receiver.receive_json() == {
                "type": "ice-candidate", "sessionId": "S1", "candidate": CANDIDATE, "from": sender_id,
            }

            receiver.send_json({"type": "ice-candidate", "sessionId": "S1", "candidate": None})
            assert sender.receive_json() == {
                "type": "ice-candidate", "sessionId": "S1", "candidate": None, "from": receiver_id,
            }


def test_sessions_are_isolated():
    with TestClient(app) as client:
        with client.websocket_connect("/") as s1, client.websocket_connect("/") as r1, \
                client.websocket_connect("/") as s2, client.websocket_connect("/") as r2:
            for ws in (s1, r1, s2, r2):
                open_peer(ws)

            register(s1, "sender", "S1")
            register(r1, "receiver", "S1")
            register(s2, "sender", "S2")
            register(r2, "receiver", "S2")

            s1.send_json({"type": "ice-candidate", "sessionId": "S1", "candidate": CANDIDATE})
            assert r1.receive_json()["sessionId"] == "S1"

            # A sender may not inject into a session it is not part of
            s1.send_json({"type": "ice-candidate", "sessionId": "S2", "candidate": CANDIDATE})
            error = s1.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "protocol_violation"

            barrier(r2)
            barrier(s2)


def test_peer_disconnect_notifies_counterpart_once():
    with TestClient(app) as client:
        with client.websocket_connect("/") as receiver:
            open_peer(receiver)
            with client.websocket_connect("/") as sender:
                open_peer(sender)
                register(sender, "sender", "S1")
                register(receiver, "receiver", "S1")

            assert receiver.receive_json() == {"type": "peer-disconnected", "sessionId": "S1"}
            barrier(receiver)


def test_invalid_role_then_valid_register():
    with TestClient(app) as client:
        with client.websocket_connect("/") as ws:
            peer_id = open_peer(ws)

            assert register(ws, "viewer") == {
                "type": "error",
                "message": 'Invalid role. Must be "sender" or "receiver"',
                "code": "invalid_role",
            }
            assert register(ws, "receiver") == {"type": "registered", "peerId": peer_id, "role": "receiver"}


def test_ice_for_unknown_session_rejected():
    with TestClient(app) as client:
        with client.websocket_connect("/") as ws:
            open_peer(ws)
            register(ws, "sender")

            ws.send_json({"type": "ice-candidate", "sessionId": "nope", "candidate": CANDIDATE})
            assert ws.receive_json() == {
                "type": "error", "message": "Session not found", "code": "session_not_found",
            }


def test_early_ice_dropped_then_later_candidates_delivered():
    early = {"candidate": "candidate:0 1 udp 1 10.0.0.9 9 typ host", "sdpMid": "0", "sdpMLineIndex": 0}
    with TestClient(app) as client:
        with client.websocket_connect("/") as sender, client.websocket_connect("/") as receiver:
            sender_id = open_peer(sender)
            open_peer(receiver)
            register(sender, "sender", "S1")

            sender.send_json({"type": "ice-candidate", "sessionId": "S1", "candidate": early})
            barrier(sender)

            assert register(receiver, "receiver", "S1")["type"] == "registered"
            sender.send_json({"type": "ice-candidate", "sessionId": "S1", "candidate": CANDIDATE})

            assert receiver.receive_json() == {
                "type": "ice-candidate", "sessionId": "S1", "candidate": CANDIDATE, "from": sender_id,
            }
            barrier(receiver)


def test_answer_without_delivered_offer_rejected():
    with TestClient(app) as client:
        with client.websocket_connect("/") as sender, client.websocket_connect("/") as receiver:
            open_peer(sender)
            open_peer(receiver)
            register(sender, "sender", "S1")
            register(receiver, "receiver", "S1")

            receiver.send_json({"type": "answer", "sessionId": "S1", "answer": ANSWER})
            error = receiver.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "protocol_violation"

            receiver.send_json({"type": "answer", "sessionId": "S404", "answer": ANSWER})
            assert receiver.receive_json()["code"] == "session_not_found"

            barrier(sender)


def test_offer_from_receiver_rejected():
    with TestClient(app) as client:
        with client.websocket_connect("/") as ws:
            open_peer(ws)
            register(ws, "receiver")

            ws.send_json({"type": "offer", "sessionId": "S1", "offer": OFFER})
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "protocol_violation"


def test_second_receiver_supersedes_first():
    with TestClient(app) as client:
        with client.websocket_connect("/") as first, client.websocket_connect("/") as second:
            open_peer(first)
            open_peer(second)

            register(first, "receiver", "S1")
            register(second, "receiver", "S1")

            assert first.receive_json() == {
                "type": "session-superseded", "sessionId": "S1", "role": "receiver",
            }


def test_malformed_frame_does_not_close_connection():
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            open_peer(ws)
            ws.send_text("definitely not json")
            ws.send_text('{"type": "warp-drive"}')
            barrier(ws)


def test_stats_reports_counts():
    with TestClient(app) as client:
        with client.websocket_connect("/") as sender, client.websocket_connect("/") as lurker:
            open_peer(sender)
            open_peer(lurker)
            register(sender, "sender", "S1")

            stats = client.get("/stats").json()
            assert stats["peers"] == 2
            assert stats["registered_peers"] == 1
            assert stats["sessions"] == 1
            assert stats["sessions_by_state"] == {"initiator_waiting": 1}


def test_replacing_sender_releases_answered_receiver():
    with TestClient(app) as client:
        with client.websocket_connect("/") as receiver, client.websocket_connect("/") as second:
            receiver_id = open_peer(receiver)
            second_id = open_peer(second)

            with client.websocket_connect("/") as first:
                open_peer(first)
                register(first, "sender", "S1")
                register(receiver, "receiver", "S1")
                first.send_json({"type": "offer", "sessionId": "S1", "offer": OFFER})
                assert receiver.receive_json()["type"] == "offer"
                receiver.send_json({"type": "answer", "sessionId": "S1", "answer": ANSWER})
                assert first.receive_json()["type"] == "answer"

                register(second, "sender", "S1")
                assert first.receive_json() == {
                    "type": "session-superseded", "sessionId": "S1", "role": "sender",
                }

            assert receiver.receive_json() == {"type": "peer-disconnected", "sessionId": "S1"}
            barrier(receiver)

            # The released receiver can rejoin and negotiate with the new sender
            second.send_json({"type": "offer", "sessionId": "S1", "offer": OFFER})
            barrier(second)
            register(receiver, "receiver", "S1")
            assert receiver.receive_json() == {
                "type": "offer", "sessionId": "S1", "offer": OFFER, "from": second_id,
            }
            receiver.send_json({"type": "answer", "sessionId": "S1", "answer": ANSWER})
            assert second.receive_json() == {
                "type": "answer", "sessionId": "S1", "answer": ANSWER, "from": receiver_id,
            }
