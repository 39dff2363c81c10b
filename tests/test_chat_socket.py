"""
tests/test_chat_socket.py — WebSocket Chat Integration Tests
=============================================================

Drives ``/api/ws/chat`` through the TestClient: authentication, room
joins with backlog replay, membership gating, and broadcast fan-out.
"""

from __future__ import annotations

import pytest
from conftest import auth, make_token
from starlette.websockets import WebSocketDisconnect

ALICE = make_token("101", "alice")
BOB = make_token("102", "bob")


def _create_goal(client, token: str = ALICE, name: str = "Chat goal") -> int:
    resp = client.post("/api/goals", json={"name": name}, headers=auth(token))
    assert resp.status_code == 201
    return resp.json()["goal"]["id"]


def _ws(client, token: str):
    return client.websocket_connect(f"/api/ws/chat?token={token}")


class TestSocketAuth:
    def test_missing_token_closes_4001(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/api/ws/chat"):
                pass
        assert exc.value.code == 4001

    def test_bad_token_closes_4001(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with _ws(client, "not-a-jwt"):
                pass
        assert exc.value.code == 4001

    def test_header_token_accepted(self, client):
        goal_id = _create_goal(client)
        with client.websocket_connect("/api/ws/chat", headers=auth(ALICE)) as ws:
            ws.send_json({"type": "join_group", "goal_id": goal_id})
            assert ws.receive_json()["type"] == "initial_messages"


class TestChatScenario:
    def test_member_chat_and_non_member_rejection(self, client):
        goal_id = _create_goal(client)

        with _ws(client, ALICE) as alice:
            alice.send_json({"type": "join_group", "goal_id": goal_id})
            joined = alice.receive_json()
            assert joined == {"type": "initial_messages", "goal_id": goal_id, "messages": []}

            alice.send_json({"type": "send_message", "goal_id": goal_id, "text": "hello"})
            event = alice.receive_json()
            assert event["type"] == "new_message"
            assert event["message"]["message_text"] == "hello"
            assert event["message"]["user_name"] == "alice"

            with _ws(client, BOB) as bob:
                bob.send_json({"type": "join_group", "goal_id": goal_id})
                assert bob.receive_json() == {
                    "type": "error",
                    "message": "User is not a member of this group",
                }
                bob.send_json({"type": "send_message", "goal_id": goal_id, "text": "sneaky"})
                assert bob.receive_json()["type"] == "error"

        history = client.get(f"/api/goals/{goal_id}/chat-messages", headers=auth(ALICE))
        assert [m["message_text"] for m in history.json()["messages"]] == ["hello"]

    def test_backlog_and_fan_out(self, client):
        goal_id = _create_goal(client)
        assert client.post(f"/api/goals/{goal_id}/join", headers=auth(BOB)).status_code == 200

        with _ws(client, ALICE) as alice:
            alice.send_json({"type": "join_group", "goal_id": goal_id})
            alice.receive_json()
            alice.send_json({"type": "send_message", "goal_id": goal_id, "text": "first"})
            alice.receive_json()

            with _ws(client, BOB) as bob:
                bob.send_json({"type": "join_group", "goal_id": goal_id})
                backlog = bob.receive_json()
                assert [m["message_text"] for m in backlog["messages"]] == ["first"]

                bob.send_json({"type": "send_message", "goal_id": goal_id, "text": "second"})
                assert bob.receive_json()["message"]["message_text"] == "second"
                from_bob = alice.receive_json()
                assert from_bob["message"]["user_name"] == "bob"

    def test_malformed_frames(self, client):
        with _ws(client, ALICE) as ws:
            ws.send_text("not json")
            assert ws.receive_json() == {"type": "error", "message": "Invalid payload"}
            ws.send_json({"type": "join_group", "goal_id": "seven"})
            assert ws.receive_json()["message"] == "Invalid payload"
            ws.send_json({"type": "dance", "goal_id": 1})
            assert ws.receive_json()["message"] == "Invalid payload"

    def test_blank_message_rejected(self, client):
        goal_id = _create_goal(client)
        with _ws(client, ALICE) as ws:
            ws.send_json({"type": "join_group", "goal_id": goal_id})
            ws.receive_json()
            ws.send_json({"type": "send_message", "goal_id": goal_id, "text": "   "})
            assert ws.receive_json() == {"type": "error", "message": "Message text is required"}

    def test_leaving_the_goal_stops_live_delivery(self, client):
        goal_id = _create_goal(client)
        client.post(f"/api/goals/{goal_id}/join", headers=auth(BOB))

        with _ws(client, ALICE) as alice, _ws(client, BOB) as bob:
            alice.send_json({"type": "join_group", "goal_id": goal_id})
            alice.receive_json()
            bob.send_json({"type": "join_group", "goal_id": goal_id})
            bob.receive_json()

            left = client.delete(f"/api/goals/{goal_id}/leave", headers=auth(BOB))
            assert left.status_code == 200

            alice.send_json({"type": "send_message", "goal_id": goal_id, "text": "secret"})
            assert alice.receive_json()["message"]["message_text"] == "secret"
            # Alice's frames run in order, so her broadcast is finished once this answers.
            alice.send_text("sync")
            assert alice.receive_json()["type"] == "error"

            bob.send_text("sync")
            assert bob.receive_json() == {"type": "error", "message": "Invalid payload"}

            members = client.app.state.chat_rooms.members(goal_id)
            assert [conn.user_id for conn in members] == [101]
