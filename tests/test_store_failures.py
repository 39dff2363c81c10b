"""
tests/test_store_failures.py — Store Failure Translation
=========================================================

Driver errors must surface as :class:`StoreFailureError` carrying only a
generic message: a 500 ``{"detail": ...}`` over HTTP, an ``error`` event on
an open chat socket, and close code 1011 when a socket cannot register its
caller.
"""

from __future__ import annotations

import pytest
from conftest import auth, failing_statements, make_token
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from starlette.websockets import WebSocketDisconnect

from goalcircle.database.engine import get_session, unit_of_work
from goalcircle.database.models import Goal
from goalcircle.services import goal_service
from goalcircle.services.errors import NotFoundError, StoreFailureError

ALICE = make_token("101", "alice")


def _create_goal(client) -> int:
    resp = client.post("/api/goals", json={"name": "Fragile"}, headers=auth(ALICE))
    assert resp.status_code == 201
    return resp.json()["goal"]["id"]


# ===========================================================================
# unit_of_work
# ===========================================================================
class TestUnitOfWork:
    def test_driver_error_becomes_store_failure(self, db_engine):
        with pytest.raises(StoreFailureError) as exc:
            with unit_of_work(db_engine, "Failed to do the thing") as session:
                session.execute(text("SELECT * FROM no_such_table"))

        assert exc.value.message == "Failed to do the thing"
        assert exc.value.status_code == 500
        assert isinstance(exc.value.__cause__, SQLAlchemyError)

    def test_domain_error_passes_through(self, db_engine):
        with pytest.raises(NotFoundError, match="missing"):
            with unit_of_work(db_engine, "unused"):
                raise NotFoundError("missing")

    def test_failure_rolls_back_earlier_writes(self, db_engine, users):
        with pytest.raises(StoreFailureError):
            with unit_of_work(db_engine, "Failed") as session:
                session.add(Goal(name="Half", created_by=users["alice"]))
                session.flush()
                session.execute(text("SELECT * FROM no_such_table"))

        with get_session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Goal)) == 0

    def test_service_read_failure(self, db_engine, users):
        with failing_statements(db_engine, "FROM goals"):
            with pytest.raises(StoreFailureError, match="Failed to fetch goals"):
                goal_service.list_goals(db_engine, users["alice"])


# ===========================================================================
# HTTP mapping
# ===========================================================================
class TestHttpStoreFailures:
    def test_listing_failure_is_generic_500(self, client, db_engine):
        client.get("/api/goals", headers=auth(ALICE))  # register alice first

        with failing_statements(db_engine, "FROM goals"):
            resp = client.get("/api/goals", headers=auth(ALICE))

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Failed to fetch goals"}
        assert "disk I/O" not in resp.text

    def test_identity_registration_failure_is_500(self, client, db_engine):
        with failing_statements(db_engine, "FROM users"):
            resp = client.get("/api/goals", headers=auth(ALICE))

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Failed to register user"}

    def test_service_recovers_after_failure(self, client, db_engine):
        with failing_statements(db_engine, "INSERT INTO goal_members"):
            resp = client.post("/api/goals", json={"name": "Nope"}, headers=auth(ALICE))
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Failed to create goal"}

        _create_goal(client)
        assert client.get("/api/goals", headers=auth(ALICE)).json()["total"] == 1


# ===========================================================================
# Chat socket
# ===========================================================================
class TestSocketStoreFailures:
    def test_connect_refused_when_caller_cannot_register(self, client, db_engine):
        with failing_statements(db_engine, "FROM users"):
            with pytest.raises(WebSocketDisconnect) as exc:
                with client.websocket_connect(f"/api/ws/chat?token={ALICE}"):
                    pass
        assert exc.value.code == 1011

    def test_join_failure_sends_generic_error(self, client, db_engine):
        goal_id = _create_goal(client)
        with client.websocket_connect(f"/api/ws/chat?token={ALICE}") as ws:
            with failing_statements(db_engine, "FROM chat_messages"):
                ws.send_json({"type": "join_group", "goal_id": goal_id})
                assert ws.receive_json() == {"type": "error", "message": "Error joining group"}

            ws.send_json({"type": "join_group", "goal_id": goal_id})
            assert ws.receive_json()["type"] == "initial_messages"

    def test_send_failure_sends_generic_error(self, client, db_engine):
        goal_id = _create_goal(client)
        with client.websocket_connect(f"/api/ws/chat?token={ALICE}") as ws:
            ws.send_json({"type": "join_group", "goal_id": goal_id})
            ws.receive_json()

            with failing_statements(db_engine, "INSERT INTO chat_messages"):
                ws.send_json({"type": "send_message", "goal_id": goal_id, "text": "lost"})
                assert ws.receive_json() == {"type": "error", "message": "Failed to send message"}

            ws.send_json({"type": "send_message", "goal_id": goal_id, "text": "kept"})
            assert ws.receive_json()["message"]["message_text"] == "kept"
