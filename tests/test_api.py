"""
Tests for the HTTP and WebSocket surface.
"""

import pytest
from fastapi.testclient import TestClient

from database import Settings
from main import create_app


@pytest.fixture
def client():
    app = create_app(settings=Settings(storage_backend="memory", log_level="WARNING"))
    with TestClient(app) as client:
        yield client


def _create_session(client, **body) -> str:
    response = client.post("/api/sessions", json=body)
    assert response.status_code == 200
    return response.json()["sessionId"]


def _join(ws, session_id, nickname):
    ws.send_json({"event": "joinSession", "data": {"sessionId": session_id, "nickname": nickname}})
    joined = ws.receive_json()
    ack = ws.receive_json()
    assert joined["event"] == "playerJoined"
    assert ack["event"] == "sessionJoined"
    return ack["data"]["player"]


class TestHttp:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/").json()["status"] == "ok"

    def test_create_session_without_body(self, client):
        response = client.post("/api/sessions")

        assert response.status_code == 200
        data = response.json()
        assert data["sessionId"] == data["session"]["id"]
        assert data["session"]["status"] == "waiting"
        assert data["session"]["players"] == []
        assert data["player"] is None

    def test_create_session_with_creator(self, client):
        response = client.post("/api/sessions", json={"name": "Home game", "creatorNickname": "Host"})

        data = response.json()
        assert data["session"]["name"] == "Home game"
        assert data["player"]["nickname"] == "Host"
        assert [p["id"] for p in data["session"]["players"]] == [data["player"]["id"]]

    def test_get_session(self, client):
        session_id = _create_session(client, name="Lookup")

        response = client.get(f"/api/sessions/{session_id}")

        assert response.status_code == 200
        assert response.json()["name"] == "Lookup"
        assert "createdAt" in response.json()

    def test_get_missing_session(self, client):
        assert client.get("/api/sessions/NOPE00").status_code == 404

    def test_empty_transaction_history(self, client):
        session_id = _create_session(client)

        response = client.get(f"/api/transactions/{session_id}/nobody")

        assert response.status_code == 200
        assert response.json() == []

    def test_standings_for_missing_session(self, client):
        assert client.get("/api/sessions/NOPE00/standings").status_code == 404

    def test_reconcile_missing_session(self, client):
        assert client.post("/api/sessions/NOPE00/reconcile").status_code == 404


class TestWebSocket:

    def test_full_game_over_websocket(self, client):
        session_id = _create_session(client)

        with client.websocket_connect("/ws") as alice_ws, client.websocket_connect("/ws") as bob_ws:
            alice = _join(alice_ws, session_id, "Alice")
            bob = _join(bob_ws, session_id, "Bob")

            seen_by_alice = alice_ws.receive_json()
            assert seen_by_alice["event"] == "playerJoined"
            assert [p["nickname"] for p in seen_by_alice["data"]["roster"]] == ["Alice", "Bob"]

            bob_ws.send_json({"event": "buyIn", "data": {"sessionId": session_id, "playerId": bob["id"], "amount": 100}})
            for ws in (alice_ws, bob_ws):
                message = ws.receive_json()
                assert message["event"] == "buyIn"
                assert message["data"]["playerId"] == bob["id"]
                assert message["data"]["player"]["buyIn"] == 100

            alice_ws.send_json({"event": "recordResult", "data": {
                "sessionId": session_id, "playerId": alice["id"], "kind": "loss", "amount": 20,
            }})
            for ws in (alice_ws, bob_ws):
                message = ws.receive_json()
                assert message["event"] == "recordResult"
                assert message["data"]["kind"] == "loss"
                assert message["data"]["note"] == "Lost 20"

            alice_ws.send_json({"event": "finalize", "data": {
                "sessionId": session_id, "finalChipsByPlayer": {bob["id"]: 160},
            }})
            for ws in (alice_ws, bob_ws):
                message = ws.receive_json()
                assert message["event"] == "sessionEnded"
                summary = {row["nickname"]: row for row in message["data"]["summary"]}
                assert summary["Bob"]["profit"] == 60
                assert summary["Alice"]["finalChips"] is None
                assert summary["Alice"]["profit"] is None

        session = client.get(f"/api/sessions/{session_id}").json()
        assert session["status"] == "ended"
        assert session["endedAt"] is not None

        history = client.get(f"/api/transactions/{session_id}/{alice['id']}").json()
        assert [(tx["kind"], tx["amount"]) for tx in history] == [("loss", 20)]

        standings = client.get(f"/api/sessions/{session_id}/standings").json()
        assert {s["nickname"]: s["net"] for s in standings} == {"Alice": -20, "Bob": 0}

    def test_errors_go_only_to_sender(self, client):
        session_id = _create_session(client)

        with client.websocket_connect("/ws") as alice_ws, client.websocket_connect("/ws") as bob_ws:
            alice = _join(alice_ws, session_id, "Alice")
            _join(bob_ws, session_id, "Bob")
            alice_ws.receive_json()  # Bob joined

            bob_ws.send_json({"event": "buyIn", "data": {"sessionId": session_id, "playerId": alice["id"], "amount": -5}})
            error = bob_ws.receive_json()
            assert error["event"] == "error"
            assert "negative" in error["data"]["message"]

            # Alice's next message is the valid buy-in, not the rejected one
            bob_ws.send_json({"event": "buyIn", "data": {"sessionId": session_id, "playerId": alice["id"], "amount": 5}})
            assert alice_ws.receive_json()["data"]["amount"] == 5
            assert bob_ws.receive_json()["data"]["amount"] == 5

    def test_join_missing_session(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "joinSession", "data": {"sessionId": "GHOST1"}})
            message = ws.receive_json()

        assert message["event"] == "error"
        assert "GHOST1" in message["data"]["message"]

    def test_second_finalize_is_rejected(self, client):
        session_id = _create_session(client)

        with client.websocket_connect("/ws") as ws:
            _join(ws, session_id, "Alice")
            ws.send_json({"event": "finalize", "data": {"sessionId": session_id, "finalChipsByPlayer": {}}})
            assert ws.receive_json()["event"] == "sessionEnded"

            ws.send_json({"event": "finalize", "data": {"sessionId": session_id, "finalChipsByPlayer": {}}})
            message = ws.receive_json()

        assert message["event"] == "error"
        assert "already ended" in message["data"]["message"]

    def test_non_finite_amount_is_rejected(self, client):
        session_id = _create_session(client)

        with client.websocket_connect("/ws") as ws:
            alice = _join(ws, session_id, "Alice")
            ws.send_text(
                '{"event": "buyIn", "data": {"sessionId": "%s", "playerId": "%s", "amount": Infinity}}'
                % (session_id, alice["id"])
            )
            message = ws.receive_json()

        assert message["event"] == "error"
        assert client.get(f"/api/transactions/{session_id}/{alice['id']}").json() == []

    def test_malformed_frames(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["event"] == "error"

            ws.send_json({"event": "dealCards", "data": {}})
            unknown = ws.receive_json()
            assert unknown["event"] == "error"
            assert "Unknown event" in unknown["data"]["message"]

            ws.send_json({"event": "buyIn", "data": {"amount": 10}})
            invalid = ws.receive_json()
            assert invalid["event"] == "error"
            assert invalid["data"]["message"].startswith("Invalid buyIn payload")

    def test_leave_session_stops_broadcasts(self, client):
        session_id = _create_session(client)

        with client.websocket_connect("/ws") as alice_ws, client.websocket_connect("/ws") as bob_ws:
            alice = _join(alice_ws, session_id, "Alice")
            _join(bob_ws, session_id, "Bob")
            alice_ws.receive_json()  # Bob joined

            bob_ws.send_json({"event": "leaveSession", "data": {}})
            # frames are handled in order, so once this error arrives the leave is done
            bob_ws.send_json({"event": "ping", "data": {}})
            assert bob_ws.receive_json()["event"] == "error"

            alice_ws.send_json({"event": "buyIn", "data": {"sessionId": session_id, "playerId": alice["id"], "amount": 10}})
            assert alice_ws.receive_json()["event"] == "buyIn"

            # had Bob still been subscribed, the buy-in would arrive before this error
            bob_ws.send_json({"event": "ping", "data": {}})
            assert bob_ws.receive_json()["event"] == "error"

        session = client.get(f"/api/sessions/{session_id}").json()
        assert [p["nickname"] for p in session["players"]] == ["Alice", "Bob"]

    @pytest.mark.parametrize("amount", [True, "25"])
    def test_amount_must_be_a_json_number(self, client, amount):
        session_id = _create_session(client)

        with client.websocket_connect("/ws") as ws:
            alice = _join(ws, session_id, "Alice")
            ws.send_json({"event": "buyIn", "data": {"sessionId": session_id, "playerId": alice["id"], "amount": amount}})
            buy_in = ws.receive_json()
            ws.send_json({"event": "recordResult", "data": {
                "sessionId": session_id, "playerId": alice["id"], "kind": "win", "amount": amount,
            }})
            result = ws.receive_json()
            ws.send_json({"event": "finalize", "data": {
                "sessionId": session_id, "finalChipsByPlayer": {alice["id"]: amount},
            }})
            finalize = ws.receive_json()

        assert [m["event"] for m in (buy_in, result, finalize)] == ["error", "error", "error"]
        assert "must be a number" in buy_in["data"]["message"]
        assert client.get(f"/api/transactions/{session_id}/{alice['id']}").json() == []
        session = client.get(f"/api/sessions/{session_id}").json()
        assert session["status"] == "waiting"
        assert session["players"][0]["buyIn"] == 0
