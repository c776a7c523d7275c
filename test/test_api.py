"""
Tests for the HTTP and WebSocket surface, using FastAPI's TestClient
with the database and match service pointed at a temporary SQLite file.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from backend.api.database import get_db, init_db, make_engine, make_session_factory
from backend.api.feed import ChangeFeed
from backend.api.main import app, get_match_service
from backend.api.service import MatchService


@pytest.fixture
def db_engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'api.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def service(db_engine, catalog, decks):
    return MatchService(make_session_factory(db_engine), catalog, decks, ChangeFeed())


@pytest.fixture
def client(service):
    factory = service.session_factory

    def override_get_db():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_match_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, name):
    resp = client.post("/auth/register", json={
        "email": f"{name}@example.com", "username": name, "password": f"{name}-secret",
    })
    assert resp.status_code == 200, resp.text
    body = resp.json()
    return {"Authorization": f"Bearer {body['access_token']}"}, body["player"]["id"], body["access_token"]


@pytest.fixture
def duel(client):
    """An active match between alice (to move) and bob."""
    alice_headers, alice_id, alice_token = register(client, "alice")
    bob_headers, bob_id, _ = register(client, "bob")
    match_id = client.post("/matches", json={"deck_id": "grass_starter"}, headers=alice_headers).json()["match_id"]
    resp = client.post(f"/matches/{match_id}/join", json={"deck_id": "fire_starter"}, headers=bob_headers)
    assert resp.status_code == 200, resp.text
    return {
        "match_id": match_id,
        "alice": alice_headers,
        "bob": bob_headers,
        "alice_id": alice_id,
        "bob_id": bob_id,
        "alice_token": alice_token,
    }


def first_basic(client, duel, catalog):
    view = client.get(f"/matches/{duel['match_id']}", headers=duel["alice"]).json()
    hand = view["state"]["players"][duel["alice_id"]]["hand"]
    return next(c["instance_id"] for c in hand if catalog[c["base_id"]].is_basic_pokemon)


class TestAuth:
    def test_register_login_me(self, client):
        headers, player_id, _ = register(client, "misty")
        me = client.get("/auth/me", headers=headers).json()
        assert me == {"id": player_id, "email": "misty@example.com", "username": "misty"}

        resp = client.post("/auth/login", json={"email": "misty@example.com", "password": "misty-secret"})
        assert resp.status_code == 200
        assert resp.json()["player"]["id"] == player_id

    def test_bad_credentials(self, client):
        register(client, "brock")
        resp = client.post("/auth/login", json={"email": "brock@example.com", "password": "nope"})
        assert resp.status_code == 401

    def test_duplicate_and_invalid_registration(self, client):
        register(client, "gary")
        dup = client.post("/auth/register", json={"email": "gary@example.com", "username": "gary2", "password": "x"})
        assert dup.status_code == 400
        bad = client.post("/auth/register", json={"email": "new@example.com", "username": "bad name", "password": "x"})
        assert bad.status_code == 400

    def test_actions_need_a_token(self, client):
        assert client.get("/auth/me").status_code == 401
        assert client.post("/matches", json={}).status_code == 401


class TestCatalog:
    def test_cards_and_decks(self, client):
        cards = client.get("/cards").json()["cards"]
        assert cards["A1-096"]["rarity"] == "double_rare"
        assert cards["A1-036"]["moves"][1]["recoil"] == 30
        decks = {d["id"]: d for d in client.get("/decks").json()["decks"]}
        assert decks["grass_starter"]["size"] == 20


class TestMatches:
    def test_lobby(self, client):
        headers, _, _ = register(client, "red")
        match_id = client.post("/matches", json={}, headers=headers).json()["match_id"]
        assert [m["match_id"] for m in client.get("/matches").json()["matches"]] == [match_id]
        view = client.get(f"/matches/{match_id}").json()
        assert view["status"] == "waiting"
        assert view["state"] is None

    def test_views_are_masked_per_player(self, client, duel):
        alice_view = client.get(f"/matches/{duel['match_id']}", headers=duel["alice"]).json()
        bob_view = client.get(f"/matches/{duel['match_id']}", headers=duel["bob"]).json()
        spectator = client.get(f"/matches/{duel['match_id']}").json()

        assert alice_view["can_act"] is True
        assert bob_view["can_act"] is False
        assert "hand" in alice_view["state"]["players"][duel["alice_id"]]
        assert "hand" not in alice_view["state"]["players"][duel["bob_id"]]
        assert bob_view["state"]["players"][duel["alice_id"]]["hand_count"] == 6
        assert all("hand" not in p for p in spectator["state"]["players"].values())
        assert all("deck" not in p for p in spectator["state"]["players"].values())

    def test_play_and_log(self, client, duel, catalog):
        card_id = first_basic(client, duel, catalog)
        resp = client.post(
            f"/matches/{duel['match_id']}/actions",
            json={"action_type": "play_basic", "payload": {"card_id": card_id}},
            headers=duel["alice"],
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        assert body["state"]["players"][duel["alice_id"]]["active_pokemon"]["instance_id"] == card_id
        assert "hand" not in body["state"]["players"][duel["bob_id"]]
        assert "card_played" in [e["type"] for e in body["events"]]

        log = client.get(f"/matches/{duel['match_id']}/log").json()["entries"]
        assert [(e["player_id"], e["action_type"]) for e in log] == [(duel["alice_id"], "play_basic")]

    def test_available_actions(self, client, duel):
        mine = client.get(f"/matches/{duel['match_id']}/available-actions", headers=duel["alice"]).json()
        theirs = client.get(f"/matches/{duel['match_id']}/available-actions", headers=duel["bob"]).json()
        assert mine["can_act"] is True
        assert "play_basic" in {a["type"] for a in mine["actions"]}
        assert theirs["actions"] == []

    @pytest.mark.parametrize("who, body, status, code", [
        ("bob", {"action_type": "end_turn"}, 403, "wrong_turn"),
        ("alice", {"action_type": "attack", "payload": {"move_index": 0}}, 400, "illegal_action"),
        ("alice", {"action_type": "fly_away"}, 400, "illegal_action"),
    ])
    def test_rejections(self, client, duel, who, body, status, code):
        resp = client.post(f"/matches/{duel['match_id']}/actions", json=body, headers=duel[who])
        assert resp.status_code == status
        assert resp.json()["error_code"] == code
        assert resp.json()["detail"]

    def test_unknown_match(self, client, duel):
        resp = client.post("/matches/nope/actions", json={"action_type": "end_turn"}, headers=duel["alice"])
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "not_found"

    def test_surrender_then_not_active(self, client, duel):
        resp = client.post(f"/matches/{duel['match_id']}/surrender", headers=duel["bob"])
        assert resp.status_code == 200
        assert resp.json()["state"]["winner_id"] == duel["alice_id"]

        view = client.get(f"/matches/{duel['match_id']}", headers=duel["alice"]).json()
        assert view["status"] == "finished"
        assert view["can_act"] is False

        resp = client.post(f"/matches/{duel['match_id']}/actions", json={"action_type": "end_turn"},
                           headers=duel["alice"])
        assert resp.status_code == 409
        assert resp.json()["error_code"] == "not_active"


class TestStream:
    def test_snapshot_on_connect_and_on_change(self, client, duel):
        url = f"/matches/{duel['match_id']}/stream?token={duel['alice_token']}"
        with client.websocket_connect(url) as ws:
            first = ws.receive_json()
            assert first["type"] == "state_update"
            assert first["payload"]["can_act"] is True

            ws.send_text('{"type": "ping"}')
            assert ws.receive_json() == {"type": "pong"}

            client.post(f"/matches/{duel['match_id']}/actions", json={"action_type": "end_turn"},
                        headers=duel["alice"])
            update = ws.receive_json()
            assert update["type"] == "state_update"
            assert update["payload"]["version"] == 2
            assert update["payload"]["can_act"] is False
            state = update["payload"]["state"]
            assert state["current_player_id"] == duel["bob_id"]
            assert "hand" not in state["players"][duel["bob_id"]]

    def test_idle_stream_holds_no_connection(self, client, duel, db_engine):
        url = f"/matches/{duel['match_id']}/stream?token={duel['alice_token']}"
        with client.websocket_connect(url) as ws:
            ws.receive_json()
            ws.send_text('{"type": "ping"}')
            assert ws.receive_json() == {"type": "pong"}
            assert db_engine.pool.checkedout() == 0

    def test_failed_push_closes_stream(self, client, duel, service):
        url = f"/matches/{duel['match_id']}/stream?token={duel['alice_token']}"
        with client.websocket_connect(url) as ws:
            ws.receive_json()
            ws.send_text('{"type": "ping"}')
            assert ws.receive_json() == {"type": "pong"}
            # a snapshot without game_state cannot be rendered
            service.feed.publish(duel["match_id"], {"match_id": duel["match_id"]})
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
            assert exc.value.code == 1011

    def test_unknown_match_stream(self, client):
        with client.websocket_connect("/matches/nope/stream") as ws:
            msg = ws.receive_json()
            assert msg["type"] == "error"
            assert msg["payload"]["error_code"] == "not_found"
