import pytest

import app as app_mod
from app import SessionStore
from session import GameSession


@pytest.fixture
def client():
    app_mod.app.config["TESTING"] = True
    with app_mod.app.test_client() as c:
        yield c


def _new_game(client, session_id, **kw):
    payload = {"session_id": session_id, "rule_type": "clasico", "player_count": 2, "vs_ai": True}
    payload.update(kw)
    return client.post("/api/new_game", json=payload)


def test_rules_lists_three_variants(client):
    data = client.get("/api/rules").get_json()
    assert data["ok"]
    assert [r["rule_type"] for r in data["rules"]] == ["clasico", "bloqueo", "cinco"]
    assert data["rules"][2]["target_score"] == 100


def test_new_game_and_state(client):
    res = _new_game(client, "t-new", rule_type="cinco", player_count=3)
    data = res.get_json()
    assert res.status_code == 200
    assert data["ok"]
    meta = data["state"]["meta"]
    assert meta["player_count"] == 3
    assert meta["current_player"] == 1
    assert meta["target_score"] == 100
    assert data["state"]["session"]["ai_seats"] == [2, 3]

    again = client.get("/api/state", query_string={"session_id": "t-new"}).get_json()
    assert again["state"]["meta"]["rule_type"] == "cinco"


def test_new_game_validation(client):
    assert _new_game(client, "t-bad", rule_type="texas").status_code == 400
    assert _new_game(client, "t-bad", player_count=6).status_code == 400


def test_unknown_session_is_404(client):
    assert client.get("/api/state", query_string={"session_id": "nope"}).status_code == 404
    assert client.post("/api/play", json={"session_id": "nope", "tile_index": 0}).status_code == 404


def test_play_drives_ai_back_to_human(client):
    _new_game(client, "t-play")
    res = client.post("/api/play", json={"session_id": "t-play", "seat": 1, "tile_index": 0, "side": "left"})
    data = res.get_json()
    assert res.status_code == 200, data
    meta = data["state"]["meta"]
    assert meta["round_over"] or meta["current_player"] == 1
    assert len(data["state"]["board"]) >= 1
    assert data["state"]["events"][1]["type"] == "play"


def test_illegal_moves_are_rejected(client):
    _new_game(client, "t-ill")
    res = client.post("/api/play", json={"session_id": "t-ill", "seat": 2, "tile_index": 0, "side": "left"})
    assert res.status_code == 400
    assert "IllegalMove" in res.get_json()["error"]

    res = client.post("/api/play", json={"session_id": "t-ill", "seat": 1, "tile_index": 0, "side": "right"})
    assert res.status_code == 400

    res = client.post("/api/play", json={"session_id": "t-ill", "seat": 1, "tile_index": 0, "side": "up"})
    assert res.status_code == 400

    res = client.post("/api/pass", json={"session_id": "t-ill", "seat": 1})
    assert res.status_code == 400

    st = client.get("/api/state", query_string={"session_id": "t-ill"}).get_json()["state"]
    assert st["board"] == []
    assert st["meta"]["current_player"] == 1


def test_local_mode_passes_turn_to_seat_two(client):
    _new_game(client, "t-local", vs_ai=False, rule_type="bloqueo")
    data = client.post("/api/play", json={"session_id": "t-local", "tile_index": 0, "side": "left"}).get_json()
    assert data["state"]["meta"]["current_player"] == 2
    assert data["state"]["session"]["ai_seats"] == []


def test_play_accepts_tile_written_out(client):
    _new_game(client, "t-tile", vs_ai=False, rule_type="bloqueo")
    st = client.get("/api/state", query_string={"session_id": "t-tile"}).get_json()["state"]
    a, b = st["hands"]["1"][2]
    other = st["hands"]["2"][0]

    res = client.post("/api/play", json={"session_id": "t-tile", "tile": f"{other[0]}-{other[1]}"})
    assert res.status_code == 400
    assert "IllegalMove" in res.get_json()["error"]
    assert client.post("/api/play", json={"session_id": "t-tile", "tile": "9-9"}).status_code == 400
    assert client.post("/api/play", json={"session_id": "t-tile"}).status_code == 400

    data = client.post("/api/play", json={"session_id": "t-tile", "tile": f"{b}|{a}", "side": "left"}).get_json()
    assert data["ok"]
    assert sorted(data["state"]["board"][0]) == sorted([a, b])
    assert len(data["state"]["hands"]["1"]) == 6


def test_vs_ai_must_be_boolean(client):
    res = _new_game(client, "t-flag", vs_ai="false")
    assert res.status_code == 400
    assert client.get("/api/state", query_string={"session_id": "t-flag"}).status_code == 404

    data = _new_game(client, "t-flag", vs_ai=False).get_json()
    assert data["state"]["meta"]["vs_ai"] is False


def test_closed_session_reports_404(client):
    _new_game(client, "t-closed")
    app_mod.SESSIONS.get("t-closed").close()
    res = client.post("/api/play", json={"session_id": "t-closed", "tile_index": 0, "side": "left"})
    assert res.status_code == 404
    assert res.get_json()["error"] == "no active session"


def test_round_result_requires_finished_round(client):
    _new_game(client, "t-res")
    assert client.get("/api/round_result", query_string={"session_id": "t-res"}).status_code == 400


def test_new_round_keeps_scores(client):
    _new_game(client, "t-round", rule_type="cinco")
    data = client.post("/api/new_round", json={"session_id": "t-round"}).get_json()
    assert data["ok"]
    assert data["state"]["meta"]["round_index"] == 2
    assert data["state"]["board"] == []


def test_session_store_evicts_oldest_and_closes_it():
    store = SessionStore(max_size=2, ttl_seconds=3600)
    a = GameSession("clasico", True, 2, auto_ai="off")
    b = GameSession("clasico", True, 2, auto_ai="off")
    c = GameSession("clasico", True, 2, auto_ai="off")
    store.set("a", a)
    store.set("b", b)
    store.set("c", c)
    assert store.get("a") is None
    assert store.get("b") is b
    assert len(store) == 2
    with pytest.raises(RuntimeError):
        a.play(1, 0, "left")


def test_session_store_expires_by_ttl():
    store = SessionStore(max_size=5, ttl_seconds=0)
    store.set("x", GameSession("bloqueo", False, 2, auto_ai="off"))
    store._ts["x"] -= 10
    assert store.cleanup() == 1
    assert store.get("x") is None
