# FILE: app.py | version: 2026-10-19.v1
# (JSON API over GameSession; LRU+TTL sessions with per-session locks;
#  AI seats are driven inline after each human action)

from __future__ import annotations

from flask import Flask, request, jsonify
from typing import Dict, Any, Optional
import os
import threading
import time
from collections import OrderedDict

from engine import RULE_NAMES, RULE_DESCRIPTIONS, RULE_TYPES, CINCO_TARGET, IllegalMove
from engine import canonical, parse_tile, tile_str
from session import GameSession

app = Flask(__name__)

SESSION_MAX = int(os.environ.get("DOMINO_SESSION_MAX", "200"))
SESSION_TTL = int(os.environ.get("DOMINO_SESSION_TTL", str(6 * 3600)))

# =============================================================================
# Sessions (LRU + TTL) + per-session locks
# =============================================================================

class SessionStore:
    """Thread-safe session store with TTL+LRU and per-session locks."""

    def __init__(self, max_size: int = 200, ttl_seconds: int = 6 * 3600):
        self.max_size = int(max_size)
        self.ttl_seconds = int(ttl_seconds)
        self._lock = threading.Lock()
        self._data: "OrderedDict[str, GameSession]" = OrderedDict()
        self._ts: Dict[str, float] = {}
        self._locks: Dict[str, threading.Lock] = {}

    def _get_or_create_session_lock(self, key: str) -> threading.Lock:
        lk = self._locks.get(key)
        if lk is None:
            lk = threading.Lock()
            self._locks[key] = lk
        return lk

    def _drop(self, key: str) -> None:
        gs = self._data.pop(key, None)
        self._ts.pop(key, None)
        self._locks.pop(key, None)
        if gs is not None:
            gs.close()

    def lock_for(self, key: str) -> threading.Lock:
        with self._lock:
            return self._get_or_create_session_lock(key)

    def get(self, key: str) -> Optional[GameSession]:
        now = time.time()
        with self._lock:
            gs = self._data.get(key)
            if gs is None:
                return None

            if now - self._ts.get(key, 0.0) > self.ttl_seconds:
                self._drop(key)
                return None

            self._data.move_to_end(key)
            self._ts[key] = now
            self._get_or_create_session_lock(key)
            return gs

    def set(self, key: str, value: GameSession) -> None:
        now = time.time()
        with self._lock:
            old = self._data.get(key)
            if old is not None and old is not value:
                old.close()

            if key not in self._data:
                while len(self._data) >= self.max_size:
                    oldest_key = next(iter(self._data))
                    self._drop(oldest_key)

            self._data[key] = value
            self._data.move_to_end(key)
            self._ts[key] = now
            self._get_or_create_session_lock(key)

    def cleanup(self) -> int:
        now = time.time()
        removed = 0
        with self._lock:
            for k in list(self._data.keys()):
                if now - self._ts.get(k, 0.0) > self.ttl_seconds:
                    self._drop(k)
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


SESSIONS = SessionStore(max_size=SESSION_MAX, ttl_seconds=SESSION_TTL)
SESSION_CLEANUP_INTERVAL = 900
_LAST_SESSION_CLEANUP = time.time()


def cleanup_old_sessions() -> None:
    global _LAST_SESSION_CLEANUP
    now = time.time()
    if now - _LAST_SESSION_CLEANUP < SESSION_CLEANUP_INTERVAL:
        return
    SESSIONS.cleanup()
    _LAST_SESSION_CLEANUP = now


# =============================================================================
# Helpers
# =============================================================================

def ok(payload: Dict[str, Any] | None = None):
    return jsonify({"ok": True, **(payload or {})})


def err(msg: str, code: int = 400):
    return jsonify({"ok": False, "error": msg}), code


def body() -> Dict[str, Any]:
    return (request.get_json(silent=True) or {}) if request.is_json else {}


def sid() -> str:
    return body().get("session_id") or request.args.get("session_id") or "default"


def _seat(data: Dict[str, Any], gs: GameSession) -> int:
    # default: whoever is to act
    return int(data.get("seat", gs.state.current_player))


def _tile_index(gs: GameSession, seat: int, spec: Any) -> int:
    """Resolve a tile written like '3-5' to its index in the seat's hand."""
    st = gs.state
    if seat not in st.seats():
        raise ValueError(f"seat must be 1..{st.player_count}")
    want = canonical(parse_tile(str(spec)))
    for i, t in enumerate(st.hand(seat)):
        if canonical(t) == want:
            return i
    raise IllegalMove(f"Tile {tile_str(want)} is not in seat {seat}'s hand")


def _session_action(fn):
    """Run fn(gs, data) under the session lock and return the new snapshot."""
    data = body()
    session_id = sid()
    gs = SESSIONS.get(session_id)
    if gs is None:
        return err("no active session", 404)

    try:
        with SESSIONS.lock_for(session_id):
            fn(gs, data)
            return ok({"session_id": session_id, "state": gs.snapshot()})
    except IllegalMove as e:
        return err(f"IllegalMove: {e}")
    except RuntimeError:
        # closed by eviction or expiry after the lookup
        return err("no active session", 404)
    except (ValueError, TypeError) as e:
        return err(str(e))


# =============================================================================
# Routes
# =============================================================================

@app.get("/api/rules")
def api_rules():
    return ok({
        "rules": [
            {
                "rule_type": rt,
                "name": RULE_NAMES[rt],
                "description": RULE_DESCRIPTIONS[rt],
                "target_score": CINCO_TARGET if rt == "cinco" else 0,
            }
            for rt in RULE_TYPES
        ]
    })


@app.post("/api/new_game")
def api_new_game():
    """Start a new match (scores reset) and deal round 1."""
    data = body()
    session_id = sid()
    try:
        rule_type = str(data.get("rule_type", "clasico"))
        if rule_type not in RULE_TYPES:
            return err(f"rule_type must be one of {list(RULE_TYPES)}")

        vs_ai = data.get("vs_ai", True)
        if not isinstance(vs_ai, bool):
            return err("vs_ai must be a JSON boolean")

        gs = GameSession(
            rule_type=rule_type,  # type: ignore[arg-type]
            ai_enabled=vs_ai,
            player_count=int(data.get("player_count", 2)),
        )
    except (ValueError, TypeError) as e:
        return err(str(e))

    SESSIONS.set(session_id, gs)
    return ok({"session_id": session_id, "state": gs.snapshot()})


@app.post("/api/new_round")
def api_new_round():
    """Deal a new round in the same match (scores kept)."""
    return _session_action(lambda gs, _d: gs.new_round())


@app.get("/api/state")
def api_state():
    session_id = request.args.get("session_id", "default")
    gs = SESSIONS.get(session_id)
    if gs is None:
        return err("no active session", 404)

    with SESSIONS.lock_for(session_id):
        payload = gs.snapshot()

    return ok({"session_id": session_id, "state": payload})


@app.post("/api/play")
def api_play():
    def _play(gs: GameSession, d: Dict[str, Any]) -> None:
        side = d.get("side", "left")
        if side not in ("left", "right"):
            raise ValueError("side must be left/right")
        seat = _seat(d, gs)
        if "tile_index" in d:
            idx = int(d["tile_index"])
        elif "tile" in d:
            idx = _tile_index(gs, seat, d["tile"])
        else:
            raise ValueError("tile_index or tile required")
        gs.play(seat, idx, side)

    return _session_action(_play)


@app.post("/api/draw")
def api_draw():
    return _session_action(lambda gs, d: gs.draw(_seat(d, gs)))


@app.post("/api/pass")
def api_pass():
    return _session_action(lambda gs, d: gs.pass_turn(_seat(d, gs)))


@app.post("/api/ai_step")
def api_ai_step():
    """Advance a single AI turn (for clients that pace AI seats themselves)."""
    return _session_action(lambda gs, _d: gs.step_ai())


@app.get("/api/round_result")
def api_round_result():
    session_id = request.args.get("session_id", "default")
    gs = SESSIONS.get(session_id)
    if gs is None:
        return err("no active session", 404)

    with SESSIONS.lock_for(session_id):
        st = gs.state
        if not st.round_over:
            return err("round is not over")
        return ok({"session_id": session_id, "result": gs.round_result().to_dict(), "match_over": st.match_over})


@app.before_request
def before_request():
    cleanup_old_sessions()


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=5000, debug=True)
