# FILE: session.py | version: 2026-10-19.v1
# (session controller: human actions + AI seats through the same engine calls;
#  AI pacing via cancellable timer guarded by a generation token)

from __future__ import annotations

import os
import random
import threading
from typing import Any, Callable, Dict, Iterable, Literal, Optional, Tuple

import engine
from engine import GameState, IllegalMove, RoundResult, RuleType, Side
from ai import choose_move, describe_move

AutoAI = Literal["sync", "timer", "off"]

AI_DELAY_MIN_MS = int(os.environ.get("DOMINO_AI_DELAY_MIN_MS", "800"))
AI_DELAY_MAX_MS = int(os.environ.get("DOMINO_AI_DELAY_MAX_MS", "1400"))
VERBOSE = os.environ.get("DOMINO_VERBOSE", "0").strip() == "1"


def log(msg: str) -> None:
    if VERBOSE:
        print(f"[session] {msg}", flush=True)


class GameSession:
    """
    Owns the current GameState for one table.

    Seat 1 is the human and seats 2..N are computer-controlled when
    ai_enabled; ai_seats overrides that (the evaluator seats AI everywhere).
    With no AI seats every seat is driven by the caller (pass-the-device).
    """

    def __init__(
        self,
        rule_type: RuleType = "clasico",
        ai_enabled: bool = True,
        player_count: int = 2,
        rng: Optional[random.Random] = None,
        ai_seats: Optional[Iterable[int]] = None,
        auto_ai: AutoAI = "sync",
        on_change: Optional[Callable[[GameState], None]] = None,
        delay_ms: Optional[Tuple[int, int]] = None,
        state: Optional[GameState] = None,
    ):
        if auto_ai not in ("sync", "timer", "off"):
            raise ValueError(f"auto_ai must be sync/timer/off, got {auto_ai}")

        if ai_seats is None:
            ai_seats = range(2, int(player_count) + 1) if ai_enabled else ()
        self.ai_seats = frozenset(int(s) for s in ai_seats)

        self.rng = rng
        self.auto_ai: AutoAI = auto_ai
        self.on_change = on_change
        self.delay_ms = delay_ms or (AI_DELAY_MIN_MS, AI_DELAY_MAX_MS)

        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._closed = False
        self._delay_rng = random.Random()

        if state is None:
            state = engine.create_game(rule_type, bool(self.ai_seats), player_count, rng)
        self._state = state
        bad = [s for s in self.ai_seats if s not in self._state.seats()]
        if bad:
            raise ValueError(f"ai_seats out of range: {sorted(bad)}")

    @classmethod
    def from_state(cls, state: GameState, ai_seats: Iterable[int] = (), **kw: Any) -> "GameSession":
        """Wrap an existing state (mid-round setups, replays)."""
        return cls(state.rule_type, state.vs_ai, state.player_count, ai_seats=ai_seats, state=state, **kw)

    # ---- state ----

    @property
    def state(self) -> GameState:
        with self._lock:
            return self._state

    @property
    def ai_pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def is_ai_seat(self, seat: int) -> bool:
        return int(seat) in self.ai_seats

    def ai_to_act(self) -> bool:
        st = self.state
        return (not st.round_over) and self.is_ai_seat(st.current_player)

    def round_result(self) -> RoundResult:
        return engine.get_round_winner(self.state)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            d = self._state.to_dict()
            d["session"] = {
                "ai_seats": sorted(self.ai_seats),
                "ai_pending": self._timer is not None,
                "auto_ai": self.auto_ai,
                "round_result": engine.get_round_winner(self._state).to_dict() if self._state.round_over else None,
                "match_winner": engine.match_winner(self._state),
            }
            return d

    def _commit(self, st: GameState) -> None:
        self._state = st
        if self.on_change is not None:
            self.on_change(st)

    def _assert_open(self) -> None:
        if self._closed:
            raise RuntimeError("Session is closed")

    # ---- human actions ----

    def play(self, seat: int, tile_index: int, side: Side) -> GameState:
        return self._human(seat, lambda st: engine.apply_placement(st, seat, tile_index, side), f"play #{tile_index} {side}")

    def draw(self, seat: int) -> GameState:
        return self._human(seat, lambda st: engine.apply_draw(st, seat), "draw")

    def pass_turn(self, seat: int) -> GameState:
        return self._human(seat, lambda st: engine.apply_pass(st, seat), "pass")

    def _human(self, seat: int, action: Callable[[GameState], GameState], label: str) -> GameState:
        with self._lock:
            self._assert_open()
            try:
                if self.is_ai_seat(seat):
                    raise IllegalMove(f"Seat {seat} is computer-controlled")
                st = action(self._state)
            except IllegalMove as e:
                log(f"rejected seat={seat} {label}: {e}")
                raise
            log(f"seat={seat} {label} -> current={st.current_player} passes={st.passes} round_over={st.round_over}")
            self._commit(st)
        self._drive_ai()
        return self.state

    def _drive_ai(self) -> None:
        if self.auto_ai == "sync":
            self.run_ai_turns()
        elif self.auto_ai == "timer":
            self.schedule_ai_turn()

    # ---- AI seats ----

    def step_ai(self) -> GameState:
        """One full AI turn: draw sequence if needed, then play or pass."""
        with self._lock:
            self._assert_open()
            st = self._state
            if st.round_over or not self.is_ai_seat(st.current_player):
                return st

            seat = st.current_player
            while st.current_player == seat and not st.round_over:
                mv = choose_move(st, seat)
                log(describe_move(st, mv, seat))
                if mv.kind == "play":
                    st = engine.apply_placement(st, seat, mv.tile_index, mv.side)  # type: ignore[arg-type]
                elif mv.kind == "draw":
                    st = engine.apply_draw(st, seat)
                else:
                    st = engine.apply_pass(st, seat)

            self._commit(st)
            return st

    def run_ai_turns(self) -> GameState:
        while self.ai_to_act():
            self.step_ai()
        return self.state

    def schedule_ai_turn(self) -> bool:
        """Arm a delayed AI turn. Returns True when a turn is pending."""
        with self._lock:
            if self._closed or not self.ai_to_act():
                return False
            if self._timer is not None:
                return True
            lo, hi = self.delay_ms
            delay = self._delay_rng.uniform(float(lo), float(max(lo, hi))) / 1000.0
            token = self._generation
            t = threading.Timer(delay, self._fire, args=(token,))
            t.daemon = True
            self._timer = t
            t.start()
            return True

    def _fire(self, token: int) -> None:
        with self._lock:
            if token != self._generation or self._closed:
                return
            self._timer = None
            self.step_ai()
            self.schedule_ai_turn()

    def cancel_pending(self) -> None:
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    # ---- lifecycle ----

    def new_round(self) -> GameState:
        with self._lock:
            self._assert_open()
            self.cancel_pending()
            self._commit(engine.start_new_round(self._state, self.rng))
            log(f"round {self._state.round_index} dealt")
        self._drive_ai()
        return self.state

    def restart(self) -> GameState:
        with self._lock:
            self._assert_open()
            self.cancel_pending()
            st = self._state
            self._commit(engine.create_game(st.rule_type, st.vs_ai, st.player_count, self.rng))
            log("match restarted")
        self._drive_ai()
        return self.state

    def close(self) -> None:
        with self._lock:
            self.cancel_pending()
            self._closed = True
