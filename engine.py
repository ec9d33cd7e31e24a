# FILE: engine.py | version: 2026-10-19.v1
# (double-six line engine: clasico/bloqueo/cinco variants, 2-4 seats,
#  immutable GameState, draw-until-playable, round/match resolution)

from __future__ import annotations

import os
import random
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Literal, NamedTuple, Optional, Sequence, Tuple

Tile = Tuple[int, int]
Board = Tuple[Tile, ...]
Hand = Tuple[Tile, ...]
Side = Literal["left", "right"]
RuleType = Literal["clasico", "bloqueo", "cinco"]
EventType = Literal["round_start", "play", "draw", "pass", "round_end"]

SIDES: Tuple[Side, ...] = ("left", "right")
RULE_TYPES: Tuple[RuleType, ...] = ("clasico", "bloqueo", "cinco")

RULE_NAMES: Dict[str, str] = {
    "clasico": "Clasico (Robar)",
    "bloqueo": "Bloqueo",
    "cinco": "All Fives",
}

RULE_DESCRIPTIONS: Dict[str, str] = {
    "clasico": "Draw from the pool when you cannot play. Lowest pips wins a blocked round.",
    "bloqueo": "No drawing. Blocked seats pass. Lowest pips wins a blocked round.",
    "cinco": "Open ends summing to a multiple of 5 score immediately. First seat to the target wins.",
}

HAND_SIZE = 7
MIN_PLAYERS = 2
MAX_PLAYERS = 4
CINCO_TARGET = int(os.environ.get("DOMINO_CINCO_TARGET", "100"))


class IllegalMove(ValueError):
    """Caller attempted an action outside the rules (wrong seat, bad index/side, disallowed draw/pass)."""


def now_ts() -> str:
    return datetime.now().isoformat(timespec="seconds")


def round_to_nearest_5(x: int) -> int:
    # Nearest-5: round(x/5)*5; integer inputs never land on .5
    return int(round(float(int(x)) / 5.0) * 5)


# =============================================================================
# Tiles
# =============================================================================

def parse_tile(s: str) -> Tile:
    """Parse '3-5', '3|5', '[3,5]' or '35'. Orientation is kept as written."""
    s = (s or "").strip().replace("[", "").replace("]", "").replace(" ", "")
    s = s.replace("|", "-").replace(",", "-")
    if "-" in s:
        a, b = s.split("-", 1)
        return _checked_tile(int(a), int(b))
    if len(s) == 2 and s.isdigit():
        return _checked_tile(int(s[0]), int(s[1]))
    raise ValueError(f"Cannot parse tile: {s}")


def _checked_tile(a: int, b: int) -> Tile:
    if not (0 <= a <= 6 and 0 <= b <= 6):
        raise ValueError(f"Tile out of range: {a}-{b}")
    return (a, b)


def tile_str(t: Tile) -> str:
    return f"{t[0]}-{t[1]}"


def tile_has(t: Tile, v: int) -> bool:
    return t[0] == v or t[1] == v


def tile_pip_count(t: Tile) -> int:
    return t[0] + t[1]


def canonical(t: Tile) -> Tile:
    return (t[0], t[1]) if t[0] <= t[1] else (t[1], t[0])


def hand_pips(hand: Sequence[Tile]) -> int:
    return int(sum(tile_pip_count(t) for t in hand))


# =============================================================================
# Deck builder
# =============================================================================

def build_canonical_deck() -> List[Tile]:
    out: List[Tile] = []
    for a in range(7):
        for b in range(a, 7):
            out.append((a, b))
    return out


ALL_TILES: List[Tile] = build_canonical_deck()


def shuffle(tiles: Sequence[Tile], rng: Optional[random.Random] = None) -> List[Tile]:
    """
    Fisher-Yates from the last index down to 1, each slot swapped with a
    uniformly chosen index in [0, i]. Returns a new list.
    """
    r = rng if rng is not None else random
    out = list(tiles)
    for i in range(len(out) - 1, 0, -1):
        j = r.randint(0, i)
        out[i], out[j] = out[j], out[i]
    return out


def deal(deck: Sequence[Tile], player_count: int) -> Tuple[Tuple[Hand, ...], Tuple[Tile, ...]]:
    n = _checked_player_count(player_count)
    if n * HAND_SIZE > len(deck):
        raise ValueError(f"Deck of {len(deck)} cannot seat {n} players")
    hands = tuple(tuple(deck[(p - 1) * HAND_SIZE: p * HAND_SIZE]) for p in range(1, n + 1))
    return hands, tuple(deck[n * HAND_SIZE:])


def _checked_player_count(player_count: int) -> int:
    n = int(player_count)
    if not (MIN_PLAYERS <= n <= MAX_PLAYERS):
        raise ValueError(f"player_count must be in [{MIN_PLAYERS}..{MAX_PLAYERS}], got {player_count}")
    return n


# =============================================================================
# Board topology / legality
# =============================================================================

def open_ends(board: Board) -> Optional[Tuple[int, int]]:
    if not board:
        return None
    return (board[0][0], board[-1][1])


def pip_sum(board: Board) -> int:
    """
    Scoring sum of the ends. A lone tile exposes both halves, so a single
    opening double counts twice its value.
    """
    if not board:
        return 0
    if len(board) == 1:
        return board[0][0] + board[0][1]
    return board[0][0] + board[-1][1]


def cinco_points(board: Board) -> int:
    s = pip_sum(board)
    return s if (s > 0 and s % 5 == 0) else 0


def legal_sides(tile: Tile, ends: Optional[Tuple[int, int]]) -> Tuple[Side, ...]:
    if ends is None:
        return ("left",)
    out: List[Side] = []
    if tile_has(tile, ends[0]):
        out.append("left")
    if tile_has(tile, ends[1]):
        out.append("right")
    return tuple(out)


def legal_placements(hand: Sequence[Tile], board: Board) -> List[Tuple[int, Side]]:
    """Every (hand_index, side) in hand order, left before right."""
    ends = open_ends(board)
    out: List[Tuple[int, Side]] = []
    for idx, t in enumerate(hand):
        for side in legal_sides(t, ends):
            out.append((idx, side))
    return out


def place_tile(board: Board, tile: Tile, side: Side) -> Board:
    if not board:
        return ((tile[0], tile[1]),)

    if side == "left":
        left = board[0][0]
        if tile[1] == left:
            return ((tile[0], tile[1]),) + board
        if tile[0] == left:
            return ((tile[1], tile[0]),) + board
        raise IllegalMove(f"Illegal: {tile_str(tile)} cannot go on left({left})")

    if side == "right":
        right = board[-1][1]
        if tile[0] == right:
            return board + ((tile[0], tile[1]),)
        if tile[1] == right:
            return board + ((tile[1], tile[0]),)
        raise IllegalMove(f"Illegal: {tile_str(tile)} cannot go on right({right})")

    raise IllegalMove(f"Unknown side: {side}")


# =============================================================================
# Events / state
# =============================================================================

@dataclass(frozen=True)
class GameEvent:
    type: EventType
    ply: int = 0
    ts: str = field(default_factory=now_ts)
    seat: Optional[int] = None
    tile: Optional[str] = None
    side: Optional[Side] = None
    draw_count: int = 0
    open_ends: Tuple[int, ...] = ()
    score_gained: int = 0
    winner: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "ply": self.ply,
            "ts": self.ts,
            "seat": self.seat,
            "tile": self.tile,
            "side": self.side,
            "draw_count": self.draw_count,
            "open_ends": list(self.open_ends),
            "score_gained": self.score_gained,
            "winner": self.winner,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GameEvent":
        return cls(
            type=d["type"],
            ply=int(d.get("ply", 0)),
            ts=d.get("ts", now_ts()),
            seat=d.get("seat"),
            tile=d.get("tile"),
            side=d.get("side"),
            draw_count=int(d.get("draw_count", 0)),
            open_ends=tuple(int(v) for v in (d.get("open_ends") or ())),
            score_gained=int(d.get("score_gained", 0)),
            winner=d.get("winner"),
        )


@dataclass(frozen=True)
class GameState:
    hands: Tuple[Hand, ...]
    board: Board = ()
    current_player: int = 1
    player_count: int = 2
    pool: Tuple[Tile, ...] = ()
    passes: int = 0
    scores: Tuple[int, ...] = (0, 0)
    rule_type: RuleType = "clasico"
    target_score: int = 0
    round_over: bool = False
    match_over: bool = False
    vs_ai: bool = True
    round_index: int = 1
    events: Tuple[GameEvent, ...] = ()

    def hand(self, seat: int) -> Hand:
        return self.hands[seat - 1]

    def score(self, seat: int) -> int:
        return self.scores[seat - 1]

    def ends(self) -> Optional[Tuple[int, int]]:
        return open_ends(self.board)

    def seats(self) -> range:
        return range(1, self.player_count + 1)

    def next_player(self) -> int:
        return (self.current_player % self.player_count) + 1

    def draws_allowed(self) -> bool:
        return self.rule_type != "bloqueo"

    def legal_placements(self, seat: int) -> List[Tuple[int, Side]]:
        return legal_placements(self.hand(seat), self.board)

    def ply(self) -> int:
        return len(self.events)

    def to_dict(self) -> Dict[str, Any]:
        ends = self.ends()
        return {
            "meta": {
                "rule_type": self.rule_type,
                "rule_name": RULE_NAMES[self.rule_type],
                "player_count": int(self.player_count),
                "current_player": int(self.current_player),
                "passes": int(self.passes),
                "target_score": int(self.target_score),
                "round_index": int(self.round_index),
                "round_over": bool(self.round_over),
                "match_over": bool(self.match_over),
                "vs_ai": bool(self.vs_ai),
                "pool_count": len(self.pool),
            },
            "board": [list(t) for t in self.board],
            "open_ends": list(ends) if ends is not None else None,
            "ends_sum": pip_sum(self.board),
            "hands": {str(s): [list(t) for t in self.hand(s)] for s in self.seats()},
            "pool": [list(t) for t in self.pool],
            "scores": {str(s): int(self.score(s)) for s in self.seats()},
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GameState":
        meta = d.get("meta", {}) or {}
        n = _checked_player_count(meta.get("player_count", 2))
        rule_type = meta.get("rule_type", "clasico")
        if rule_type not in RULE_TYPES:
            raise ValueError(f"Unknown rule_type: {rule_type}")
        hands_raw = d.get("hands", {}) or {}
        scores_raw = d.get("scores", {}) or {}
        return cls(
            hands=tuple(tuple(_checked_tile(int(a), int(b)) for a, b in hands_raw.get(str(s), [])) for s in range(1, n + 1)),
            board=tuple(_checked_tile(int(a), int(b)) for a, b in (d.get("board", []) or [])),
            current_player=int(meta.get("current_player", 1)),
            player_count=n,
            pool=tuple(_checked_tile(int(a), int(b)) for a, b in (d.get("pool", []) or [])),
            passes=int(meta.get("passes", 0)),
            scores=tuple(int(scores_raw.get(str(s), 0)) for s in range(1, n + 1)),
            rule_type=rule_type,
            target_score=int(meta.get("target_score", 0)),
            round_over=bool(meta.get("round_over", False)),
            match_over=bool(meta.get("match_over", False)),
            vs_ai=bool(meta.get("vs_ai", True)),
            round_index=int(meta.get("round_index", 1)),
            events=tuple(GameEvent.from_dict(x) for x in (d.get("events", []) or [])),
        )


def tile_conservation_ok(state: GameState) -> bool:
    seen: List[Tile] = [canonical(t) for h in state.hands for t in h]
    seen += [canonical(t) for t in state.board]
    seen += [canonical(t) for t in state.pool]
    return len(seen) == len(ALL_TILES) and set(seen) == set(ALL_TILES)


# =============================================================================
# Game / round lifecycle
# =============================================================================

def create_game(rule_type: RuleType, ai_enabled: bool, player_count: int, rng: Optional[random.Random] = None) -> GameState:
    if rule_type not in RULE_TYPES:
        raise ValueError(f"Unknown rule_type: {rule_type}")
    n = _checked_player_count(player_count)
    hands, pool = deal(shuffle(build_canonical_deck(), rng), n)
    return GameState(
        hands=hands,
        player_count=n,
        pool=pool,
        scores=tuple(0 for _ in range(n)),
        rule_type=rule_type,
        target_score=CINCO_TARGET if rule_type == "cinco" else 0,
        vs_ai=bool(ai_enabled),
        events=(GameEvent(type="round_start", ply=0),),
    )


def start_new_round(previous: GameState, rng: Optional[random.Random] = None) -> GameState:
    """Re-deal a fresh shuffle; scores carry over."""
    hands, pool = deal(shuffle(build_canonical_deck(), rng), previous.player_count)
    return replace(
        previous,
        hands=hands,
        board=(),
        current_player=1,
        pool=pool,
        passes=0,
        round_over=False,
        match_over=False,
        round_index=previous.round_index + 1,
        events=(GameEvent(type="round_start", ply=0),),
    )


# =============================================================================
# Move executor
# =============================================================================

def _assert_can_act(state: GameState, seat: int) -> None:
    if state.round_over:
        raise IllegalMove("Round is over. Start a new round to continue.")
    if seat != state.current_player:
        raise IllegalMove(f"Not seat {seat}'s turn (current_player={state.current_player})")


def _with_hand(hands: Tuple[Hand, ...], seat: int, hand: Hand) -> Tuple[Hand, ...]:
    return hands[:seat - 1] + (hand,) + hands[seat:]


def _event(state: GameState, **kw: Any) -> Tuple[GameEvent, ...]:
    ends = open_ends(kw.pop("board", state.board))
    ev = GameEvent(ply=state.ply(), open_ends=tuple(ends or ()), **kw)
    return state.events + (ev,)


def apply_placement(state: GameState, seat: int, tile_index: int, side: Side) -> GameState:
    _assert_can_act(state, seat)

    hand = state.hand(seat)
    if not (0 <= int(tile_index) < len(hand)):
        raise IllegalMove(f"Tile index {tile_index} out of range for seat {seat} (hand size {len(hand)})")

    tile = hand[tile_index]
    sides = legal_sides(tile, state.ends())
    if side not in sides:
        raise IllegalMove(f"Illegal: {tile_str(tile)} cannot be played on {side} (legal: {list(sides)})")

    board = place_tile(state.board, tile, side)

    gained = cinco_points(board) if state.rule_type == "cinco" else 0
    scores = state.scores
    if gained:
        scores = scores[:seat - 1] + (scores[seat - 1] + gained,) + scores[seat:]

    nxt = replace(
        state,
        hands=_with_hand(state.hands, seat, hand[:tile_index] + hand[tile_index + 1:]),
        board=board,
        current_player=state.next_player(),
        passes=0,
        scores=scores,
        events=_event(state, type="play", seat=seat, tile=tile_str(tile), side=side, score_gained=gained, board=board),
    )
    return resolve_round(nxt) if is_round_over(nxt) else nxt


def apply_draw(state: GameState, seat: int) -> GameState:
    """
    Draw until a drawn tile is playable or the pool is exhausted. A playable
    draw leaves the turn with `seat`; exhaustion becomes an automatic pass.
    """
    _assert_can_act(state, seat)
    if not state.draws_allowed():
        raise IllegalMove("Drawing is not allowed in bloqueo")
    if not state.pool:
        raise IllegalMove("Pool is empty")
    if state.legal_placements(seat):
        raise IllegalMove("Draw not allowed: seat already has a legal move")

    ends = state.ends()
    hand = state.hand(seat)
    pool = state.pool
    drawn = 0
    playable = False
    while pool:
        t, pool = pool[0], pool[1:]
        hand = hand + (t,)
        drawn += 1
        if legal_sides(t, ends):
            playable = True
            break

    nxt = replace(
        state,
        hands=_with_hand(state.hands, seat, hand),
        pool=pool,
        events=_event(state, type="draw", seat=seat, draw_count=drawn),
    )
    if playable:
        return nxt
    return _advance_with_pass(nxt, seat)


def apply_pass(state: GameState, seat: int) -> GameState:
    _assert_can_act(state, seat)
    if state.legal_placements(seat):
        raise IllegalMove("Pass not allowed: seat still has a legal move")
    if state.draws_allowed() and state.pool:
        raise IllegalMove("Pass not allowed: pool is not empty, draw first")
    return _advance_with_pass(state, seat)


def _advance_with_pass(state: GameState, seat: int) -> GameState:
    nxt = replace(
        state,
        current_player=state.next_player(),
        passes=state.passes + 1,
        events=_event(state, type="pass", seat=seat),
    )
    return resolve_round(nxt) if is_round_over(nxt) else nxt


# =============================================================================
# Round / match resolver
# =============================================================================

class RoundResult(NamedTuple):
    winner: int
    pips_by_seat: Dict[int, int]

    def to_dict(self) -> Dict[str, Any]:
        return {"winner": int(self.winner), "pips_by_seat": {str(k): int(v) for k, v in self.pips_by_seat.items()}}


def is_round_over(state: GameState) -> bool:
    if any(len(h) == 0 for h in state.hands):
        return True
    return state.passes >= state.player_count


def get_round_winner(state: GameState) -> RoundResult:
    pips = {s: hand_pips(state.hand(s)) for s in state.seats()}

    for s in state.seats():
        if len(state.hand(s)) == 0:
            return RoundResult(s, pips)

    low = min(pips.values())
    lowest = [s for s, p in pips.items() if p == low]
    return RoundResult(lowest[0] if len(lowest) == 1 else 0, pips)


def resolve_round(state: GameState) -> GameState:
    winner, pips = get_round_winner(state)
    scores = list(state.scores)
    award = 0

    if state.rule_type == "cinco":
        if winner > 0:
            award = round_to_nearest_5(sum(p for s, p in pips.items() if s != winner))
            scores[winner - 1] += award
        match_over = any(sc >= state.target_score for sc in scores)
    else:
        if winner > 0:
            award = 1
            scores[winner - 1] += award
        match_over = True

    ev = GameEvent(
        type="round_end",
        ply=state.ply(),
        seat=winner or None,
        winner=winner,
        score_gained=award,
        open_ends=tuple(state.ends() or ()),
    )
    return replace(
        state,
        scores=tuple(scores),
        round_over=True,
        match_over=match_over,
        events=state.events + (ev,),
    )


def match_winner(state: GameState) -> int:
    """Seat that won the match, 0 if the match is not over or nobody won."""
    if not state.match_over:
        return 0
    if state.rule_type == "cinco":
        reached = [s for s in state.seats() if state.score(s) >= state.target_score]
        if not reached:
            return 0
        return max(reached, key=lambda s: (state.score(s), -s))
    return get_round_winner(state).winner
