# FILE: ai.py | version: 2026-10-19.v1
# (greedy single-ply policy: cinco spike first, then heaviest tile, then draw/pass;
#  iteration order is hand order then left/right, and it decides every tie)

from __future__ import annotations

from typing import List, Literal, NamedTuple, Optional, Tuple

from engine import (
    GameState, Side, Tile,
    legal_sides, place_tile, pip_sum, tile_pip_count, tile_str,
)

MoveKind = Literal["play", "draw", "pass"]


class AIMove(NamedTuple):
    kind: MoveKind
    tile_index: int = -1
    side: Optional[Side] = None


class Playable(NamedTuple):
    idx: int
    tile: Tile
    sides: Tuple[Side, ...]


def playable_tiles(state: GameState, seat: int) -> List[Playable]:
    ends = state.ends()
    out: List[Playable] = []
    for idx, t in enumerate(state.hand(seat)):
        sides = legal_sides(t, ends)
        if sides:
            out.append(Playable(idx, t, sides))
    return out


def best_fives_move(state: GameState, playable: List[Playable]) -> Optional[AIMove]:
    """Highest non-zero multiple-of-5 end sum; first found wins ties."""
    best_score = 0
    best: Optional[AIMove] = None
    for p in playable:
        for side in p.sides:
            s = pip_sum(place_tile(state.board, p.tile, side))
            if s > 0 and s % 5 == 0 and s > best_score:
                best_score = s
                best = AIMove("play", p.idx, side)
    return best


def heaviest_move(playable: List[Playable]) -> AIMove:
    best = playable[0]
    for p in playable[1:]:
        if tile_pip_count(p.tile) > tile_pip_count(best.tile):
            best = p
    return AIMove("play", best.idx, best.sides[0])


def choose_move(state: GameState, seat: Optional[int] = None) -> AIMove:
    s = state.current_player if seat is None else int(seat)
    playable = playable_tiles(state, s)

    if playable:
        if state.rule_type == "cinco":
            mv = best_fives_move(state, playable)
            if mv is not None:
                return mv
        return heaviest_move(playable)

    if state.draws_allowed() and state.pool:
        return AIMove("draw")
    return AIMove("pass")


def describe_move(state: GameState, move: AIMove, seat: Optional[int] = None) -> str:
    s = state.current_player if seat is None else int(seat)
    if move.kind == "play":
        return f"seat {s} plays {tile_str(state.hand(s)[move.tile_index])} on {move.side}"
    return f"seat {s} {'draws' if move.kind == 'draw' else 'passes'}"
