# FILE: evaluate.py | version: 2026-10-19.v1
# Headless self-play evaluator (all seats AI) for the domino engine
#
# Design:
# - Every match runs through session.GameSession with ai_seats = all seats,
#   so the evaluator exercises exactly the code path a live table uses.
# - Each match gets its own random.Random(base_seed + i): any match can be
#   replayed deterministically from the report's seed.
# - Conservation of the 28 tiles is asserted after every AI turn unless
#   --no_asserts is given.

from __future__ import annotations

import argparse
import json
import random
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, List

import numpy as np

import engine
from engine import RULE_TYPES
from session import GameSession

MAX_ROUNDS_PER_MATCH = 500


@dataclass
class EvalConfig:
    rule_type: str = "clasico"
    players: int = 2
    matches: int = 200
    base_seed: int = 12345
    strict_asserts: bool = True
    progress_every: int = 50


def play_match(cfg: EvalConfig, seed: int) -> Dict[str, Any]:
    rng = random.Random(int(seed))
    gs = GameSession(
        rule_type=cfg.rule_type,  # type: ignore[arg-type]
        ai_enabled=True,
        player_count=cfg.players,
        rng=rng,
        ai_seats=range(1, cfg.players + 1),
        auto_ai="off",
    )

    rounds = 0
    round_winners: List[int] = []
    turns = 0
    try:
        while True:
            rounds += 1
            while gs.ai_to_act():
                gs.step_ai()
                turns += 1
                if cfg.strict_asserts and not engine.tile_conservation_ok(gs.state):
                    raise AssertionError(f"tile conservation broken (seed={seed}, round={rounds}, turn={turns})")

            st = gs.state
            round_winners.append(engine.get_round_winner(st).winner)
            if st.match_over or rounds >= MAX_ROUNDS_PER_MATCH:
                break
            gs.new_round()
    finally:
        gs.close()

    st = gs.state
    return {
        "seed": int(seed),
        "rounds": rounds,
        "turns": turns,
        "winner": engine.match_winner(st),
        "round_winners": round_winners,
        "scores": list(st.scores),
    }


def run_eval(cfg: EvalConfig) -> Dict[str, Any]:
    n = max(0, int(cfg.matches))
    p = int(cfg.players)

    wins = np.zeros((p + 1,), dtype=np.int64)  # index 0 = no winner
    rounds = np.zeros((n,), dtype=np.int64)
    turns = np.zeros((n,), dtype=np.int64)
    scores = np.zeros((n, p), dtype=np.int64)

    t0 = time.perf_counter()
    for i in range(n):
        res = play_match(cfg, cfg.base_seed + i)
        wins[int(res["winner"])] += 1
        rounds[i] = res["rounds"]
        turns[i] = res["turns"]
        scores[i, :] = res["scores"]

        done = i + 1
        if cfg.progress_every > 0 and (done % cfg.progress_every == 0 or done == n):
            dt = time.perf_counter() - t0
            print(f"[eval] progress matches_done={done}/{n} mps={done / max(1e-9, dt):.2f}", flush=True)

    denom = float(max(1, n))
    return {
        "ok": True,
        "config": asdict(cfg),
        "results": {
            "wins_by_seat": {str(s): int(wins[s]) for s in range(1, p + 1)},
            "win_rate_by_seat": {str(s): round(float(wins[s]) / denom, 4) for s in range(1, p + 1)},
            "no_winner": int(wins[0]),
            "no_winner_rate": round(float(wins[0]) / denom, 4),
            "avg_rounds_per_match": round(float(rounds.mean()) if n else 0.0, 2),
            "avg_turns_per_match": round(float(turns.mean()) if n else 0.0, 2),
            "avg_final_score_by_seat": {
                str(s): round(float(scores[:, s - 1].mean()) if n else 0.0, 2) for s in range(1, p + 1)
            },
            "elapsed_sec": round(float(time.perf_counter() - t0), 3),
        },
    }


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="evaluate.py")
    ap.add_argument("--rule", choices=list(RULE_TYPES), default="clasico")
    ap.add_argument("--players", type=int, choices=[2, 3, 4], default=2)
    ap.add_argument("--matches", type=int, default=200)
    ap.add_argument("--seed", type=int, default=12345)
    ap.add_argument("--no_asserts", action="store_true")
    ap.add_argument("--progress_every", type=int, default=50, help="print progress every N matches (0=off).")
    return ap


def main() -> None:
    args = build_arg_parser().parse_args()

    cfg = EvalConfig(
        rule_type=str(args.rule),
        players=int(args.players),
        matches=int(args.matches),
        base_seed=int(args.seed),
        strict_asserts=(not bool(args.no_asserts)),
        progress_every=int(args.progress_every),
    )

    rep = run_eval(cfg)
    print(json.dumps(rep, ensure_ascii=False), flush=True)            # one line, machine-friendly
    print(json.dumps(rep, ensure_ascii=False, indent=2), flush=True)  # readable


if __name__ == "__main__":
    main()
