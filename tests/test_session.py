import random
import time

import pytest

from engine import IllegalMove, start_new_round, tile_conservation_ok
from session import GameSession
from tests.helpers import make_state


def _wait(pred, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return pred()


def test_ai_seats_default_to_everyone_but_seat_one():
    gs = GameSession("clasico", True, 4, rng=random.Random(1), auto_ai="off")
    assert gs.ai_seats == frozenset({2, 3, 4})
    assert gs.state.vs_ai

    local = GameSession("clasico", False, 3, rng=random.Random(1), auto_ai="off")
    assert local.ai_seats == frozenset()
    assert not local.state.vs_ai


def test_invalid_construction():
    with pytest.raises(ValueError):
        GameSession("clasico", True, 2, auto_ai="later")
    with pytest.raises(ValueError):
        GameSession("clasico", True, 2, ai_seats=[3])
    with pytest.raises(ValueError):
        GameSession("clasico", True, 5)


def test_human_cannot_act_for_ai_seat():
    st = make_state([[(0, 0)], [(6, 1), (2, 2)]], board=[(6, 6)], current_player=2)
    gs = GameSession.from_state(st, ai_seats=[2], auto_ai="off")
    with pytest.raises(IllegalMove):
        gs.play(2, 0, "left")
    assert gs.state is st


def test_rejected_move_leaves_state_untouched():
    st = make_state([[(0, 0), (6, 1)], [(2, 2)]], board=[(6, 6)], vs_ai=False)
    gs = GameSession.from_state(st, ai_seats=[], auto_ai="off")
    with pytest.raises(IllegalMove):
        gs.play(1, 0, "left")
    with pytest.raises(IllegalMove):
        gs.pass_turn(1)
    assert gs.state is st


def test_local_mode_never_moves_for_anyone():
    gs = GameSession("bloqueo", False, 2, rng=random.Random(3))
    gs.play(1, 0, "left")
    assert gs.state.current_player == 2
    assert len(gs.state.board) == 1


def test_sync_mode_runs_ai_until_human_turn():
    gs = GameSession("clasico", True, 3, rng=random.Random(7), auto_ai="sync")
    st = gs.play(1, 0, "left")
    assert st.round_over or st.current_player == 1
    assert tile_conservation_ok(st)
    assert len(st.board) >= 1


def test_run_ai_turns_finishes_all_ai_round():
    gs = GameSession("cinco", True, 4, rng=random.Random(9), ai_seats=[1, 2, 3, 4], auto_ai="off")
    st = gs.run_ai_turns()
    assert st.round_over
    assert tile_conservation_ok(st)
    assert st.events[-1].type == "round_end"


def test_on_change_sees_every_commit():
    seen = []
    gs = GameSession("bloqueo", True, 2, rng=random.Random(4), auto_ai="sync", on_change=seen.append)
    gs.play(1, 0, "left")
    assert len(seen) >= 2
    assert seen[-1] is gs.state


def test_timer_mode_plays_ai_after_delay():
    gs = GameSession("clasico", True, 3, rng=random.Random(2), auto_ai="timer", delay_ms=(1, 5))
    gs.play(1, 0, "left")
    assert _wait(lambda: not gs.ai_pending and (gs.state.round_over or gs.state.current_player == 1))
    gs.close()


def test_new_round_cancels_pending_ai_turn():
    gs = GameSession("clasico", True, 2, rng=random.Random(5), auto_ai="timer", delay_ms=(200, 300))
    gs.play(1, 0, "left")
    assert gs.ai_pending

    st = gs.new_round()
    assert not gs.ai_pending
    assert st.round_index == 2
    time.sleep(0.45)
    assert gs.state is st
    assert gs.state.board == ()
    gs.close()


def test_close_cancels_pending_ai_turn():
    gs = GameSession("bloqueo", True, 2, rng=random.Random(6), auto_ai="timer", delay_ms=(150, 200))
    after = gs.play(1, 0, "left")
    gs.close()
    time.sleep(0.35)
    assert gs.state is after
    assert not gs.ai_pending
    with pytest.raises(RuntimeError):
        gs.play(1, 0, "left")


def test_stale_timer_callback_is_ignored():
    gs = GameSession("clasico", True, 2, rng=random.Random(8), auto_ai="off")
    gs.play(1, 0, "left")
    before = gs.state
    gs.cancel_pending()
    gs._fire(0)
    assert gs.state is before


def test_restart_resets_scores():
    st = make_state([[(6, 6)], [(1, 2)]], board=[(6, 5)], vs_ai=False)
    gs = GameSession.from_state(st, ai_seats=[], auto_ai="off", rng=random.Random(1))
    gs.play(1, 0, "left")
    assert gs.state.scores == (1, 0)
    assert gs.round_result().winner == 1
    fresh = gs.restart()
    assert fresh.scores == (0, 0)
    assert fresh.round_index == 1
    assert tile_conservation_ok(fresh)


def test_snapshot_reports_session_info():
    gs = GameSession("cinco", True, 3, rng=random.Random(1), auto_ai="off")
    snap = gs.snapshot()
    assert snap["session"]["ai_seats"] == [2, 3]
    assert snap["session"]["round_result"] is None
    assert snap["meta"]["target_score"] == 100


def test_from_state_keeps_seeded_deal_stream():
    st = make_state([[(6, 6)], [(1, 2)]], board=[(6, 5)], rule_type="cinco", scores=(15, 5), vs_ai=False)
    gs = GameSession.from_state(st, ai_seats=[], auto_ai="off", rng=random.Random(21))
    assert gs.state is st

    expected = start_new_round(st, random.Random(21))
    got = gs.new_round()
    assert got.hands == expected.hands
    assert got.pool == expected.pool
    assert got.scores == (15, 5)
