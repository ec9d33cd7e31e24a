from engine import GameState


def make_state(hands, board=(), rule_type="clasico", pool=(), current_player=1, passes=0, scores=None, target_score=None, vs_ai=True):
    """Hand-built mid-round state; tile conservation is not enforced."""
    n = len(hands)
    if target_score is None:
        target_score = 100 if rule_type == "cinco" else 0
    return GameState(
        hands=tuple(tuple(h) for h in hands),
        board=tuple(board),
        current_player=current_player,
        player_count=n,
        pool=tuple(pool),
        passes=passes,
        scores=tuple(scores) if scores is not None else tuple(0 for _ in range(n)),
        rule_type=rule_type,
        target_score=target_score,
        vs_ai=vs_ai,
    )
