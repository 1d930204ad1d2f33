"""Move classification from consecutive evaluations.

The accuracy figure is a simple linear penalty of 20 points per pawn
lost, floored at zero. It is not a calibrated accuracy model; the
numbers it produces are part of the report contract and are kept as is.
"""

from __future__ import annotations

from chess_review.models import COLORS, Classification, Tier

# Absolute evaluation change (pawns) -> tier, checked top to bottom
_TIER_THRESHOLDS = [
    (3.0, Tier.BLUNDER),
    (1.5, Tier.MISTAKE),
    (0.5, Tier.INACCURACY),
]

BRILLIANT_THRESHOLD = -1.0
ACCURACY_PENALTY_PER_PAWN = 20.0


def to_player_perspective(evaluation: float, tracked_color: str) -> float:
    """Re-express an engine score for the tracked player."""
    if tracked_color not in COLORS:
        raise ValueError(f"Unknown color: {tracked_color!r}")
    return evaluation if tracked_color == "white" else -evaluation


def classify_delta(delta: float) -> Tier:
    """Map an evaluation change to a severity tier.

    Args:
        delta: Evaluation before minus evaluation after, in pawns,
            from the tracked player's perspective.

    Returns:
        BLUNDER, MISTAKE or INACCURACY by absolute size; BRILLIANT if
        no severity applies and the position improved by more than a
        pawn; NONE otherwise.
    """
    magnitude = abs(delta)
    for threshold, tier in _TIER_THRESHOLDS:
        if magnitude >= threshold:
            return tier
    if delta < BRILLIANT_THRESHOLD:
        return Tier.BRILLIANT
    return Tier.NONE


def move_accuracy(delta: float) -> float:
    if delta <= 0:
        return 100.0
    return max(0.0, 100.0 - delta * ACCURACY_PENALTY_PER_PAWN)


def classify_move(eval_before: float, eval_after: float, tracked_color: str) -> Classification:
    """Classify one tracked-player move from two engine scores.

    Args:
        eval_before: Engine score before the move (the previous tracked
            ply's after-move score, 0 for the first one).
        eval_after: Engine score after the move.
        tracked_color: "white" or "black".
    """
    before = to_player_perspective(eval_before, tracked_color)
    after = to_player_perspective(eval_after, tracked_color)
    delta = before - after
    return Classification(
        tier=classify_delta(delta),
        delta=delta,
        accuracy=move_accuracy(delta),
        eval_before=before,
        eval_after=after,
    )
