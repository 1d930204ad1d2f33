"""Game phase from move number and material left on the board."""

from __future__ import annotations

from chess_review.models import Phase

OPENING_LAST_MOVE = 10
ENDGAME_MAX_PIECES = 12


def phase_of(move_number: int, piece_count: int) -> Phase:
    """Opening through move 10, then endgame once 12 or fewer pieces remain.

    Args:
        move_number: Full-move number (1-based), not the ply index.
        piece_count: Pieces of both colours on the board, kings included.
    """
    if move_number <= OPENING_LAST_MOVE:
        return Phase.OPENING
    if piece_count <= ENDGAME_MAX_PIECES:
        return Phase.ENDGAME
    return Phase.MIDDLEGAME
