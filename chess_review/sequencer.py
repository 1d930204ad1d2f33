"""Replay PGN move text into an ordered list of plies.

Comments, NAGs, move annotations and side variations are dropped by the
PGN reader; only the mainline is replayed. A move that is not legal in
the current position raises ParseError instead of truncating the list.
"""

from __future__ import annotations

import io
import logging

import chess
import chess.pgn

from chess_review.errors import ParseError
from chess_review.models import Ply

logger = logging.getLogger(__name__)


def _color_name(turn: chess.Color) -> str:
    return "white" if turn == chess.WHITE else "black"


def _read_game(game_text: str) -> chess.pgn.Game:
    """Parse PGN text, raising ParseError on anything the reader rejected."""
    if not game_text or not game_text.strip():
        raise ParseError("Game text is empty")

    game = chess.pgn.read_game(io.StringIO(game_text))
    if game is None:
        raise ParseError("No game found in move text")

    if game.errors:
        # The reader stops following the mainline at the first bad token,
        # so its position in the replay is the number of moves it kept.
        ply_index = sum(1 for _ in game.mainline_moves())
        first = game.errors[0]
        raise ParseError(
            f"Cannot replay move text at ply {ply_index}: {first}",
            ply_index=ply_index,
            detail=repr(first),
        )
    return game


def sequence(game_text: str) -> list[Ply]:
    """Replay a game and return one Ply per half-move, in game order.

    Args:
        game_text: PGN or bare move text ("1. e4 e5 2. Nf3 ...").
            A FEN/SetUp header is honoured; otherwise the standard
            starting position is used.

    Returns:
        Ordered list of plies. ``fen_after`` of ply i equals
        ``fen_before`` of ply i+1. Move numbers follow the full-move
        counter of the starting position.

    Raises:
        ParseError: If the text holds no game or a move cannot be
            legally applied.
    """
    game = _read_game(game_text)
    board = game.board()

    plies: list[Ply] = []
    for index, move in enumerate(game.mainline_moves()):
        if move not in board.legal_moves:
            raise ParseError(
                f"Illegal move {move.uci()} at ply {index}",
                ply_index=index,
            )
        fen_before = board.fen()
        move_number = board.fullmove_number
        side = _color_name(board.turn)
        san = board.san(move)
        board.push(move)
        plies.append(
            Ply(
                index=index,
                side_to_move=side,
                san=san,
                uci=move.uci(),
                fen_before=fen_before,
                fen_after=board.fen(),
                piece_count_after=len(board.piece_map()),
                move_number=move_number,
            )
        )

    logger.debug("Sequenced %d plies", len(plies))
    return plies
