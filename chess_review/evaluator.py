"""Position evaluation on top of an EngineChannel.

Scores are reported from the perspective of the side to move in the
analysed position, in pawns, with mate saturated to +-100.
"""

from __future__ import annotations

import asyncio
import logging

import chess

from chess_review import uci
from chess_review.channel import EngineChannel
from chess_review.errors import EngineUnavailable, EvaluationTimeout
from chess_review.models import EngineResult, PositionAnalysis

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_DEPTH = 15
DEFAULT_EVALUATION_DEPTH = 12


def _to_san(fen: str, moves: list[str]) -> list[str]:
    """Convert a UCI move sequence to SAN, stopping at the first bad move."""
    board = chess.Board(fen)
    san_moves: list[str] = []
    for text in moves:
        try:
            move = chess.Move.from_uci(text)
        except chess.InvalidMoveError:
            break
        if move not in board.legal_moves:
            break
        san_moves.append(board.san(move))
        board.push(move)
    return san_moves


class PositionEvaluator:
    """Best move and score for a FEN, one search per call."""

    def __init__(self, channel: EngineChannel, *, timeout: float = 60.0) -> None:
        self._channel = channel
        self._timeout = timeout

    async def _search(self, fen: str, depth: int) -> EngineResult:
        commands = [uci.position_command(fen), uci.go_command(depth)]
        if not self._channel.running:
            raise EngineUnavailable("Engine channel is not running")
        future = self._channel.submit(commands, uci.is_bestmove)
        try:
            # shield: a timed-out search on the wire must hold the slot until
            # the engine answers, otherwise its late output would reach the next one
            return await asyncio.wait_for(asyncio.shield(future), self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Search at depth %d timed out after %.1fs: %s", depth, self._timeout, fen)
            await self._channel.withdraw(future)
            raise EvaluationTimeout(
                f"No result within {self._timeout}s for depth {depth}",
                detail=fen,
            ) from exc

    async def analyze(self, fen: str, depth: int = DEFAULT_ANALYSIS_DEPTH) -> PositionAnalysis:
        """Search a position and return the engine's move and score.

        Raises:
            EvaluationTimeout: If the search does not finish in time.
            EngineUnavailable: If the channel is not running.
            EngineTerminated: If the channel is stopped mid-search.
        """
        result = await self._search(fen, depth)
        move_san = None
        if result.best_move is not None:
            converted = _to_san(fen, [result.best_move])
            move_san = converted[0] if converted else None
        return PositionAnalysis(
            fen=fen,
            move=result.best_move,
            move_san=move_san,
            evaluation=result.pawns,
            mate=result.mate,
            depth=result.depth,
            pv=tuple(result.pv),
            pv_san=tuple(_to_san(fen, result.pv)),
        )

    async def evaluate_position(self, fen: str, depth: int = DEFAULT_EVALUATION_DEPTH) -> float:
        """Score a position in pawns, discarding the move."""
        result = await self._search(fen, depth)
        return result.pawns

    async def best_move(self, fen: str, depth: int = DEFAULT_ANALYSIS_DEPTH) -> str | None:
        """The engine's move in UCI notation, or None if there is none."""
        result = await self._search(fen, depth)
        return result.best_move
