"""Game analysis pipeline.

Walks a finished game ply by ply, scores the tracked player's moves with
the engine, and folds the classifications into an AnalysisReport.

Plies are processed strictly in order: each move is judged against the
tracked player's previous after-move score, so a skipped or failed ply
would corrupt every later result. Any engine failure therefore aborts
the whole run.
"""

from __future__ import annotations

import logging

from chess_review.channel import EngineChannel
from chess_review.classifier import classify_move
from chess_review.config import AnalyzerConfig
from chess_review.errors import AnalysisAborted, EngineTerminated, EngineUnavailable
from chess_review.evaluator import PositionEvaluator
from chess_review.models import AnalysisReport, GameRecord
from chess_review.phases import phase_of
from chess_review.report import ReportAggregator
from chess_review.sequencer import sequence

logger = logging.getLogger(__name__)


class GameAnalyzer:
    """Runs one analysis at a time against an already started channel."""

    def __init__(
        self,
        channel: EngineChannel,
        *,
        analysis_depth: int = 15,
        evaluation_depth: int = 12,
        timeout: float = 60.0,
    ) -> None:
        if analysis_depth < 1 or evaluation_depth < 1:
            raise ValueError("Search depths must be positive")
        self._channel = channel
        self._evaluator = PositionEvaluator(channel, timeout=timeout)
        self._analysis_depth = analysis_depth
        self._evaluation_depth = evaluation_depth
        self._cancelled = False
        self._aggregator: ReportAggregator | None = None

    @classmethod
    def from_config(cls, channel: EngineChannel, config: AnalyzerConfig) -> GameAnalyzer:
        return cls(
            channel,
            analysis_depth=config.analysis_depth,
            evaluation_depth=config.evaluation_depth,
            timeout=config.evaluation_timeout,
        )

    async def analyze_game(self, game: GameRecord) -> AnalysisReport:
        """Analyze every move the tracked player made.

        Raises:
            ParseError: The move text cannot be replayed. Raised before
                the engine is used.
            EngineUnavailable, EvaluationTimeout, EngineTerminated: An
                engine call failed; no report is produced.
            AnalysisAborted: cancel() was called; ``partial`` holds the
                plies finished so far.
        """
        plies = sequence(game.move_text)
        color = game.tracked_color
        aggregator = ReportAggregator(color)
        self._aggregator = aggregator
        self._cancelled = False

        tracked = [ply for ply in plies if ply.side_to_move == color]
        logger.info("Analyzing %d of %d plies for %s", len(tracked), len(plies), color)

        previous_eval = 0.0
        for ply in tracked:
            if self._cancelled:
                raise self._aborted()
            try:
                analysis = await self._evaluator.analyze(ply.fen_before, self._analysis_depth)
                eval_after = await self._evaluator.evaluate_position(
                    ply.fen_after, self._evaluation_depth
                )
            except (EngineTerminated, EngineUnavailable) as exc:
                if self._cancelled:
                    raise self._aborted() from exc
                raise

            classification = classify_move(previous_eval, eval_after, color)
            phase = phase_of(ply.move_number, ply.piece_count_after)
            record = aggregator.add(ply, analysis, classification, phase)
            if record is not None:
                logger.debug(
                    "Move %d %s: %s (delta %.2f)",
                    ply.move_number, ply.san, record.severity.value, classification.delta,
                )
            previous_eval = eval_after

        report = aggregator.finalize()
        logger.info(
            "Analysis finished: %d plies, accuracy %.1f, %d blunders, %d mistakes, %d inaccuracies",
            report.plies_analyzed, report.average_accuracy,
            report.blunders, report.mistakes, report.inaccuracies,
        )
        return report

    async def cancel(self) -> None:
        """Abort a running analysis by stopping the channel."""
        logger.warning("Cancelling analysis")
        self._cancelled = True
        await self._channel.stop()

    def _aborted(self) -> AnalysisAborted:
        partial = self._aggregator.finalize(complete=False) if self._aggregator else None
        plies = partial.plies_analyzed if partial else 0
        return AnalysisAborted(f"Analysis cancelled after {plies} plies", partial=partial)


async def analyze_game(
    move_text: str,
    tracked_color: str = "white",
    config: AnalyzerConfig | None = None,
) -> AnalysisReport:
    """Analyze one game with a dedicated engine process.

    The move text is validated before the engine is launched, and the
    engine is always shut down afterwards.
    """
    config = config or AnalyzerConfig.from_env()
    game = GameRecord(move_text=move_text, tracked_color=tracked_color)
    sequence(game.move_text)

    channel = EngineChannel.for_binary(
        config.resolve_engine_path(),
        options=config.engine_options(),
        handshake_timeout=config.handshake_timeout,
    )
    async with channel:
        analyzer = GameAnalyzer.from_config(channel, config)
        return await analyzer.analyze_game(game)
