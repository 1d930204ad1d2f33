"""Pytest tests for the end-to-end analysis pipeline with a scripted engine.

Each tracked ply costs two searches on the wire: one on the position
before the move, one on the position after it.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from chess_review.analyzer import GameAnalyzer, analyze_game
from chess_review.config import AnalyzerConfig
from chess_review.errors import (
    AnalysisAborted,
    EngineUnavailable,
    EvaluationTimeout,
    ParseError,
)
from chess_review.models import GameRecord, Phase, Tier


def _run(channel, game, **kwargs):
    async def scenario():
        async with channel:
            return await GameAnalyzer(channel, **kwargs).analyze_game(game)

    return asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Scoring scenarios
# ---------------------------------------------------------------------------


class TestScenarios:

    def test_small_loss_is_not_a_mistake(self, engine_factory, search_lines):
        channel, conduit = engine_factory([
            search_lines(30, "e2e4"),   # before 1. e4
            search_lines(-20, "e7e5"),  # after 1. e4
        ])
        report = _run(channel, GameRecord("1. e4 e5", "white"))

        assert report.plies_analyzed == 1
        assert report.mistakes_list == ()
        assert report.inaccuracies == 0
        assert report.average_accuracy == pytest.approx(96.0)
        assert report.opening.moves == 1
        assert report.opening.accuracy == pytest.approx(96.0)
        assert report.middlegame.moves == 0
        assert report.endgame.moves == 0

    def test_half_pawn_loss_is_an_inaccuracy(self, engine_factory, search_lines):
        channel, _ = engine_factory([
            search_lines(30, "d2d4"),
            search_lines(-50, "e7e5"),
        ])
        report = _run(channel, GameRecord("1. e4 e5", "white"))

        assert report.inaccuracies == 1
        assert report.opening.accuracy == pytest.approx(90.0)
        record = report.mistakes_list[0]
        assert record.severity == Tier.INACCURACY
        assert record.move_number == 1
        assert record.played_move == "e4"
        assert record.best_move == "d4"
        assert record.engine_eval == pytest.approx(0.3)
        assert record.previous_eval == 0.0
        assert record.evaluation == pytest.approx(-0.5)
        assert record.phase == Phase.OPENING
        assert record.explanation == "Not the most precise move. d4 would have been slightly better."

    def test_only_tracked_plies_hit_the_engine(self, engine_factory, search_lines):
        channel, conduit = engine_factory([
            search_lines(20, "e2e4"),
            search_lines(-25, "e7e5"),
            search_lines(30, "g1f3"),
            search_lines(-35, "b8c6"),
        ])
        report = _run(channel, GameRecord("1. e4 e5 2. Qh5 Nc6", "white"))

        assert report.plies_analyzed == 2
        assert report.opening.moves == 2
        gos = [w for w in conduit.writes if w.startswith("go")]
        assert gos == ["go depth 15", "go depth 12", "go depth 15", "go depth 12"]

    def test_previous_eval_chains_between_plies(self, engine_factory, search_lines):
        channel, _ = engine_factory([
            search_lines(20, "e2e4"),
            search_lines(-100, "e7e5"),   # first move: 0 -> -1.0, inaccuracy
            search_lines(30, "g1f3"),
            search_lines(-400, "b8c6"),   # second move: -1.0 -> -4.0, blunder
        ])
        report = _run(channel, GameRecord("1. e4 e5 2. Qh5 Nc6", "white"))

        assert [m.severity for m in report.mistakes_list] == [Tier.INACCURACY, Tier.BLUNDER]
        blunder = report.mistakes_list[1]
        assert blunder.previous_eval == pytest.approx(-1.0)
        assert blunder.evaluation == pytest.approx(-4.0)
        assert "dropped by 3.0 pawns" in blunder.explanation
        assert blunder.best_move == "Nf3"

    def test_black_perspective(self, engine_factory, search_lines):
        channel, conduit = engine_factory([
            search_lines(-10, "e7e5"),
            search_lines(250, "g1f3"),   # raw +2.5, black's view -2.5
        ])
        report = _run(channel, GameRecord("1. e4 f6 2. d4", "black"))

        assert report.plies_analyzed == 1
        assert report.mistakes == 1
        record = report.mistakes_list[0]
        assert record.played_move == "f6"
        assert record.evaluation == pytest.approx(-2.5)
        assert record.best_move == "e5"
        assert f"position fen {record.fen}" in conduit.writes

    def test_custom_depths(self, engine_factory, search_lines):
        channel, conduit = engine_factory([search_lines(0, "e2e4"), search_lines(0, "e7e5")])
        _run(channel, GameRecord("1. e4", "white"), analysis_depth=8, evaluation_depth=4)
        assert [w for w in conduit.writes if w.startswith("go")] == ["go depth 8", "go depth 4"]

    def test_game_from_fen_uses_its_move_numbers(self, engine_factory, search_lines):
        channel, _ = engine_factory([
            search_lines(500, "e2e4"),
            search_lines(-100, "e8d7"),   # 0 -> -1.0, inaccuracy
            search_lines(500, "e4e5"),
            search_lines(-300, "d7e6"),   # -1.0 -> -3.0, mistake
        ])
        text = (
            '[SetUp "1"]\n[FEN "4k3/8/8/8/8/8/4P3/4K3 w - - 0 40"]\n\n'
            "40. e4 Kd7 41. e5 *"
        )
        report = _run(channel, GameRecord(text, "white"))

        assert report.opening.moves == 0
        assert report.endgame.moves == 2
        assert [m.move_number for m in report.mistakes_list] == [40, 41]
        assert [m.phase for m in report.mistakes_list] == [Phase.ENDGAME, Phase.ENDGAME]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:

    def test_parse_error_before_engine_use(self, engine_factory):
        channel, conduit = engine_factory([])
        with pytest.raises(ParseError):
            _run(channel, GameRecord("1. e4 e5 2. Qh5 Qxh5", "white"))
        assert not any(w.startswith("position") for w in conduit.writes)

    def test_timeout_aborts_run(self, engine_factory, search_lines):
        channel, _ = engine_factory([search_lines(0, "e2e4")], stop_reply=["bestmove e7e5"])
        with pytest.raises(EvaluationTimeout):
            _run(channel, GameRecord("1. e4 e5", "white"), timeout=0.05)

    def test_channel_not_started(self, engine_factory):
        channel, _ = engine_factory()

        async def scenario():
            return await GameAnalyzer(channel).analyze_game(GameRecord("1. e4", "white"))

        with pytest.raises(EngineUnavailable):
            asyncio.run(scenario())

    def test_invalid_color(self):
        with pytest.raises(ValueError):
            GameRecord("1. e4", "green")

    def test_invalid_depth(self, engine_factory):
        channel, _ = engine_factory()
        with pytest.raises(ValueError):
            GameAnalyzer(channel, analysis_depth=0)

    def test_cancel_returns_partial_report(self, engine_factory, search_lines):
        async def scenario():
            channel, conduit = engine_factory([
                search_lines(20, "e2e4"),
                search_lines(-90, "e7e5"),
                # second tracked ply never gets an answer
            ])
            await channel.start()
            analyzer = GameAnalyzer(channel)
            task = asyncio.create_task(
                analyzer.analyze_game(GameRecord("1. e4 e5 2. Qh5 Nc6", "white"))
            )
            for _ in range(200):
                if sum(1 for w in conduit.writes if w.startswith("go")) >= 3:
                    break
                await asyncio.sleep(0.005)
            await analyzer.cancel()
            with pytest.raises(AnalysisAborted) as excinfo:
                await task
            return excinfo.value

        aborted = asyncio.run(scenario())
        assert aborted.code == "analysis_aborted"
        assert aborted.partial is not None
        assert aborted.partial.complete is False
        assert aborted.partial.plies_analyzed == 1
        assert aborted.partial.inaccuracies == 1


# ---------------------------------------------------------------------------
# Convenience entry point
# ---------------------------------------------------------------------------


class TestAnalyzeGame:

    def test_parse_error_before_engine_launch(self):
        with patch("chess_review.analyzer.EngineChannel.for_binary") as for_binary:
            with pytest.raises(ParseError):
                asyncio.run(analyze_game("1. e4 e5 2. Qh5 Qxh5", "white", AnalyzerConfig()))
        for_binary.assert_not_called()

    def test_runs_and_stops_channel(self, engine_factory, search_lines):
        channel, conduit = engine_factory([search_lines(10, "e2e4"), search_lines(-10, "e7e5")])
        config = AnalyzerConfig(engine_path="/usr/bin/stockfish", analysis_depth=6, evaluation_depth=3)
        with patch("chess_review.analyzer.EngineChannel.for_binary", return_value=channel) as for_binary:
            report = asyncio.run(analyze_game("1. e4 e5", "white", config))
        for_binary.assert_called_once_with(
            "/usr/bin/stockfish",
            options={"Threads": 2, "Hash": 128},
            handshake_timeout=10.0,
        )
        assert report.plies_analyzed == 1
        assert report.average_accuracy == pytest.approx(98.0)
        assert conduit.writes[-1] == "quit"
        assert not channel.running
