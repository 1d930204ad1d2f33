"""Command line interface for chess-review.

Usage:
    chess-review game GAME.pgn --color black
    chess-review game GAME.pgn --json
    chess-review --depth 18 position "<FEN>"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

import chess
from rich.console import Console
from rich.table import Table

from chess_review.analyzer import analyze_game
from chess_review.channel import EngineChannel
from chess_review.config import AnalyzerConfig
from chess_review.errors import AnalysisError
from chess_review.evaluator import PositionEvaluator
from chess_review.models import AnalysisReport, PositionAnalysis

_SEVERITY_STYLES = {
    "blunder": "bold red",
    "mistake": "dark_orange",
    "inaccuracy": "yellow",
}


def _format_eval(evaluation: float, mate: int | None = None) -> str:
    if mate is not None:
        return f"Mate in {mate}"
    return f"{evaluation:+.2f}"


def render_report(report: AnalysisReport, console: Console) -> None:
    """Print a report as a summary table plus the mistake list."""
    summary = Table(title=f"Game review ({report.tracked_color})", show_header=False)
    summary.add_column("Metric")
    summary.add_column("Value", justify="right")
    summary.add_row("Accuracy", f"{report.average_accuracy:.1f}%")
    summary.add_row("Blunders", str(report.blunders))
    summary.add_row("Mistakes", str(report.mistakes))
    summary.add_row("Inaccuracies", str(report.inaccuracies))
    summary.add_row("Brilliant moves", str(report.brilliant_moves))
    for name, phase in (
        ("Opening", report.opening),
        ("Middlegame", report.middlegame),
        ("Endgame", report.endgame),
    ):
        summary.add_row(name, f"{phase.accuracy:.1f}% over {phase.moves} moves")
    console.print(summary)

    if not report.mistakes_list:
        console.print("No mistakes found.")
        return

    mistakes = Table(title="Mistakes")
    mistakes.add_column("Move", justify="right")
    mistakes.add_column("Played")
    mistakes.add_column("Best")
    mistakes.add_column("Eval", justify="right")
    mistakes.add_column("Severity")
    mistakes.add_column("Phase")
    for record in report.mistakes_list:
        severity = record.severity.value
        mistakes.add_row(
            str(record.move_number),
            record.played_move,
            record.best_move,
            f"{record.previous_eval:+.2f} -> {record.evaluation:+.2f}",
            f"[{_SEVERITY_STYLES.get(severity, '')}]{severity}[/]",
            record.phase.value,
        )
    console.print(mistakes)
    for record in report.mistakes_list:
        console.print(f"[bold]{record.move_number}. {record.played_move}[/]: {record.explanation}")


def render_position(analysis: PositionAnalysis, console: Console) -> None:
    board = chess.Board(analysis.fen)
    console.print(f"Position: {analysis.fen}")
    console.print(f"Side to move: {'White' if board.turn else 'Black'}")
    console.print(f"Best move: {analysis.move_san or analysis.move or '(none)'}")
    console.print(f"Evaluation: {_format_eval(analysis.evaluation, analysis.mate)} (depth {analysis.depth})")
    if analysis.pv_san:
        console.print(f"Line: {' '.join(analysis.pv_san[:8])}")


async def _analyze_position(fen: str, config: AnalyzerConfig) -> PositionAnalysis:
    channel = EngineChannel.for_binary(
        config.resolve_engine_path(),
        options=config.engine_options(),
        handshake_timeout=config.handshake_timeout,
    )
    async with channel:
        evaluator = PositionEvaluator(channel, timeout=config.evaluation_timeout)
        return await evaluator.analyze(fen, config.analysis_depth)


def _cmd_game(args: argparse.Namespace, config: AnalyzerConfig, console: Console) -> None:
    move_text = Path(args.pgn).read_text(encoding="utf-8")
    report = asyncio.run(analyze_game(move_text, args.color, config))
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        render_report(report, console)


def _cmd_position(args: argparse.Namespace, config: AnalyzerConfig, console: Console) -> None:
    try:
        chess.Board(args.fen)
    except ValueError as exc:
        raise AnalysisError(f"Invalid FEN: {exc}") from exc
    analysis = asyncio.run(_analyze_position(args.fen, config))
    render_position(analysis, console)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chess-review",
        description="Review a finished chess game with a UCI engine",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for engine I/O)")
    parser.add_argument("--engine", type=str, default=None, help="Path to a UCI engine binary")
    parser.add_argument("--depth", type=_positive_int, default=None, help="Search depth before each move")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    game_parser = subparsers.add_parser("game", help="Analyze a PGN game")
    game_parser.add_argument("pgn", type=str, help="PGN file to analyze")
    game_parser.add_argument(
        "--color", choices=("white", "black"), default="white",
        help="Player to review (default: white)",
    )
    game_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    position_parser = subparsers.add_parser("position", help="Analyze a FEN position")
    position_parser.add_argument("fen", type=str, help="FEN string to analyze")

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        return 1

    console = Console()
    try:
        config = AnalyzerConfig.from_env()
        if args.engine is not None:
            config = replace(config, engine_path=args.engine)
        if args.depth is not None:
            config = replace(config, analysis_depth=args.depth)

        if args.command == "game":
            _cmd_game(args, config, console)
        else:
            _cmd_position(args, config, console)
    except (AnalysisError, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
