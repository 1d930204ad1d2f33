"""Engine-backed review of finished chess games."""

from chess_review.analyzer import GameAnalyzer, analyze_game
from chess_review.channel import EngineChannel, SubprocessConduit
from chess_review.errors import (
    AnalysisAborted,
    AnalysisError,
    EngineTerminated,
    EngineUnavailable,
    EvaluationTimeout,
    ParseError,
)
from chess_review.evaluator import PositionEvaluator
from chess_review.models import AnalysisReport, GameRecord, MistakeRecord, Phase, Ply, Tier
from chess_review.sequencer import sequence

__all__ = [
    "AnalysisAborted",
    "AnalysisError",
    "AnalysisReport",
    "EngineChannel",
    "EngineTerminated",
    "EngineUnavailable",
    "EvaluationTimeout",
    "GameAnalyzer",
    "GameRecord",
    "MistakeRecord",
    "ParseError",
    "Phase",
    "Ply",
    "PositionEvaluator",
    "SubprocessConduit",
    "Tier",
    "analyze_game",
    "sequence",
]
