"""Shared data models for the game analysis pipeline.

Everything here is created and consumed within a single analysis run.
The report types are frozen; PhaseBucket is the one mutable accumulator.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum

import chess.engine

COLORS = ("white", "black")

# Pawn value used for a mate score in any arithmetic that is not mate-aware
MATE_VALUE = 100.0


class Tier(str, Enum):
    """Severity bucket assigned to a tracked player's move."""

    BLUNDER = "blunder"
    MISTAKE = "mistake"
    INACCURACY = "inaccuracy"
    BRILLIANT = "brilliant"
    NONE = "none"


class Phase(str, Enum):
    OPENING = "opening"
    MIDDLEGAME = "middlegame"
    ENDGAME = "endgame"


@dataclass(frozen=True)
class GameRecord:
    """A finished game as handed over by the caller."""

    move_text: str
    tracked_color: str = "white"

    def __post_init__(self) -> None:
        if self.tracked_color not in COLORS:
            raise ValueError(
                f"tracked_color must be 'white' or 'black', got {self.tracked_color!r}"
            )


@dataclass(frozen=True)
class Ply:
    """One half-move replayed from the game record."""

    index: int
    side_to_move: str
    san: str
    uci: str
    fen_before: str
    fen_after: str
    piece_count_after: int
    move_number: int


@dataclass
class EngineResult:
    """Accumulated output of one channel request.

    Intermediate ``info`` lines overwrite depth, score and pv as they
    stream in; the terminal ``bestmove`` line fills in the move.
    """

    best_move: str | None = None
    ponder: str | None = None
    score: chess.engine.Score | None = None
    depth: int = 0
    pv: list[str] = field(default_factory=list)
    lines: int = 0

    @property
    def mate(self) -> int | None:
        if self.score is None:
            return None
        return self.score.mate()

    @property
    def pawns(self) -> float:
        """Score in pawns from the side to move, mate saturated to +-100."""
        if self.score is None:
            return 0.0
        mate = self.score.mate()
        if mate is not None:
            return MATE_VALUE if mate > 0 else -MATE_VALUE
        return self.score.score() / 100.0


@dataclass(frozen=True)
class PositionAnalysis:
    """Engine verdict on one position."""

    fen: str
    move: str | None
    move_san: str | None
    evaluation: float
    mate: int | None = None
    depth: int = 0
    pv: tuple[str, ...] = ()
    pv_san: tuple[str, ...] = ()


@dataclass(frozen=True)
class Classification:
    """Classifier output for one tracked ply (tracked player's perspective)."""

    tier: Tier
    delta: float
    accuracy: float
    eval_before: float
    eval_after: float


@dataclass(frozen=True)
class MistakeRecord:
    move_number: int
    ply_index: int
    fen: str
    played_move: str
    best_move: str
    evaluation: float
    previous_eval: float
    engine_eval: float
    severity: Tier
    phase: Phase
    explanation: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["severity"] = self.severity.value
        data["phase"] = self.phase.value
        return data


@dataclass
class PhaseBucket:
    accuracy_sum: float = 0.0
    ply_count: int = 0

    def add(self, accuracy: float) -> None:
        self.accuracy_sum += accuracy
        self.ply_count += 1

    def finalize(self) -> PhaseSummary:
        if self.ply_count == 0:
            return PhaseSummary(accuracy=0.0, moves=0)
        return PhaseSummary(
            accuracy=self.accuracy_sum / self.ply_count,
            moves=self.ply_count,
        )


@dataclass(frozen=True)
class PhaseSummary:
    accuracy: float
    moves: int


@dataclass(frozen=True)
class AnalysisReport:
    """Final result of analyzing one game for one player."""

    tracked_color: str
    average_accuracy: float
    blunders: int
    mistakes: int
    inaccuracies: int
    brilliant_moves: int
    opening: PhaseSummary
    middlegame: PhaseSummary
    endgame: PhaseSummary
    mistakes_list: tuple[MistakeRecord, ...] = ()
    plies_analyzed: int = 0
    complete: bool = True

    def to_dict(self) -> dict:
        """Plain dict suitable for JSON serialization and persistence."""
        return {
            "tracked_color": self.tracked_color,
            "average_accuracy": self.average_accuracy,
            "blunders": self.blunders,
            "mistakes": self.mistakes,
            "inaccuracies": self.inaccuracies,
            "brilliant_moves": self.brilliant_moves,
            "opening_phase": asdict(self.opening),
            "middlegame_phase": asdict(self.middlegame),
            "endgame_phase": asdict(self.endgame),
            "mistakes_list": [m.to_dict() for m in self.mistakes_list],
            "plies_analyzed": self.plies_analyzed,
            "complete": self.complete,
        }
