"""Fold per-ply classifications into an AnalysisReport."""

from __future__ import annotations

from chess_review.models import (
    AnalysisReport,
    Classification,
    MistakeRecord,
    Phase,
    PhaseBucket,
    Ply,
    PositionAnalysis,
    Tier,
)

_EXPLANATIONS = {
    Tier.BLUNDER: (
        "This move loses significant material or position. The evaluation "
        "dropped by {drop:.1f} pawns. Consider {best} instead."
    ),
    Tier.MISTAKE: (
        "This move gives away an advantage. A better continuation was {best}, "
        "maintaining your position."
    ),
    Tier.INACCURACY: (
        "Not the most precise move. {best} would have been slightly better."
    ),
}


def explain(tier: Tier, delta: float, best_move: str) -> str:
    template = _EXPLANATIONS.get(tier)
    if template is None:
        return "Suboptimal move."
    return template.format(drop=abs(delta), best=best_move)


class ReportAggregator:
    """Running totals for one analysis; feed plies in game order."""

    def __init__(self, tracked_color: str) -> None:
        self.tracked_color = tracked_color
        self._total_accuracy = 0.0
        self._total_plies = 0
        self._counts = {tier: 0 for tier in Tier}
        self._phases = {phase: PhaseBucket() for phase in Phase}
        self._mistakes: list[MistakeRecord] = []

    @property
    def plies(self) -> int:
        return self._total_plies

    def add(
        self,
        ply: Ply,
        analysis: PositionAnalysis,
        classification: Classification,
        phase: Phase,
    ) -> MistakeRecord | None:
        """Fold one tracked ply in; returns the mistake record if one was made."""
        self._total_accuracy += classification.accuracy
        self._total_plies += 1
        self._phases[phase].add(classification.accuracy)

        tier = classification.tier
        self._counts[tier] += 1
        if tier in (Tier.NONE, Tier.BRILLIANT):
            return None

        best = analysis.move_san or analysis.move or "the engine's choice"
        record = MistakeRecord(
            move_number=ply.move_number,
            ply_index=ply.index,
            fen=ply.fen_before,
            played_move=ply.san,
            best_move=best,
            evaluation=classification.eval_after,
            previous_eval=classification.eval_before,
            engine_eval=analysis.evaluation,
            severity=tier,
            phase=phase,
            explanation=explain(tier, classification.delta, best),
        )
        self._mistakes.append(record)
        return record

    def finalize(self, *, complete: bool = True) -> AnalysisReport:
        average = self._total_accuracy / self._total_plies if self._total_plies else 0.0
        return AnalysisReport(
            tracked_color=self.tracked_color,
            average_accuracy=average,
            blunders=self._counts[Tier.BLUNDER],
            mistakes=self._counts[Tier.MISTAKE],
            inaccuracies=self._counts[Tier.INACCURACY],
            brilliant_moves=self._counts[Tier.BRILLIANT],
            opening=self._phases[Phase.OPENING].finalize(),
            middlegame=self._phases[Phase.MIDDLEGAME].finalize(),
            endgame=self._phases[Phase.ENDGAME].finalize(),
            mistakes_list=tuple(self._mistakes),
            plies_analyzed=self._total_plies,
            complete=complete,
        )
