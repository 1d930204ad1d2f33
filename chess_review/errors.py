"""Error taxonomy for the analysis pipeline.

Every error carries a stable ``code`` so callers that surface failures
as payloads can do so without string matching on messages.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chess_review.models import AnalysisReport


class AnalysisError(Exception):
    """Base class for every failure raised by the analysis core."""

    code = "analysis_error"

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self), "detail": self.detail}


class ParseError(AnalysisError):
    """The move text cannot be replayed from its starting position."""

    code = "parse_error"

    def __init__(
        self,
        message: str,
        *,
        ply_index: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.ply_index = ply_index


class EngineUnavailable(AnalysisError):
    """The evaluator is missing, crashed, not started, or already stopped."""

    code = "engine_unavailable"


class EvaluationTimeout(AnalysisError):
    """One evaluator call did not complete within its time budget."""

    code = "evaluation_timeout"


class EngineTerminated(AnalysisError):
    """The channel was stopped while the request was queued or running."""

    code = "engine_terminated"


class AnalysisAborted(AnalysisError):
    """The analysis was cancelled; ``partial`` holds what was finished."""

    code = "analysis_aborted"

    def __init__(
        self,
        message: str,
        *,
        partial: AnalysisReport | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.partial = partial
