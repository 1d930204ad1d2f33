"""Runtime configuration for the analyzer.

Defaults are Threads 2, Hash 128 MB, depth 15
before a move and 12 after it. Every field can be overridden through a
CHESS_REVIEW_* environment variable.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from chess_review.errors import EngineUnavailable

# Engine search paths in priority order
_ENGINE_PATHS = [
    "/opt/homebrew/bin/stockfish",
    "/usr/local/bin/stockfish",
    "/usr/bin/stockfish",
]

_ENV_PREFIX = "CHESS_REVIEW_"


def find_engine_binary() -> str:
    """Auto-detect a Stockfish binary.

    Checks known install paths, then falls back to PATH lookup.

    Returns:
        Path to the engine binary.

    Raises:
        EngineUnavailable: If no engine is found anywhere.
    """
    for path_str in _ENGINE_PATHS:
        if Path(path_str).is_file():
            return path_str

    which_result = shutil.which("stockfish")
    if which_result is not None:
        return which_result

    raise EngineUnavailable(
        f"Stockfish not found. Install it or set {_ENV_PREFIX}ENGINE_PATH."
    )


def _env_number(name: str, default, cast):
    raw = os.environ.get(_ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}{name} must be a number, got {raw!r}") from None


@dataclass
class AnalyzerConfig:
    engine_path: str | None = None
    threads: int = 2
    hash_mb: int = 128
    analysis_depth: int = 15
    evaluation_depth: int = 12
    handshake_timeout: float = 10.0
    evaluation_timeout: float = 60.0

    @classmethod
    def from_env(cls) -> AnalyzerConfig:
        defaults = cls()
        return cls(
            engine_path=os.environ.get(_ENV_PREFIX + "ENGINE_PATH") or None,
            threads=_env_number("THREADS", defaults.threads, int),
            hash_mb=_env_number("HASH_MB", defaults.hash_mb, int),
            analysis_depth=_env_number("ANALYSIS_DEPTH", defaults.analysis_depth, int),
            evaluation_depth=_env_number("EVALUATION_DEPTH", defaults.evaluation_depth, int),
            handshake_timeout=_env_number("HANDSHAKE_TIMEOUT", defaults.handshake_timeout, float),
            evaluation_timeout=_env_number("EVALUATION_TIMEOUT", defaults.evaluation_timeout, float),
        )

    def resolve_engine_path(self) -> str:
        return self.engine_path or find_engine_binary()

    def engine_options(self) -> dict:
        return {"Threads": self.threads, "Hash": self.hash_mb}
