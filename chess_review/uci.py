"""Line grammar for talking to a UCI evaluator.

Outbound: plain ASCII command lines. Inbound: every line is either an
intermediate ``info`` line (optional depth, score and principal
variation), a terminal ``bestmove`` line, or something we ignore.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import chess.engine

# Tokens that end the value of the preceding info field
_INFO_KEYWORDS = frozenset({
    "depth", "seldepth", "time", "nodes", "pv", "multipv", "score",
    "currmove", "currmovenumber", "hashfull", "nps", "tbhits", "sbhits",
    "cpuload", "string", "refutation", "currline", "wdl",
    "lowerbound", "upperbound",
})


@dataclass
class InfoLine:
    depth: int | None = None
    score: chess.engine.Score | None = None
    pv: list[str] = field(default_factory=list)
    multipv: int = 1


@dataclass
class BestMoveLine:
    move: str | None
    ponder: str | None = None


# ---------------------------------------------------------------------------
# Outbound commands
# ---------------------------------------------------------------------------


def uci_command() -> str:
    return "uci"


def isready_command() -> str:
    return "isready"


def setoption_command(name: str, value: object) -> str:
    return f"setoption name {name} value {value}"


def position_command(fen: str) -> str:
    return f"position fen {fen}"


def go_command(depth: int) -> str:
    if depth < 1:
        raise ValueError(f"Search depth must be positive, got {depth}")
    return f"go depth {depth}"


def stop_command() -> str:
    return "stop"


def quit_command() -> str:
    return "quit"


# ---------------------------------------------------------------------------
# Inbound lines
# ---------------------------------------------------------------------------


def is_bestmove(line: str) -> bool:
    """Terminal predicate for search requests."""
    return line.startswith("bestmove")


def expects(token: str):
    """Terminal predicate matching a single exact line, e.g. ``uciok``."""

    def _predicate(line: str) -> bool:
        return line.strip() == token

    return _predicate


def _parse_score(tokens: list[str], i: int) -> tuple[chess.engine.Score | None, int]:
    """Parse ``score cp N`` / ``score mate N`` starting after ``score``."""
    if i + 1 >= len(tokens):
        return None, len(tokens)
    kind, raw = tokens[i], tokens[i + 1]
    try:
        value = int(raw)
    except ValueError:
        return None, i + 2
    if kind == "cp":
        return chess.engine.Cp(value), i + 2
    if kind == "mate":
        return chess.engine.Mate(value), i + 2
    return None, i + 2


def parse_info(line: str) -> InfoLine | None:
    """Parse an ``info`` line. Returns None for anything unusable."""
    tokens = line.split()
    if not tokens or tokens[0] != "info":
        return None

    info = InfoLine()
    i = 1
    try:
        while i < len(tokens):
            token = tokens[i]
            if token == "string":
                # Free text runs to the end of the line
                break
            if token == "depth":
                info.depth = int(tokens[i + 1])
                i += 2
            elif token == "multipv":
                info.multipv = int(tokens[i + 1])
                i += 2
            elif token == "score":
                info.score, i = _parse_score(tokens, i + 1)
            elif token == "pv":
                i += 1
                while i < len(tokens) and tokens[i] not in _INFO_KEYWORDS:
                    info.pv.append(tokens[i])
                    i += 1
            else:
                i += 1
    except (IndexError, ValueError):
        return None

    if info.depth is None and info.score is None and not info.pv:
        return None
    return info


def parse_bestmove(line: str) -> BestMoveLine | None:
    tokens = line.split()
    if not tokens or tokens[0] != "bestmove":
        return None
    move = tokens[1] if len(tokens) > 1 else None
    if move in ("(none)", "0000"):
        move = None
    ponder = None
    if len(tokens) > 3 and tokens[2] == "ponder":
        ponder = tokens[3]
    return BestMoveLine(move=move, ponder=ponder)
