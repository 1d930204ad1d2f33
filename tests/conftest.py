"""Shared test fixtures with dual-mode support (scripted vs real Stockfish).

Usage:
    uv run pytest tests/                  # Fast, scripted engine (no Stockfish)
    uv run pytest tests/ --e2e            # Also run tests against real Stockfish

Fixtures:
    engine_factory   - Builds an EngineChannel wired to a FakeConduit that
                       answers the UCI handshake and replays scripted searches.
    search_lines     - Builds the output lines of one scripted search.
    clean_env        - Removes CHESS_REVIEW_* variables around each test.
"""

from __future__ import annotations

import asyncio
import os

import pytest

from chess_review.channel import EngineChannel


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for real Stockfish tests."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run with real Stockfish engine (no fakes).",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (requires real Stockfish)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="needs --e2e and a Stockfish binary")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# ---------------------------------------------------------------------------
# Scripted engine
# ---------------------------------------------------------------------------


class FakeConduit:
    """In-memory UCI engine that replays one scripted search per ``go``.

    Every write and every line handed to the reader is recorded in
    ``events`` so tests can check how requests interleave on the wire.
    """

    def __init__(
        self,
        searches: list[list[str]] | None = None,
        *,
        respond_to_uci: bool = True,
        stop_reply: list[str] | None = None,
    ) -> None:
        self.searches = list(searches or [])
        self.respond_to_uci = respond_to_uci
        self.stop_reply = list(stop_reply or [])
        self.events: list[tuple[str, str]] = []
        self.closed = False
        self._incoming: asyncio.Queue | None = None

    @property
    def incoming(self) -> asyncio.Queue:
        if self._incoming is None:
            self._incoming = asyncio.Queue()
        return self._incoming

    @property
    def writes(self) -> list[str]:
        return [line for kind, line in self.events if kind == "write"]

    def emit(self, *lines: str | None) -> None:
        for line in lines:
            self.incoming.put_nowait(line)

    async def write_line(self, line: str) -> None:
        if self.closed:
            raise BrokenPipeError("engine pipe closed")
        self.events.append(("write", line))
        if line == "uci" and self.respond_to_uci:
            self.emit("id name FakeFish 1.0", "id author tests", "uciok")
        elif line == "isready":
            self.emit("readyok")
        elif line.startswith("go"):
            if self.searches:
                self.emit(*self.searches.pop(0))
        elif line == "stop":
            self.emit(*self.stop_reply)

    async def read_line(self) -> str | None:
        line = await self.incoming.get()
        if line is not None:
            self.events.append(("read", line))
        return line

    async def close(self) -> None:
        self.closed = True
        self.emit(None)


def _search_lines(
    cp: int | None = 0,
    best: str = "e2e4",
    *,
    mate: int | None = None,
    depth: int = 12,
    pv: str | None = None,
) -> list[str]:
    """Output of one search: a shallow info line, a final one, bestmove."""
    score = f"mate {mate}" if mate is not None else f"cp {cp}"
    line_pv = pv or best
    return [
        "info string NNUE evaluation enabled",
        f"info depth 1 seldepth 1 multipv 1 score cp 5 nodes 20 nps 20000 pv {best}",
        f"info depth {depth} seldepth {depth + 4} multipv 1 score {score} nodes 90000 "
        f"nps 1000000 hashfull 12 time 90 pv {line_pv}",
        f"bestmove {best}",
    ]


@pytest.fixture()
def search_lines():
    return _search_lines


@pytest.fixture()
def engine_factory():
    """Return a builder: searches -> (EngineChannel, FakeConduit)."""

    def _make(searches=None, *, handshake_timeout: float = 1.0, **conduit_kwargs):
        conduit = FakeConduit(searches, **conduit_kwargs)

        async def _open():
            return conduit

        channel = EngineChannel(
            _open,
            options={"Threads": 2, "Hash": 128},
            handshake_timeout=handshake_timeout,
        )
        return channel, conduit

    return _make


async def _settle(rounds: int = 5) -> None:
    """Let queued tasks run a few scheduler rounds."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def settle():
    return _settle


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_env():
    """Remove CHESS_REVIEW_* variables for the test and restore them after."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("CHESS_REVIEW_")}
    for key in saved:
        del os.environ[key]
    yield
    for key in [k for k in os.environ if k.startswith("CHESS_REVIEW_")]:
        del os.environ[key]
    os.environ.update(saved)
