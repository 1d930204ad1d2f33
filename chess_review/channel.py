"""Serial request channel to one long-running UCI evaluator.

The evaluator is single-session: it answers one command batch at a time
and streams its output line by line. EngineChannel lets any number of
coroutines submit requests concurrently while guaranteeing that at most
one request is active on the wire. A request is written only after the
previous one has received its terminal line (or failed), and every
inbound line is routed to the active request alone.

The transport is abstracted as a Conduit so tests can drive the channel
with an in-memory script; SubprocessConduit talks to a real binary.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Awaitable, Callable, Iterable, Protocol

from chess_review import uci
from chess_review.errors import EngineTerminated, EngineUnavailable
from chess_review.models import EngineResult

logger = logging.getLogger(__name__)

TerminalPredicate = Callable[[str], bool]

_NEW, _STARTING, _RUNNING, _STOPPED = "new", "starting", "running", "stopped"


def _discard_outcome(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


class Conduit(Protocol):
    """Bidirectional line transport to the evaluator."""

    async def write_line(self, line: str) -> None: ...

    async def read_line(self) -> str | None:
        """Return the next line without its newline, or None at EOF."""
        ...

    async def close(self) -> None: ...


class SubprocessConduit:
    """Conduit over the stdin/stdout pipes of an engine subprocess."""

    def __init__(self, process: asyncio.subprocess.Process, *, kill_timeout: float = 2.0) -> None:
        self._process = process
        self._kill_timeout = kill_timeout

    @classmethod
    async def open(cls, path: str) -> SubprocessConduit:
        try:
            process = await asyncio.create_subprocess_exec(
                path,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise EngineUnavailable(f"Cannot start engine at {path}: {exc}") from exc
        logger.debug("Started engine process %s (pid %s)", path, process.pid)
        return cls(process)

    async def write_line(self, line: str) -> None:
        stdin = self._process.stdin
        stdin.write((line + "\n").encode("ascii"))
        await stdin.drain()

    async def read_line(self) -> str | None:
        raw = await self._process.stdout.readline()
        if not raw:
            return None
        return raw.decode("ascii", errors="replace").rstrip("\r\n")

    async def close(self) -> None:
        if self._process.returncode is not None:
            return
        try:
            await asyncio.wait_for(self._process.wait(), self._kill_timeout)
            return
        except asyncio.TimeoutError:
            pass
        try:
            self._process.kill()
        except ProcessLookupError:
            return
        await self._process.wait()


@dataclass(eq=False)
class PendingRequest:
    """One outstanding request and the state it accumulates."""

    commands: tuple[str, ...]
    is_terminal: TerminalPredicate
    future: asyncio.Future
    result: EngineResult = field(default_factory=EngineResult)
    settled: asyncio.Event = field(default_factory=asyncio.Event)

    def feed(self, line: str) -> bool:
        """Fold one inbound line into the result. True if it was terminal."""
        self.result.lines += 1
        if self.is_terminal(line):
            best = uci.parse_bestmove(line)
            if best is not None:
                self.result.best_move = best.move
                self.result.ponder = best.ponder
            return True

        info = uci.parse_info(line)
        if info is None or info.multipv != 1:
            return False
        if info.depth is not None:
            self.result.depth = info.depth
        if info.score is not None:
            self.result.score = info.score
        if info.pv:
            self.result.pv = list(info.pv)
        return False

    def complete(self) -> None:
        if not self.future.done():
            self.future.set_result(self.result)
        self.settled.set()

    def fail(self, exc: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(exc)
        self.settled.set()


class EngineChannel:
    """Owns one evaluator connection and serializes requests onto it."""

    def __init__(
        self,
        open_conduit: Callable[[], Awaitable[Conduit]],
        *,
        options: dict | None = None,
        handshake_timeout: float = 10.0,
    ) -> None:
        self._open_conduit = open_conduit
        self._options = dict(options or {})
        self._handshake_timeout = handshake_timeout
        self._state = _NEW
        self._conduit: Conduit | None = None
        self._queue: asyncio.Queue[PendingRequest] | None = None
        self._active: PendingRequest | None = None
        self._tasks: list[asyncio.Task] = []
        self._background: set[asyncio.Task] = set()
        self.engine_name: str | None = None

    @classmethod
    def for_binary(cls, path: str, **kwargs) -> EngineChannel:
        return cls(partial(SubprocessConduit.open, path), **kwargs)

    @property
    def running(self) -> bool:
        return self._state == _RUNNING

    async def __aenter__(self) -> EngineChannel:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Launch the evaluator, complete the handshake and apply options.

        Raises:
            EngineUnavailable: If the process cannot be started or the
                handshake does not finish within the handshake timeout.
        """
        if self._state == _RUNNING:
            return
        if self._state != _NEW:
            raise EngineUnavailable("Engine channel cannot be restarted once stopped")

        self._state = _STARTING
        try:
            self._conduit = await self._open_conduit()
        except OSError as exc:
            self._state = _STOPPED
            raise EngineUnavailable(f"Cannot open engine: {exc}") from exc
        except EngineUnavailable:
            self._state = _STOPPED
            raise

        self._queue = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._read_loop()),
            asyncio.create_task(self._dispatch_loop()),
        ]

        setup = [uci.setoption_command(name, value) for name, value in self._options.items()]
        setup.append(uci.isready_command())
        try:
            await asyncio.wait_for(
                self._enqueue([uci.uci_command()], uci.expects("uciok")),
                self._handshake_timeout,
            )
            await asyncio.wait_for(
                self._enqueue(setup, uci.expects("readyok")),
                self._handshake_timeout,
            )
        except asyncio.TimeoutError as exc:
            await self.stop()
            raise EngineUnavailable(
                f"Engine did not finish the handshake within {self._handshake_timeout}s"
            ) from exc
        except (EngineUnavailable, EngineTerminated) as exc:
            await self.stop()
            raise EngineUnavailable(f"Engine failed during handshake: {exc}") from exc

        self._state = _RUNNING
        logger.info("Engine ready: %s", self.engine_name or "unknown engine")

    async def stop(self) -> None:
        """Terminate the evaluator and fail every pending request."""
        if self._state == _STOPPED and self._conduit is None:
            return
        self._break(EngineTerminated, "Engine channel was stopped")

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        conduit, self._conduit = self._conduit, None
        if conduit is not None:
            try:
                await conduit.write_line(uci.quit_command())
            except OSError as exc:
                logger.debug("Could not send quit: %s", exc)
            await conduit.close()
        logger.debug("Engine channel stopped")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def submit(
        self,
        command: str | Iterable[str],
        is_terminal: TerminalPredicate = uci.is_bestmove,
    ) -> asyncio.Future:
        """Queue a command batch and return a future for its result.

        The batch is written only once every earlier request has settled.
        The future resolves with the accumulated EngineResult when a line
        satisfying ``is_terminal`` arrives.

        Raises:
            EngineUnavailable: If the channel is not running.
        """
        if self._state != _RUNNING:
            raise EngineUnavailable(f"Engine channel is not running (state: {self._state})")
        commands = [command] if isinstance(command, str) else list(command)
        return self._enqueue(commands, is_terminal)

    async def interrupt(self) -> None:
        """Ask the evaluator to finish the active search early."""
        if self._active is None or self._active.settled.is_set() or self._conduit is None:
            return
        try:
            await self._write(uci.stop_command())
        except EngineUnavailable as exc:
            logger.warning("Could not interrupt search: %s", exc)

    async def withdraw(self, future: asyncio.Future) -> None:
        """Give up on a submitted request without disturbing any other.

        A request still waiting in the queue is dropped before it reaches
        the wire. The active request is asked to stop and keeps the slot
        until the evaluator sends its terminal line. Whatever the future
        resolves to afterwards is discarded.
        """
        future.add_done_callback(_discard_outcome)
        active = self._active
        if active is not None and active.future is future and not active.settled.is_set():
            await self.interrupt()
        else:
            future.cancel()

    def _enqueue(self, commands: list[str], is_terminal: TerminalPredicate) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        request = PendingRequest(
            commands=tuple(commands),
            is_terminal=is_terminal,
            future=future,
        )
        future.add_done_callback(partial(self._on_future_done, request))
        self._queue.put_nowait(request)
        return future

    def _on_future_done(self, request: PendingRequest, future: asyncio.Future) -> None:
        # A caller gave up on a request already on the wire; the slot stays
        # busy until its terminal line arrives, so hurry the engine along.
        if future.cancelled() and request is self._active and not request.settled.is_set():
            task = asyncio.get_running_loop().create_task(self.interrupt())
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _write(self, line: str) -> None:
        logger.debug(">> %s", line)
        try:
            await self._conduit.write_line(line)
        except OSError as exc:
            raise EngineUnavailable(f"Cannot write to engine: {exc}") from exc

    async def _dispatch_loop(self) -> None:
        while self._state in (_STARTING, _RUNNING):
            request = await self._queue.get()
            if request.future.done():
                continue
            self._active = request
            try:
                for line in request.commands:
                    await self._write(line)
            except EngineUnavailable as exc:
                logger.warning("Engine write failed: %s", exc)
                self._break(EngineUnavailable, str(exc))
                return
            except Exception as exc:
                logger.exception("Engine write failed")
                self._break(EngineUnavailable, f"Cannot write to engine: {exc}")
                return
            await request.settled.wait()
            self._active = None

    async def _read_loop(self) -> None:
        while True:
            try:
                line = await self._conduit.read_line()
            except OSError as exc:
                logger.warning("Engine read failed: %s", exc)
                line = None
            except Exception as exc:
                logger.exception("Engine read failed")
                self._fail_reader(f"Cannot read engine output: {exc}")
                return
            if line is None:
                if self._state != _STOPPED:
                    logger.warning("Engine process closed its output")
                    self._break(EngineUnavailable, "Engine process exited unexpectedly")
                return
            try:
                self._handle_line(line)
            except Exception as exc:
                logger.exception("Cannot handle engine line: %s", line)
                self._fail_reader(f"Cannot handle engine output: {exc}")
                return

    def _fail_reader(self, message: str) -> None:
        if self._state != _STOPPED:
            self._break(EngineUnavailable, message)

    def _handle_line(self, line: str) -> None:
        logger.debug("<< %s", line)
        if line.startswith("id name "):
            self.engine_name = line[len("id name "):].strip()

        request = self._active
        if request is None or request.settled.is_set():
            logger.debug("No active request, ignoring line: %s", line)
            return
        if request.feed(line):
            request.complete()

    def _break(self, error: type[Exception], message: str) -> None:
        """Mark the channel dead and fail the active and queued requests."""
        self._state = _STOPPED
        if self._active is not None:
            self._active.fail(error(message))
        if self._queue is not None:
            while not self._queue.empty():
                self._queue.get_nowait().fail(error(message))
