"""Run controller: the running flag, its cancellation sources, and the tick loop."""

from __future__ import annotations

import logging
import os
import select
import signal
import sys
import threading
from typing import IO, Protocol

from crane.dashboard import Reporter
from crane.models import AttemptResult

logger = logging.getLogger(__name__)

QUIT_KEYS = frozenset("qQ")


class RunFlag:
    """Process-wide running flag. Cleared once, never set again."""

    def __init__(self) -> None:
        self._stopped = threading.Event()

    @property
    def running(self) -> bool:
        return not self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout``; returns True if a stop was requested."""
        return self._stopped.wait(timeout)


def install_signal_handlers(
    flag: RunFlag, signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)
) -> dict[int, object]:
    """Route ``signals`` to ``flag.stop()``. Returns the previous handlers."""

    def _handler(signum: int, _frame: object) -> None:
        logger.info("received %s, stopping after the current attempt", signal.Signals(signum).name)
        flag.stop()

    previous = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, _handler)
    return previous


class KeyboardWatcher(threading.Thread):
    """Background thread that stops the agent when ``q`` is pressed.

    Only active when ``stream`` is a terminal; the terminal is put in cbreak
    mode while watching and restored afterwards.
    """

    def __init__(self, flag: RunFlag, stream: IO[str] | None = None, poll: float = 0.1) -> None:
        super().__init__(name="crane-keyboard", daemon=True)
        self.flag = flag
        self.stream = stream or sys.stdin
        self.poll = poll

    def handle_key(self, key: str) -> None:
        if key in QUIT_KEYS:
            logger.info("quit requested from keyboard")
            self.flag.stop()

    def run(self) -> None:
        if not self.stream.isatty():
            return
        import termios
        import tty

        fd = self.stream.fileno()
        saved = termios.tcgetattr(fd)
        try:
            tty.setcbreak(fd)
            while self.flag.running:
                ready, _, _ = select.select([fd], [], [], self.poll)
                if ready:
                    self.handle_key(os.read(fd, 1).decode(errors="ignore"))
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)


class Engine(Protocol):
    def attempt(self) -> AttemptResult: ...


class Timer(Protocol):
    def is_due(self) -> bool: ...

    def reset(self) -> float: ...


class RunController:
    """Ticks until the flag is cleared, running an attempt whenever the timer is due.

    The flag is only checked between ticks, so an attempt in progress always
    runs to completion before the loop exits.
    """

    def __init__(
        self,
        engine: Engine,
        timer: Timer,
        flag: RunFlag,
        reporter: Reporter | None = None,
        *,
        tick_seconds: float = 0.05,
    ) -> None:
        self.engine = engine
        self.timer = timer
        self.flag = flag
        self.reporter = reporter
        self.tick_seconds = tick_seconds
        self.last_result: AttemptResult | None = None

    def tick(self) -> AttemptResult | None:
        """Run an attempt if one is due; returns its result, else None."""
        if not self.timer.is_due():
            return None
        result = self.engine.attempt()
        due_time = self.timer.reset()
        self.last_result = result
        if self.reporter is not None:
            self.reporter.report(result, due_time)
        return result

    def run(self) -> None:
        logger.info("watching for new commits")
        while self.flag.running:
            self.tick()
            self.flag.wait(self.tick_seconds)
        logger.info("stopped")
