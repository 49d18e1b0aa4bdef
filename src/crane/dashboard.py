"""Reporters that consume attempt results: a plain console feed and a rich dashboard."""

# ruff: noqa: T201 - print is the user-facing output in non-interactive mode

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from typing import Protocol

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text

from crane.models import AttemptKind, AttemptResult, RenderState


class Reporter(Protocol):
    def report(self, result: AttemptResult, due_time: float) -> None: ...


def describe(result: AttemptResult) -> str:
    """One-line summary of an attempt."""
    sha = result.sha[:7] if result.sha else "-"
    if result.kind == AttemptKind.ERROR:
        return f"[{sha}] error: {result.error}"
    if result.kind == AttemptKind.NO_COMMITS:
        return "no commits on the watched branch yet"
    line = f"[{sha}] {result.render_state}"
    if result.target_url:
        line += f" ({result.target_url})"
    return line


class ConsoleReporter:
    """Non-interactive reporting: one line per change, one line per error."""

    def __init__(self, out: Callable[[str], None] = print) -> None:
        self._out = out
        self._last: tuple | None = None

    def report(self, result: AttemptResult, due_time: float) -> None:
        if result.kind == AttemptKind.ERROR:
            self._out(describe(result))
            self._last = None
            return
        key = (result.kind, result.sha, result.state)
        if key != self._last:
            self._out(describe(result))
            self._last = key


STATUS_STYLES = {
    RenderState.SUCCEEDED: Style(color="green"),
    RenderState.PENDING: Style(color="yellow", blink=True),
    RenderState.FAILED: Style(color="white", bgcolor="red", blink=True),
}


class Dashboard:
    """Live terminal view of the agent: status, properties, next attempt, last error.

    The last error stays on screen until a newer error replaces it or an
    attempt succeeds.
    """

    def __init__(
        self,
        properties: Sequence[tuple[str, str]],
        *,
        console: Console | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.properties = list(properties)
        self.console = console or Console()
        self._clock = clock
        self.state = RenderState.PENDING
        self.sha: str | None = None
        self.target_url: str | None = None
        self.due_time: float | None = None
        self.last_error: str | None = None
        self._live: Live | None = None

    def __enter__(self) -> Dashboard:
        self._live = Live(
            get_renderable=self.render,
            console=self.console,
            refresh_per_second=4,
            transient=False,
        )
        self._live.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def report(self, result: AttemptResult, due_time: float) -> None:
        self.due_time = due_time
        if result.sha:
            self.sha = result.sha
        if result.render_state is not None:
            self.state = result.render_state
        if result.kind == AttemptKind.ERROR:
            self.last_error = str(result.error)
        else:
            self.last_error = None
            self.target_url = result.target_url
        if self._live is not None:
            self._live.refresh()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self) -> Group:
        panels = [
            self._status_panel(),
            self._property_panel(),
            self._commit_panel(),
        ]
        if self.last_error:
            panels.append(
                Panel(Text(self.last_error, style="red"), title="Error", border_style="red")
            )
        panels.append(Text("Press q to quit", style="dim"))
        return Group(*panels)

    def _status_panel(self) -> Panel:
        return Panel(Text(str(self.state), style=STATUS_STYLES[self.state]), title="Status")

    def _property_panel(self) -> Panel:
        table = Table(show_edge=False, header_style="bright_black")
        table.add_column("Properties", width=12)
        table.add_column("")
        for name, value in self.properties:
            table.add_row(name, value)
        return Panel(table, title="Agent")

    def _commit_panel(self) -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bright_black")
        table.add_column()
        table.add_row("Commit", self.sha or "-")
        table.add_row("Logs", self.target_url or "-")
        if self.due_time is None:
            table.add_row("Next attempt", "now")
        else:
            remaining = max(0.0, self.due_time - self._clock())
            table.add_row("Next attempt", f"in {remaining:.1f}s")
        return Panel(table, title="Build")
