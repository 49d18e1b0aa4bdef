"""Tests for the console reporter and the rich dashboard."""

from __future__ import annotations

import io

from rich.console import Console

from crane.dashboard import ConsoleReporter, Dashboard, describe
from crane.errors import TransportError
from crane.models import AttemptKind, AttemptResult, RenderState, StatusState

SHA = "1234567" + "0" * 33


def _built(state=StatusState.SUCCESS, url="https://logs/stdout.txt"):
    return AttemptResult(kind=AttemptKind.BUILT, sha=SHA, state=state, target_url=url)


def _error(message="boom"):
    return AttemptResult(kind=AttemptKind.ERROR, sha=SHA, error=TransportError(message))


def _render(dashboard: Dashboard) -> str:
    console = Console(file=io.StringIO(), width=100, color_system=None)
    console.print(dashboard.render())
    return console.file.getvalue()


class TestDescribe:
    def test_built(self):
        assert describe(_built()) == "[1234567] Succeeded (https://logs/stdout.txt)"

    def test_error(self):
        assert describe(_error()) == "[1234567] error: boom"

    def test_failure_maps_to_failed(self):
        assert _built(StatusState.FAILURE).render_state == RenderState.FAILED
        assert _built(StatusState.ERROR).render_state == RenderState.FAILED


class TestConsoleReporter:
    def test_prints_only_changes(self):
        lines: list[str] = []
        reporter = ConsoleReporter(out=lines.append)
        handled = AttemptResult(
            kind=AttemptKind.ALREADY_HANDLED, sha=SHA, state=StatusState.PENDING
        )

        reporter.report(handled, 0)
        reporter.report(handled, 0)
        reporter.report(_built(), 0)

        assert lines == ["[1234567] Pending", "[1234567] Succeeded (https://logs/stdout.txt)"]

    def test_every_error_is_printed(self):
        lines: list[str] = []
        reporter = ConsoleReporter(out=lines.append)

        reporter.report(_error("one"), 0)
        reporter.report(_error("one"), 0)

        assert lines == ["[1234567] error: one", "[1234567] error: one"]


class TestDashboard:
    def test_renders_properties_and_status(self):
        dashboard = Dashboard([("Owner", "acme"), ("Branch", "main")], clock=lambda: 10.0)
        dashboard.report(_built(), due_time=14.0)

        out = _render(dashboard)

        assert "Succeeded" in out
        assert "acme" in out
        assert "main" in out
        assert SHA in out
        assert "in 4.0s" in out

    def test_error_panel_persists_until_success(self):
        dashboard = Dashboard([], clock=lambda: 0.0)

        dashboard.report(_error("api down"), due_time=5.0)
        assert "api down" in _render(dashboard)

        dashboard.report(
            AttemptResult(kind=AttemptKind.NO_COMMITS), due_time=5.0
        )
        assert "api down" not in _render(dashboard)

    def test_newer_error_replaces_older(self):
        dashboard = Dashboard([], clock=lambda: 0.0)
        dashboard.report(_error("first"), due_time=1.0)
        dashboard.report(_error("second"), due_time=1.0)

        out = _render(dashboard)
        assert "second" in out
        assert "first" not in out

    def test_error_after_claim_shows_pending(self):
        dashboard = Dashboard([], clock=lambda: 0.0)
        dashboard.report(
            AttemptResult(
                kind=AttemptKind.ERROR,
                sha=SHA,
                state=StatusState.PENDING,
                error=TransportError("x"),
            ),
            due_time=1.0,
        )
        assert dashboard.state == RenderState.PENDING
