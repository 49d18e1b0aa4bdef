"""Reconciliation engine: one pass of compare-remote-status-then-act.

The platform's status list is the only record of what has been built. Each
attempt re-reads it, so the engine keeps no state between attempts and is
safe across restarts:

1. Ask the platform for the newest commit on the watched branch.
2. Read that commit's statuses and find the newest one under our context.
3. If there is one, the commit is already claimed; report it and stop.
4. Otherwise claim it with ``pending``, reset the checkout, run the build,
   archive stdout/stderr, and post ``success`` or ``failure`` linking the
   archived stdout.

Any error ends the attempt. Nothing is retried within an attempt; the next
attempt starts over from remote state.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from crane.errors import CraneError
from crane.models import (
    AttemptKind,
    AttemptResult,
    BuildOutcome,
    CommitLocator,
    RepositoryLocator,
    Status,
    StatusState,
)

logger = logging.getLogger(__name__)

PENDING_DESCRIPTION = "Build started"

# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------


class Platform(Protocol):
    def latest_commit(self, repo: RepositoryLocator, branch: str) -> CommitLocator | None: ...

    def statuses(self, commit: CommitLocator) -> list[Status]: ...

    def set_status(self, commit: CommitLocator, status: Status) -> None: ...


class Checkout(Protocol):
    path: Path

    def reset_to(self, commit: CommitLocator) -> None: ...


class Archive(Protocol):
    def put_build_logs(self, sha: str, stdout: bytes, stderr: bytes) -> str: ...


class Builder(Protocol):
    def __call__(
        self, command: str, cwd: Path, sha: str, *, timeout: float | None = None
    ) -> BuildOutcome: ...


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


class Action(enum.StrEnum):
    BUILD = "build"
    SKIP = "skip"


def current_status(statuses: Sequence[Status], context: str) -> Status | None:
    """Newest status under ``context``; the platform lists newest first."""
    for status in statuses:
        if status.context == context:
            return status
    return None


def is_stale_pending(status: Status, now: datetime, ttl: float) -> bool:
    if status.state != StatusState.PENDING:
        return False
    stamp = status.updated_at or status.created_at
    if stamp is None:
        return False
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=UTC)
    return (now - stamp).total_seconds() > ttl


def plan_action(
    statuses: Sequence[Status],
    context: str,
    *,
    now: datetime | None = None,
    pending_ttl: float | None = None,
) -> tuple[Action, Status | None]:
    """Decide whether a commit needs building from its statuses alone.

    Any status under ``context`` means the commit is handled, whatever its
    state. With ``pending_ttl`` set, a ``pending`` older than the TTL is
    treated as abandoned and the commit is built again.
    """
    status = current_status(statuses, context)
    if status is None:
        return Action.BUILD, None
    if pending_ttl is not None and is_stale_pending(
        status, now or datetime.now(UTC), pending_ttl
    ):
        return Action.BUILD, status
    return Action.SKIP, status


def final_description(outcome: BuildOutcome) -> str:
    if outcome.success:
        return "Build succeeded"
    if outcome.exit_code is None:
        return "Build timed out"
    return f"Build failed (exit code {outcome.exit_code})"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ReconciliationEngine:
    """Runs reconciliation attempts, strictly one at a time."""

    def __init__(
        self,
        *,
        platform: Platform,
        checkout: Checkout,
        archive: Archive,
        builder: Builder,
        repository: RepositoryLocator,
        branch: str,
        context: str,
        command: str,
        build_timeout: float | None = None,
        pending_ttl: float | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.platform = platform
        self.checkout = checkout
        self.archive = archive
        self.builder = builder
        self.repository = repository
        self.branch = branch
        self.context = context
        self.command = command
        self.build_timeout = build_timeout
        self.pending_ttl = pending_ttl
        self._clock = clock

    def attempt(self) -> AttemptResult:
        """Run one attempt to completion. Never raises."""
        commit: CommitLocator | None = None
        claimed = False
        try:
            commit = self.platform.latest_commit(self.repository, self.branch)
            if commit is None:
                logger.debug("no commits on %s", self.branch)
                return AttemptResult(kind=AttemptKind.NO_COMMITS)

            statuses = self.platform.statuses(commit)
            action, status = plan_action(
                statuses, self.context, now=self._clock(), pending_ttl=self.pending_ttl
            )
            if action == Action.SKIP and status is not None:
                logger.debug("%s already %s", commit.short_sha, status.state.value)
                return AttemptResult(
                    kind=AttemptKind.ALREADY_HANDLED,
                    sha=commit.sha,
                    state=status.state,
                    target_url=status.target_url,
                )
            if status is not None:
                logger.warning(
                    "%s has a stale pending status, building again", commit.short_sha
                )

            self._claim(commit)
            claimed = True
            return self._build(commit)
        except CraneError as exc:
            logger.error("attempt failed: %s", exc)
            return self._failed(commit, claimed, exc)
        except Exception as exc:
            logger.exception("attempt failed unexpectedly")
            return self._failed(commit, claimed, exc)

    def _claim(self, commit: CommitLocator) -> None:
        logger.info("new commit %s on %s", commit.short_sha, self.branch)
        self.platform.set_status(
            commit,
            Status(
                state=StatusState.PENDING,
                description=PENDING_DESCRIPTION,
                context=self.context,
            ),
        )

    def _build(self, commit: CommitLocator) -> AttemptResult:
        self.checkout.reset_to(commit)
        outcome = self.builder(
            self.command, self.checkout.path, commit.sha, timeout=self.build_timeout
        )
        log_url = self.archive.put_build_logs(commit.sha, outcome.stdout, outcome.stderr)

        state = StatusState.SUCCESS if outcome.success else StatusState.FAILURE
        self.platform.set_status(
            commit,
            Status(
                state=state,
                target_url=log_url,
                description=final_description(outcome),
                context=self.context,
            ),
        )
        return AttemptResult(
            kind=AttemptKind.BUILT, sha=commit.sha, state=state, target_url=log_url
        )

    @staticmethod
    def _failed(
        commit: CommitLocator | None, claimed: bool, exc: Exception
    ) -> AttemptResult:
        return AttemptResult(
            kind=AttemptKind.ERROR,
            sha=commit.sha if commit else None,
            state=StatusState.PENDING if claimed else None,
            error=exc,
        )
