"""Data models shared by the reconciliation engine and its collaborators."""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class StatusState(enum.StrEnum):
    """Commit status states, exactly as the platform names them."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


class RenderState(enum.StrEnum):
    """What the dashboard shows for the current commit."""

    SUCCEEDED = "Succeeded"
    PENDING = "Pending"
    FAILED = "Failed"

    @classmethod
    def from_status(cls, state: StatusState) -> RenderState:
        if state == StatusState.SUCCESS:
            return cls.SUCCEEDED
        if state == StatusState.PENDING:
            return cls.PENDING
        return cls.FAILED


class RepositoryLocator(BaseModel):
    """Owner/name pair identifying the watched repository."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(min_length=1)
    name: str = Field(min_length=1)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


class CommitLocator(BaseModel):
    """A resolved commit in the watched repository."""

    model_config = ConfigDict(frozen=True)

    repository: RepositoryLocator
    sha: str = Field(pattern=r"^[0-9a-f]{40}$")

    @property
    def short_sha(self) -> str:
        return self.sha[:7]


class Status(BaseModel):
    """A single commit status entry (GitHub statuses API)."""

    state: StatusState
    target_url: str | None = None
    description: str | None = None
    context: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def request_body(self) -> dict[str, str]:
        """Body for ``POST /repos/{owner}/{repo}/statuses/{sha}``."""
        body = {"state": self.state.value}
        for name in ("target_url", "description", "context"):
            value = getattr(self, name)
            if value is not None:
                body[name] = value
        return body


class BuildOutcome(BaseModel):
    """Captured result of running the build command against one commit."""

    sha: str
    success: bool
    exit_code: int | None = None
    stdout: bytes = b""
    stderr: bytes = b""
    duration_ms: int = 0


class AttemptKind(enum.StrEnum):
    """How a reconciliation attempt ended."""

    NO_COMMITS = "no_commits"
    ALREADY_HANDLED = "already_handled"
    BUILT = "built"
    ERROR = "error"


class AttemptResult(BaseModel):
    """What one reconciliation attempt did, as reported to the dashboard."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: AttemptKind
    sha: str | None = None
    state: StatusState | None = None
    target_url: str | None = None
    error: Exception | None = None

    @property
    def render_state(self) -> RenderState | None:
        if self.state is None:
            return None
        return RenderState.from_status(self.state)

    @property
    def ok(self) -> bool:
        return self.kind != AttemptKind.ERROR
