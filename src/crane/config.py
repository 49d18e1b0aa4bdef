"""Agent configuration, layered from a YAML file, environment, and CLI flags."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from crane.models import RepositoryLocator

# Environment variable for each config field. Later sources win:
# YAML file < environment < explicit overrides (CLI flags).
ENV_VARS: dict[str, tuple[str, ...]] = {
    "github_user": ("CRANE_GITHUB_USER",),
    "github_token": ("CRANE_GITHUB_TOKEN", "GITHUB_TOKEN"),
    "owner": ("CRANE_OWNER",),
    "repo": ("CRANE_REPO",),
    "branch": ("CRANE_BRANCH",),
    "context": ("CRANE_CONTEXT",),
    "command": ("CRANE_COMMAND",),
    "log_region": ("CRANE_LOG_REGION", "AWS_REGION"),
    "log_bucket": ("CRANE_LOG_BUCKET",),
    "checkout_root": ("CRANE_CHECKOUT_ROOT",),
    "build_timeout": ("CRANE_BUILD_TIMEOUT",),
    "pending_ttl": ("CRANE_PENDING_TTL",),
    "api_url": ("CRANE_API_URL",),
}


class CraneConfig(BaseModel):
    """Everything the agent needs to watch, build, and report on one branch."""

    github_user: str = Field(min_length=1, description="GitHub username for the clone URL")
    github_token: str = Field(min_length=1, repr=False, description="GitHub access token")
    owner: str = Field(min_length=1, description="Owner of the watched repository")
    repo: str = Field(min_length=1, description="Name of the watched repository")
    branch: str = Field(min_length=1, description="Branch to watch")
    context: str = Field(min_length=1, description="Status context label")
    command: str = Field(min_length=1, description="Build command, run from the checkout root")
    log_region: str = Field(min_length=1, description="AWS region of the log bucket")
    log_bucket: str = Field(min_length=1, description="S3 bucket for build logs")
    checkout_root: Path | None = None
    build_timeout: float | None = Field(default=None, gt=0)
    git_timeout: float = Field(default=600, gt=0)
    tick_seconds: float = Field(default=0.05, gt=0)
    pending_ttl: float | None = Field(default=None, gt=0)
    api_url: str = "https://api.github.com"
    clone_host: str = "github.com"

    @property
    def repository(self) -> RepositoryLocator:
        return RepositoryLocator(owner=self.owner, name=self.repo)

    @property
    def key_prefix(self) -> str:
        """Log key prefix; keeps logs of different watched configs apart."""
        return f"{self.branch}/{self.context}"

    @property
    def clone_url(self) -> str:
        return (
            f"https://{self.github_user}:{self.github_token}@{self.clone_host}/"
            f"{self.owner}/{self.repo}.git"
        )

    @property
    def checkout_path(self) -> Path:
        if self.checkout_root is not None:
            return self.checkout_root
        return Path("/tmp/crane") / self.owner / self.repo / self.context

    def properties(self) -> list[tuple[str, str]]:
        """Name/value pairs shown in the dashboard's property table."""
        return [
            ("Owner", self.owner),
            ("Repository", self.repo),
            ("Branch", self.branch),
            ("Context", self.context),
            ("Command", self.command),
        ]


def _from_env(environ: dict[str, str]) -> dict[str, str]:
    values: dict[str, str] = {}
    for field, names in ENV_VARS.items():
        for name in names:
            value = environ.get(name)
            if value:
                values[field] = value
                break
    return values


def _from_yaml(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text())
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return raw


def load_config(
    path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> CraneConfig:
    """Merge the YAML file, environment, and overrides into a validated config.

    ``None`` values in ``overrides`` are ignored so unset CLI flags do not mask
    the environment. Raises ``pydantic.ValidationError`` if the merged values
    are incomplete or invalid.
    """
    data: dict[str, Any] = {}
    if path is not None:
        data.update(_from_yaml(path))
    data.update(_from_env(dict(os.environ) if environ is None else environ))
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return CraneConfig.model_validate(data)
