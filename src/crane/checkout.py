"""Persistent local clone of the watched repository.

The clone is created once at startup and then reset in place for every
commit, so steady-state cost tracks the size of the diff rather than the
size of the repository.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from pathlib import Path

from crane.errors import CheckoutError
from crane.models import CommitLocator

logger = logging.getLogger(__name__)

_CREDENTIALS_RE = re.compile(r"(https?://)[^/@\s]+@")


def redact(text: str) -> str:
    """Strip ``user:token@`` from any URLs in ``text``."""
    return _CREDENTIALS_RE.sub(r"\1***@", text)


class LocalCheckout:
    """Owns one working copy on disk and resets it to exact commits."""

    def __init__(self, path: Path, branch: str, *, timeout: float = 600) -> None:
        self.path = path
        self.branch = branch
        self.timeout = timeout

    @classmethod
    def initialize(
        cls,
        remote_url: str,
        local_path: Path,
        branch: str,
        *,
        timeout: float = 600,
    ) -> LocalCheckout:
        """Wipe ``local_path`` and make a fresh full clone of ``remote_url`` there."""
        shutil.rmtree(local_path, ignore_errors=True)
        try:
            local_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CheckoutError(f"cannot create {local_path}: {exc}") from exc

        checkout = cls(local_path, branch, timeout=timeout)
        logger.info("cloning %s into %s", redact(remote_url), local_path)
        checkout._git("clone", remote_url, str(local_path), cwd=local_path.parent)
        return checkout

    def reset_to(self, commit: CommitLocator) -> None:
        """Fetch the tracked branch and hard-reset the tree to ``commit``.

        Uncommitted changes and untracked files are discarded.
        """
        self._git("fetch", "origin", self.branch)
        try:
            self._git("cat-file", "-e", f"{commit.sha}^{{commit}}")
        except CheckoutError as exc:
            raise CheckoutError(f"commit {commit.sha} not found after fetch") from exc
        self._git("reset", "--hard", commit.sha)
        self._git("clean", "-ffdx")
        logger.debug("checkout at %s", commit.sha)

    def head(self) -> str:
        """Return the sha the working tree currently points at."""
        return self._git("rev-parse", "HEAD").strip()

    def _git(self, *args: str, cwd: Path | None = None) -> str:
        cmd = ["git", *args]
        logger.debug("git %s", redact(" ".join(args)))
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd or self.path,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise CheckoutError("git executable not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise CheckoutError(
                f"`git {redact(' '.join(args))}` timed out after {self.timeout}s"
            ) from exc
        except OSError as exc:
            raise CheckoutError(f"`git {args[0]}` could not run: {exc}") from exc

        if result.returncode != 0:
            raise CheckoutError(
                f"`git {redact(' '.join(args))}` failed (rc={result.returncode}): "
                f"{redact(result.stderr.strip())}"
            )
        return result.stdout
