"""Tests for the shared data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from crane.models import CommitLocator, RenderState, RepositoryLocator, Status, StatusState

REPO = RepositoryLocator(owner="acme", name="widget")


def test_commit_sha_must_be_full_lowercase_hex():
    for bad in ["abc", "A" * 40, "g" * 40, "a" * 41]:
        with pytest.raises(ValidationError):
            CommitLocator(repository=REPO, sha=bad)


def test_commit_locator_is_immutable():
    commit = CommitLocator(repository=REPO, sha="a" * 40)
    with pytest.raises(ValidationError):
        commit.sha = "b" * 40


def test_status_state_matches_platform_vocabulary():
    assert {s.value for s in StatusState} == {"pending", "success", "failure", "error"}


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        (StatusState.SUCCESS, RenderState.SUCCEEDED),
        (StatusState.PENDING, RenderState.PENDING),
        (StatusState.FAILURE, RenderState.FAILED),
        (StatusState.ERROR, RenderState.FAILED),
    ],
)
def test_render_state(state, expected):
    assert RenderState.from_status(state) == expected


def test_request_body_skips_none():
    status = Status(state=StatusState.SUCCESS, target_url="https://x", context="ci")
    assert status.request_body() == {
        "state": "success",
        "target_url": "https://x",
        "context": "ci",
    }
