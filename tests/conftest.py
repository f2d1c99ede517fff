"""Shared pytest fixtures for Marginalia tests."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from marginalia.config import get_settings
from marginalia.highlights import (
    DuplicateScope,
    HighlightWorkspace,
    OverlapPolicy,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Strip configuration env vars and reset the cached Settings."""
    for key in list(os.environ):
        if key.startswith(("HIGHLIGHTS__", "LOGGING__")):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_workspace() -> Callable[..., HighlightWorkspace]:
    """Factory for workspaces with an explicit policy pair."""

    def _make(
        policy: OverlapPolicy = OverlapPolicy.MERGE_UNION,
        scope: DuplicateScope = DuplicateScope.CROSS_DOCUMENT,
        *,
        trim_whitespace: bool = True,
    ) -> HighlightWorkspace:
        return HighlightWorkspace(
            policy=policy, scope=scope, trim_whitespace=trim_whitespace
        )

    return _make


@pytest.fixture
def workspace(make_workspace: Callable[..., HighlightWorkspace]) -> HighlightWorkspace:
    """Workspace with the default merge-union / cross-document pair."""
    return make_workspace()
