"""Shared pytest fixtures.

structlog configuration is process-global. setup_logging() binds the
current sys.stderr, which under pytest is a per-test capture stream that
gets closed afterwards, so the CLI's call to it is replaced and every test
ends with structlog back on its defaults.
"""

from __future__ import annotations

import pytest
import structlog


@pytest.fixture(autouse=True)
def isolated_logging(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr("changelog_agent.agent.setup_logging", lambda: None)
    yield
    structlog.reset_defaults()
