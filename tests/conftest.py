"""Shared fixtures for the quickai test suite."""

import os

import pytest

from quickai.core import config, message


@pytest.fixture(autouse=True)
def _quiet_emit():
    """Keep protocol event lines out of test output."""
    message.set_enabled(False)
    yield
    message.set_enabled(True)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Drop the cached config singleton and any QUICKAI_* variables from the host."""
    monkeypatch.setattr(config, "_config", None)
    for name in list(os.environ):
        if name.startswith(config.ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)
