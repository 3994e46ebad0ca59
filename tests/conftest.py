import os

import pytest

from deferral.config.environment import Environment
from deferral.runtime.scope import GLOBAL_SCOPE
from deferral.runtime.session import SessionBuffer


@pytest.fixture(autouse=True)
def isolate_deferral_state(monkeypatch, tmp_path):
    """Give every test a clean session buffer, global scope and configuration."""
    for key in list(os.environ):
        if key.startswith("DEFERRAL_"):
            monkeypatch.delenv(key, raising=False)
    # Keep user settings out of the test run
    monkeypatch.setenv("DEFERRAL_SETTINGS_FILE", str(tmp_path / "settings.yaml"))
    Environment.clear()
    SessionBuffer.reset_instance()
    GLOBAL_SCOPE.reset()

    yield

    SessionBuffer.reset_instance()
    GLOBAL_SCOPE.reset()
    Environment.clear()


@pytest.fixture
def out():
    """Shared list the deferred actions append to."""
    return []


@pytest.fixture
def hook_source(monkeypatch):
    monkeypatch.setenv("DEFERRAL_HOOK_SOURCE", "1")


@pytest.fixture
def interactive(monkeypatch):
    monkeypatch.setenv("DEFERRAL_INTERACTIVE", "1")
