import pytest

import callwarden.governance as governance


@pytest.fixture
def fresh_configuration(monkeypatch):
    """Let a test configure the warden as if it were a new process."""
    monkeypatch.setattr(governance, "_configured", False)


@pytest.fixture
def halts():
    """Records halt requests instead of exiting the test run."""
    return []
