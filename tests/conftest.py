"""Pin the process timezone so local-time assertions are deterministic."""

import time

import pytest


@pytest.fixture
def utc_timezone(monkeypatch: pytest.MonkeyPatch):
    """Run a test with TZ=UTC; only tests asserting on local-time output need it."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset() unavailable on this platform")
    monkeypatch.setenv("TZ", "UTC")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
