import pytest


@pytest.fixture(autouse=True)
def _no_redis(monkeypatch):
    # Events are still logged; only the Redis stream write is skipped
    monkeypatch.setenv("REDIS_URL", "")
