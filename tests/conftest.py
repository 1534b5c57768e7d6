import pytest

from fake_server import FakeFlenseServer


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("FLENSE_API_KEY", "FLENSE_BASE_URL", "FLENSE_TIMEOUT", "FLENSE_POLL_INTERVAL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def server():
    return FakeFlenseServer()
