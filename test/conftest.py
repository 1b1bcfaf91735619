"""
Shared test fixtures for tfl-arrivals.

Provides:
- TfL fixture data loader
- Controllable clock
- Fake TfL server for client and E2E tests
"""

import json
from pathlib import Path

import pytest
from pytest_httpserver import HTTPServer

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "tfl"

STOP_ID = "490008660N"
ARRIVALS_PATH = f"/StopPoint/{STOP_ID}/Arrivals"


# ---------------------------------------------------------------------------
# Fixture data loaders
# ---------------------------------------------------------------------------

def load_fixture(name: str):
    """Load a JSON fixture from test/fixtures/tfl/."""
    with open(FIXTURES_DIR / name) as f:
        return json.load(f)


@pytest.fixture()
def arrivals_payload():
    return load_fixture("arrivals.json")


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FakeClock:
    """Controllable clock for deterministic cache and coordinator tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Fake TfL server
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def fake_tfl():
    """
    A real HTTP server that impersonates the TfL StopPoint API.

    Tests configure responses with expect_request(); the server is cleared
    between tests.
    """
    server = HTTPServer(host="127.0.0.1")
    server.start()
    yield server
    server.clear()
    if server.is_running():
        server.stop()


@pytest.fixture()
def tfl_server(fake_tfl):
    fake_tfl.clear()
    yield fake_tfl
    fake_tfl.clear()
