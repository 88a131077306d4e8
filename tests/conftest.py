"""Shared test fixtures for apicache.

Provides an isolated cache directory per test, a controllable millisecond
clock so TTL tests never sleep, XDG/env isolation for configuration
tests, output-state reset, and a Typer CLI runner.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from apicache.cache.eviction import Evictor
from apicache.cache.store import CacheStore
from apicache.models import CacheConfig
from apicache.offline.queue import OfflineWriteQueue
from apicache.output import OutputManager, reset_output, set_output
from apicache.service import ApiCache

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    Rich consoles cache stream references; CliRunner swaps and closes
    sys.stdout/sys.stderr, so a fresh manager is needed per test.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Clock and tables
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "tables"
    path.mkdir()
    return path


@pytest.fixture
def store(cache_dir: Path, clock: FakeClock):
    s = CacheStore(cache_dir, clock=clock)
    yield s
    s.close()


@pytest.fixture
def evictor(store: CacheStore, clock: FakeClock) -> Evictor:
    return Evictor(store, clock=clock)


@pytest.fixture
def queue(cache_dir: Path, clock: FakeClock):
    q = OfflineWriteQueue(cache_dir, max_items=10, max_attempts=3, clock=clock)
    yield q
    q.close()


@pytest.fixture
def api_cache(cache_dir: Path, clock: FakeClock):
    """An ApiCache with small limits on an isolated directory."""
    config = CacheConfig(max_items=20, max_queue_items=10, max_replay_attempts=3)
    c = ApiCache(cache_dir, config, clock=clock)
    yield c
    c.close()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at tmp_path, clears APICACHE_* variables
    and changes the working directory so no project file leaks in.
    """
    monkeypatch.setattr("apicache.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in [
        "APICACHE_DIR",
        "APICACHE_MAX_ITEMS",
        "APICACHE_MAX_QUEUE_ITEMS",
        "APICACHE_CLEANUP_INTERVAL_MS",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output and CLI fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
