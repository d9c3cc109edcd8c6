"""
Daylog Backend — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.
Who:   Used by all test files in the tests/ directory.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── database_url: SQLite file inside the test's tmp_path
    ├── clock: Controllable millisecond clock for the entry store
    ├── store: Opened EntryStore on that database (closed after the test)
    ├── temp_storage: Temporary directory for media files
    ├── test_settings: Settings pointing at the temporary database and storage
    ├── sample_image_bytes / sample_audio_bytes: Small upload payloads
    ├── stub_weather: WeatherProvider that answers without the network
    ├── test_app: App with its lifespan entered (store open)
    └── test_client: HTTPX AsyncClient talking to test_app
"""

import os
import tempfile

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Set before any daylog import so the module-level settings never point at
# a real journal
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="daylog_test_"), "daylog.db"
)
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="daylog_media_")
os.environ["LOG_LEVEL"] = "WARNING"

from daylog.config import Settings  # noqa: E402
from daylog.exceptions import WeatherServiceError  # noqa: E402
from daylog.services.weather_base import WeatherProvider  # noqa: E402
from daylog.store.entry_store import EntryStore  # noqa: E402


class FakeClock:
    """Millisecond clock the test moves by hand."""

    def __init__(self, now: int = 1_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


class StubWeather(WeatherProvider):
    """
    Offline WeatherProvider.

    Returns `text` until `fail` is set, then raises WeatherServiceError.
    """

    def __init__(self, text: str = "12.5 °C"):
        self.text = text
        self.fail = False
        self.healthy = True
        self.calls = 0
        self.closed = False

    async def current_conditions(self) -> str:
        self.calls += 1
        if self.fail:
            raise WeatherServiceError(message="stub weather down")
        return self.text

    async def health_check(self) -> bool:
        return self.healthy

    async def aclose(self) -> None:
        self.closed = True


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'journal.db'}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def store(database_url, clock):
    """
    Provides an opened EntryStore backed by a fresh SQLite file.

    Usage:
        async def test_insert(store):
            entry_id = await store.insert(EntryDraft(title="Day 1"))
    """
    entry_store = EntryStore(database_url, clock=clock)
    await entry_store.open()
    yield entry_store
    await entry_store.close()


@pytest.fixture
def temp_storage(tmp_path) -> str:
    """A fresh media storage directory for each test."""
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def test_settings(database_url, temp_storage) -> Settings:
    """Settings isolated to this test's tmp_path, with zero retry waits."""
    return Settings(
        database_url=database_url,
        storage_root=temp_storage,
        display_timezone="UTC",
        retry_max_attempts=3,
        retry_min_wait=0,
        retry_max_wait=0,
        cb_failure_threshold=2,
        cb_recovery_timeout=60,
        log_level="WARNING",
    )


@pytest.fixture
def sample_image_bytes() -> bytes:
    """
    Minimal JPEG bytes for upload tests.

    SOI marker + JFIF header + EOI marker. Only the extension is validated,
    so this does not need to decode as a picture.
    """
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


@pytest.fixture
def sample_audio_bytes() -> bytes:
    # "RIFF" header of a WAV file followed by padding
    return b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 32


@pytest.fixture
def stub_weather() -> StubWeather:
    return StubWeather()


@pytest_asyncio.fixture
async def test_app(test_settings, stub_weather):
    """
    Provides a started app: lifespan entered, store open, services built.

    ASGITransport does not send lifespan events, so the lifespan context is
    entered here and left after the test (which closes the store).
    """
    from daylog.main import create_app

    app = create_app(test_settings, weather_provider=stub_weather)
    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def test_client(test_app):
    """
    Provides an async HTTP client for endpoint testing.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
