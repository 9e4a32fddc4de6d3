"""
Shared fixtures: temp-file SQLite database, fake collaborators.
"""

from typing import Dict, List

import pytest
import pytest_asyncio

from pattern_alerts.config import Settings
from pattern_alerts.database import create_engine_for, create_session_factory, create_tables
from pattern_alerts.exceptions import ImageFetchError
from pattern_alerts.models.chart_pattern import ChartPattern
from pattern_alerts.services.chart_renderer import render_candles
from pattern_alerts.services.feature_extractor import FeatureExtractor


def make_candles(count: int, start: float = 150.0, step: float = 0.1) -> List[Dict]:
    """Linear trend candles (uptrend for a positive step), oldest first."""
    candles = []
    for i in range(count):
        close = start + i * step
        candles.append({
            "time": i,
            "open": close - step / 2,
            "high": close + abs(step),
            "low": close - abs(step),
            "close": close,
            "volume": None,
        })
    return candles


class FakeImageResolver:
    def __init__(self, images: Dict[str, bytes]):
        self.images = images
        self.calls: List[str] = []

    async def fetch_bytes(self, url: str) -> bytes:
        self.calls.append(url)
        if url not in self.images:
            raise ImageFetchError("Failed to fetch image: 404")
        return self.images[url]


class FakeMarketData:
    """Candles keyed by currency pair; an Exception value is raised instead."""

    def __init__(self, data: Dict[str, object]):
        self.data = data
        self.calls: List[tuple] = []

    async def fetch_candles(self, currency_pair: str, timeframe: str, count: int = 50):
        self.calls.append((currency_pair, timeframe, count))
        value = self.data.get(currency_pair, [])
        if isinstance(value, Exception):
            raise value
        return value[-count:]


# rendered charts: uptrend and downtrend
IMAGE_A = render_candles(make_candles(50))
IMAGE_B = render_candles(make_candles(50, start=155.0, step=-0.1))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        cron_secret="test-secret",
        twelve_data_api_key="",
        check_concurrency=1,
        http_timeout_seconds=2.0,
    )


@pytest.fixture
def image_resolver():
    return FakeImageResolver({
        "https://img.example/a.png": IMAGE_A,
        "https://img.example/b.png": IMAGE_B,
        "https://img.example/notes.txt": b"plain text, not an image",
    })


@pytest.fixture
def extractor(image_resolver):
    return FeatureExtractor(image_resolver=image_resolver, dim=64)


@pytest_asyncio.fixture
async def engine(settings):
    db_engine = create_engine_for(settings.database_url)
    await create_tables(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def add_pattern(session_factory):
    """Insert a pattern row directly with a given fingerprint."""

    async def _add(vector, user_id="alice", name="pattern", currency_pair="USD/JPY",
                   timeframe="1h", threshold=70, is_active=True):
        async with session_factory() as session:
            pattern = ChartPattern(
                user_id=user_id,
                name=name,
                image_url="https://img.example/a.png",
                currency_pair=currency_pair,
                timeframe=timeframe,
                feature_vector=list(vector),
                similarity_threshold=threshold,
                is_active=is_active,
            )
            session.add(pattern)
            await session.commit()
            await session.refresh(pattern)
            return pattern

    return _add
