"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List

import pytest

from mememarket.context import AppContext
from mememarket.core.config import Settings
from mememarket.models.content import ContentItem
from mememarket.services.content_provider import StaticContentProvider
from mememarket.services.ledger_service import LedgerService
from mememarket.services.market_engine import MarketEngine
from mememarket.services.portfolio_store import InMemoryKeyValueStore
from mememarket.services.prediction_engine import PredictionEngine
from mememarket.services.staking_service import StakingService
from mememarket.services.tournament_service import TournamentService

# 15:00 UTC falls in the "normal" time-of-day band
NOW = datetime(2024, 6, 3, 15, 0, 0)


class FixedRandom:
    """Random source that always returns the same value."""

    def __init__(self, value: float = 0.5):
        self.value = value
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.value


class SequenceRandom:
    """Random source cycling through a fixed sequence."""

    def __init__(self, values: List[float]):
        self.values = list(values)
        self.index = 0

    def random(self) -> float:
        value = self.values[self.index % len(self.values)]
        self.index += 1
        return value


def make_item(
    item_id: str = "abc123",
    score: int = 500,
    comments: int = 40,
    age_hours: float = 24.0,
    subreddit: str = "memes",
    title: str = "When the code compiles on the first try and nobody believes you",
    thumbnail: str | None = None,
    now: datetime = NOW,
) -> ContentItem:
    return ContentItem(
        id=item_id,
        title=title,
        subreddit=subreddit,
        score=score,
        comment_count=comments,
        created_at=now - timedelta(hours=age_hours),
        author="tester",
        url=f"https://reddit.com/r/{subreddit}/comments/{item_id}",
        thumbnail=thumbnail,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def rng() -> FixedRandom:
    return FixedRandom(0.5)


@pytest.fixture
def item() -> ContentItem:
    return make_item()


@pytest.fixture
def items() -> List[ContentItem]:
    return [
        make_item("hot1", score=5000, comments=400, age_hours=5, subreddit="memes"),
        make_item("hot2", score=2500, comments=120, age_hours=10, subreddit="ProgrammerHumor"),
        make_item("mid1", score=600, comments=30, age_hours=20, subreddit="funny"),
        make_item("low1", score=40, comments=2, age_hours=30, subreddit="wholesomememes"),
    ]


@pytest.fixture
def market(rng) -> MarketEngine:
    return MarketEngine(rng=rng, now=NOW)


@pytest.fixture
def engine(rng) -> PredictionEngine:
    return PredictionEngine(rng=rng)


@pytest.fixture
def ledger(engine, market) -> LedgerService:
    return LedgerService(engine, market)


@pytest.fixture
def staking(ledger) -> StakingService:
    return StakingService(ledger)


@pytest.fixture
def tournaments(ledger) -> TournamentService:
    return TournamentService(ledger)


@pytest.fixture
def portfolio(ledger):
    return ledger.create_portfolio("user_0001", NOW)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        enable_scheduler=False,
        enable_random_shocks=False,
        persist_portfolios=False,
        random_seed=7,
    )


@pytest.fixture
def provider(items) -> StaticContentProvider:
    return StaticContentProvider(items)


@pytest.fixture
def context(settings, rng, provider) -> AppContext:
    return AppContext.create(
        settings,
        rng=rng,
        provider=provider,
        store=InMemoryKeyValueStore(),
        now=NOW,
    )
