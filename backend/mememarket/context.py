"""
Application context - every service constructed explicitly and wired once
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from loguru import logger

from .core.config import Settings, get_settings
from .core.errors import InvalidStateError, NotFoundError
from .core.randomness import RandomSource, create_random_source
from .models.content import ContentItem
from .models.portfolio import Portfolio
from .models.prediction import Prediction, PredictionIntent, PredictionStatus
from .models.tournament import TournamentResult
from .services.alert_service import AlertService
from .services.analytics_service import AnalyticsService
from .services.content_provider import ContentProvider, ContentProviderConfig, RedditContentProvider
from .services.ledger_service import LedgerService
from .services.market_engine import MarketEngine
from .services.portfolio_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    PortfolioStore,
)
from .services.prediction_engine import PredictionEngine
from .services.staking_service import StakingService
from .services.tournament_service import TournamentService


@dataclass
class AppContext:
    """Holds one instance of each service; nothing is a module-level singleton."""
    settings: Settings
    rng: RandomSource
    market: MarketEngine
    engine: PredictionEngine
    ledger: LedgerService
    staking: StakingService
    tournaments: TournamentService
    analytics: AnalyticsService
    alerts: AlertService
    provider: ContentProvider
    portfolios: PortfolioStore

    # Latest snapshot of every known item, keyed by id
    items: Dict[str, ContentItem] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        rng: Optional[RandomSource] = None,
        provider: Optional[ContentProvider] = None,
        store: Optional[KeyValueStore] = None,
        now: Optional[datetime] = None,
    ) -> 'AppContext':
        settings = settings or get_settings()
        rng = rng or create_random_source(settings.random_seed)

        market = MarketEngine(rng=rng, now=now)
        engine = PredictionEngine(rng=rng)
        ledger = LedgerService(engine, market)
        staking = StakingService(ledger)
        tournaments = TournamentService(ledger)
        analytics = AnalyticsService(ledger=ledger)
        alerts = AlertService(engine, staking, tournaments)

        if provider is None:
            provider = RedditContentProvider(ContentProviderConfig(
                base_url=settings.reddit_base_url,
                user_agent=settings.reddit_user_agent,
            ))
        if store is None:
            if settings.persist_portfolios:
                store = JsonFileKeyValueStore(str(Path(settings.data_dir) / settings.portfolio_store_file))
            else:
                store = InMemoryKeyValueStore()

        context = cls(
            settings=settings,
            rng=rng,
            market=market,
            engine=engine,
            ledger=ledger,
            staking=staking,
            tournaments=tournaments,
            analytics=analytics,
            alerts=alerts,
            provider=provider,
            portfolios=PortfolioStore(store, ledger.create_portfolio),
        )
        ledger.on_prediction_resolved(context._score_tournament)
        return context

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _score_tournament(self, portfolio: Portfolio, prediction: Prediction, consecutive_wins: int):
        tournament_id = portfolio.current_tournament_id
        if not tournament_id:
            return
        try:
            points = self.tournaments.score_point(
                tournament_id,
                portfolio.user_id,
                prediction.status == PredictionStatus.WON,
                consecutive_wins,
            )
        except (InvalidStateError, NotFoundError):
            # Upcoming or finished tournaments do not score
            return
        with self.ledger.lock_for(portfolio.user_id):
            portfolio.tournament_points += points

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def remember(self, items: Iterable[ContentItem]) -> List[ContentItem]:
        items = list(items)
        for item in items:
            self.items[item.id] = item
        return items

    async def get_item(self, item_id: str) -> Optional[ContentItem]:
        item = self.items.get(item_id)
        if item is not None:
            return item
        item = await self.provider.fetch_by_id(item_id)
        if item is not None:
            self.remember([item])
        return item

    async def refresh_content(self, now: Optional[datetime] = None) -> List[ContentItem]:
        """
        Fetch trending items, track and rank them, then resolve every stored
        portfolio. An empty fetch means no update this cycle.
        """
        now = now or datetime.utcnow()
        trending = await self.provider.fetch_trending(
            self.settings.tracked_subreddit, self.settings.trending_limit
        )
        if not trending:
            logger.warning("Content refresh returned nothing; skipping this cycle")
            return []

        self.remember(trending)
        self.market.track(trending, now)
        self.market.apply_rankings([item.id for item in trending])

        # Items with open bets that dropped off the listing still need fresh metrics
        fresh = {item.id: item for item in trending}
        wanted = {
            p.item_id
            for portfolio in self.portfolios.all()
            for p in portfolio.active_predictions
            if p.item_id not in fresh
        }
        if wanted:
            fetched = await asyncio.gather(
                *[self.provider.fetch_by_id(item_id) for item_id in sorted(wanted)],
                return_exceptions=True,
            )
            for result in fetched:
                if isinstance(result, ContentItem):
                    fresh[result.id] = result
            self.remember(fresh.values())

        self.resolve_portfolios(fresh, now)
        self.prune({item.id for item in trending})
        return trending

    def prune(self, listed: Iterable[str]) -> List[str]:
        """Forget items that left the listing and back no open bet."""
        keep = set(listed) | {
            p.item_id
            for portfolio in self.portfolios.all()
            for p in portfolio.active_predictions
        }
        stale = sorted((set(self.market.tracked_ids()) | set(self.items)) - keep)
        for item_id in stale:
            self.market.untrack(item_id)
            self.items.pop(item_id, None)
        if stale:
            logger.debug(f"Pruned {len(stale)} items that left the listing")
        return stale

    def resolve_portfolios(self, items: Dict[str, ContentItem], now: Optional[datetime] = None):
        for portfolio in self.portfolios.all():
            before = len(portfolio.active_predictions)
            self.ledger.resolve_all(portfolio, items, now)
            if len(portfolio.active_predictions) != before:
                self.portfolios.save(portfolio)

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    async def place_bet(self, user_id: str, intent: PredictionIntent, now: Optional[datetime] = None) -> Prediction:
        item = await self.get_item(intent.item_id)
        if item is None:
            raise NotFoundError(f"Content item not found: {intent.item_id}")
        self.market.track([item], now)

        portfolio = self.portfolios.get_or_create(user_id)
        prediction = self.ledger.place_bet(portfolio, intent, item, now=now)
        self.portfolios.save(portfolio)
        return prediction

    async def resolve_user(self, user_id: str, now: Optional[datetime] = None) -> Portfolio:
        """Re-fetch the items behind a user's open bets and resolve them."""
        portfolio = self.portfolios.get_or_create(user_id)
        item_ids = sorted({p.item_id for p in portfolio.active_predictions})
        fetched = await asyncio.gather(
            *[self.provider.fetch_by_id(item_id) for item_id in item_ids],
            return_exceptions=True,
        )
        items = {r.id: r for r in fetched if isinstance(r, ContentItem)}
        self.remember(items.values())

        self.ledger.resolve_all(portfolio, items, now)
        self.portfolios.save(portfolio)
        return portfolio

    def end_tournament(self, tournament_id: str, now: Optional[datetime] = None) -> TournamentResult:
        """End a tournament, pay the prizes and release its participants."""
        tournament = self.tournaments.get_tournament(tournament_id)
        result = self.tournaments.end(tournament_id, now)

        for user_id, prize in result.payouts:
            portfolio = self.portfolios.get(user_id)
            if portfolio is None:
                logger.warning(f"Prize winner {user_id} has no portfolio")
                continue
            self.ledger.credit_tournament_prize(portfolio, prize, tournament_id, now)

        for participant in tournament.leaderboard:
            portfolio = self.portfolios.get(participant.user_id)
            if portfolio is None:
                continue
            with self.ledger.lock_for(portfolio.user_id):
                if portfolio.current_tournament_id == tournament_id:
                    portfolio.current_tournament_id = None
            self.portfolios.save(portfolio)

        return result

    def sweep_alerts(self, now: Optional[datetime] = None) -> int:
        created = 0
        for portfolio in self.portfolios.all():
            created += len(self.alerts.sweep(portfolio, self.items.values(), now))
            self.analytics.track_daily_performance(portfolio, now)
            self.portfolios.save(portfolio)
        return created
