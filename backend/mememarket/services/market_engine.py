"""
Market Engine - Owns one synthetic quote per tracked content item

Prices are seeded from engagement metrics, evolved by a time-scaled random
walk on every tick, and shifted globally by shocks and sector rotation.
"""
import math
import threading
import uuid
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from loguru import logger

from ..core.constants import MARKET_SECTORS, SUBREDDIT_MULTIPLIERS
from ..core.randomness import RandomSource, create_random_source
from ..models.content import ContentItem
from ..models.market import MarketEvent, MarketQuote, MarketSector, ShockKind, Trend, trend_between


@dataclass
class MarketConfig:
    """Configuration for the market engine."""
    # Initial pricing
    base_price: float = 0.1
    score_multiplier: float = 0.001
    max_score_value: float = 2.0
    comment_weight: float = 0.05
    min_price: float = 0.01
    jitter_range: float = 0.3  # +/-15%

    # Freshness peaks at 24h and decays outside the band
    freshness_peak_hours: float = 24.0
    freshness_band_hours: float = 6.0
    freshness_decay_per_hour: float = 0.02
    min_freshness: float = 0.1

    # Tick dynamics
    base_volatility: float = 0.02
    random_volatility_range: float = 0.02
    min_volatility: float = 0.005
    random_factor_range: float = 0.03
    trending_bias_factor: float = 0.005
    time_multiplier_base_minutes: float = 0.5
    time_multiplier_max: float = 1.5
    max_price_change: float = 0.5

    # Volume
    initial_volume_min: int = 100
    initial_volume_range: int = 1000
    volume_increase_min: int = 5
    volume_increase_range: int = 25

    # Shocks and sectors
    crash_impact: float = -0.3
    boom_impact: float = 0.2
    event_duration_minutes: int = 5
    sector_duration_hours: int = 24
    max_events: int = 50


_SHOCK_COPY = {
    ShockKind.CRASH: ("Market Crash!", "Panic selling has caused prices to plummet!"),
    ShockKind.BOOM: ("Market Boom!", "Investor confidence surges, prices are soaring!"),
}


def default_sectors() -> List[MarketSector]:
    """Sectors in rotation order."""
    return [
        MarketSector(
            id=s["id"],
            name=s["name"],
            multiplier=s["multiplier"],
            description=s["description"],
            keywords=list(s["keywords"]),
        )
        for s in MARKET_SECTORS
    ]


def subreddit_multiplier(subreddit: str) -> float:
    return SUBREDDIT_MULTIPLIERS.get((subreddit or "").lower(), 1.0)


class MarketEngine:
    """
    Quote store and market simulator.

    All quote access goes through an RLock; readers always receive copies,
    so a resolution never observes a half-updated quote.
    """

    def __init__(
        self,
        config: Optional[MarketConfig] = None,
        rng: Optional[RandomSource] = None,
        sectors: Optional[List[MarketSector]] = None,
        now: Optional[datetime] = None,
    ):
        self.config = config or MarketConfig()
        self.rng = rng or create_random_source()

        self._lock = threading.RLock()
        self._quotes: Dict[str, MarketQuote] = {}
        self._events: deque = deque(maxlen=self.config.max_events)

        self._sectors = sectors or default_sectors()
        if not self._sectors:
            raise ValueError("At least one market sector is required")
        self._sector_index = 0
        self._sectors[0].active_until = (now or datetime.utcnow()) + timedelta(
            hours=self.config.sector_duration_hours
        )

    def _rand(self) -> float:
        return float(self.rng.random())

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def freshness_multiplier(self, age_hours: float) -> float:
        distance = abs(age_hours - self.config.freshness_peak_hours)
        if distance <= self.config.freshness_band_hours:
            return 1.0
        decayed = 1.0 - (distance - self.config.freshness_band_hours) * self.config.freshness_decay_per_hour
        return max(self.config.min_freshness, decayed)

    @staticmethod
    def content_multiplier(item: ContentItem) -> float:
        multiplier = 1.0

        title_length = len(item.title or "")
        if 40 <= title_length <= 100:
            multiplier *= 1.1
        elif title_length < 20 or title_length > 150:
            multiplier *= 0.9

        if item.selftext and len(item.selftext) > 100:
            multiplier *= 1.05

        if item.thumbnail and item.thumbnail not in ("self", "default"):
            multiplier *= 1.15

        return multiplier

    def calculate_initial_price(self, item: ContentItem, now: Optional[datetime] = None) -> float:
        """
        Composite price:
        (base + capped score term + log comment term)
        x freshness x subreddit x sector x content quality x jitter
        """
        cfg = self.config
        score_value = min(max(item.score, 0) * cfg.score_multiplier, cfg.max_score_value)
        comment_value = math.log(max(1, item.comment_count)) * cfg.comment_weight

        freshness = self.freshness_multiplier(item.age_hours(now))
        jitter = 1 + (self._rand() - 0.5) * cfg.jitter_range

        price = (
            (cfg.base_price + score_value + comment_value)
            * freshness
            * subreddit_multiplier(item.subreddit)
            * self.current_sector.multiplier
            * self.content_multiplier(item)
            * jitter
        )
        return max(cfg.min_price, round(price, 2))

    def initialize_quote(self, item: ContentItem, now: Optional[datetime] = None) -> MarketQuote:
        """Create the quote for an item. An already tracked item keeps its quote."""
        now = now or datetime.utcnow()
        with self._lock:
            existing = self._quotes.get(item.id)
            if existing is not None:
                return existing.copy()

            price = self.calculate_initial_price(item, now)
            quote = MarketQuote(
                item_id=item.id,
                current_price=price,
                previous_price=price,
                volume=int(self._rand() * self.config.initial_volume_range) + self.config.initial_volume_min,
                change_percent=0.0,
                trend=Trend.STABLE,
                last_updated=now,
            )
            self._quotes[item.id] = quote
            logger.debug(f"Initialized quote {item.id} @ {price:.2f}")
            return quote.copy()

    def track(self, items: Iterable[ContentItem], now: Optional[datetime] = None) -> List[MarketQuote]:
        """Initialize quotes for untracked items; returns the new quotes."""
        created = []
        with self._lock:
            for item in items:
                if item.id not in self._quotes:
                    created.append(self.initialize_quote(item, now))
        if created:
            logger.info(f"Tracking {len(created)} new items ({len(self._quotes)} total)")
        return created

    def untrack(self, item_id: str) -> bool:
        with self._lock:
            return self._quotes.pop(item_id, None) is not None

    def apply_rankings(self, ordered_item_ids: List[str]):
        """
        Assign 1-based rankings from the provider's listing order.
        Tracked items missing from the listing lose their ranking.
        """
        positions = {item_id: i for i, item_id in enumerate(ordered_item_ids, start=1)}
        with self._lock:
            for item_id, quote in self._quotes.items():
                quote.ranking = positions.get(item_id)

    # ------------------------------------------------------------------
    # Evolution
    # ------------------------------------------------------------------

    def tick(self, now: Optional[datetime] = None) -> int:
        """
        Advance every quote by the time elapsed since its last update.
        Returns the number of quotes that moved.
        """
        now = now or datetime.utcnow()
        updated = 0
        with self._lock:
            for quote in self._quotes.values():
                if self._advance(quote, now):
                    updated += 1
        logger.debug(f"Market tick: {updated}/{len(self._quotes)} quotes updated")
        return updated

    def _advance(self, quote: MarketQuote, now: datetime) -> bool:
        cfg = self.config
        elapsed_minutes = (now - quote.last_updated).total_seconds() / 60
        if elapsed_minutes <= 0:
            return False

        time_mult = min(cfg.time_multiplier_max, elapsed_minutes / cfg.time_multiplier_base_minutes)

        magnitude = max(
            cfg.min_volatility,
            cfg.base_volatility + (self._rand() - 0.5) * cfg.random_volatility_range,
        ) * self.current_sector.multiplier
        direction = 1.0 if self._rand() >= 0.5 else -1.0
        walk = (self._rand() - 0.5) * cfg.random_factor_range * time_mult
        bias = self._rand() * cfg.trending_bias_factor * time_mult

        change = magnitude * direction * time_mult + walk + bias
        change = max(-cfg.max_price_change, min(cfg.max_price_change, change))

        previous = quote.current_price
        new_price = max(cfg.min_price, round(previous * (1 + change), 2))

        quote.previous_price = previous
        quote.current_price = new_price
        quote.change_percent = round((new_price - previous) / previous * 100, 2)
        quote.trend = trend_between(previous, new_price)
        quote.last_updated = now
        quote.volume += int(self._rand() * cfg.volume_increase_range) + cfg.volume_increase_min
        return True

    def apply_shock(self, kind: ShockKind, now: Optional[datetime] = None) -> MarketEvent:
        """Shift every tracked price by the fixed crash/boom impact."""
        kind = ShockKind(kind)
        now = now or datetime.utcnow()
        impact = self.config.crash_impact if kind == ShockKind.CRASH else self.config.boom_impact

        with self._lock:
            for quote in self._quotes.values():
                previous = quote.current_price
                new_price = max(self.config.min_price, round(previous * (1 + impact), 2))
                quote.previous_price = previous
                quote.current_price = new_price
                quote.change_percent = round((new_price - previous) / previous * 100, 2)
                quote.trend = trend_between(previous, new_price)
                quote.last_updated = now
            affected = len(self._quotes)

            title, description = _SHOCK_COPY[kind]
            event = MarketEvent(
                id=f"event_{uuid.uuid4().hex[:10]}",
                kind=kind,
                title=title,
                description=description,
                impact=impact,
                duration=timedelta(minutes=self.config.event_duration_minutes),
                created_at=now,
                affected_quotes=affected,
            )
            self._events.append(event)

        logger.info(f"{'📉' if kind == ShockKind.CRASH else '📈'} {title} impact {impact:+.0%} on {affected} quotes")
        return event

    # ------------------------------------------------------------------
    # Sectors
    # ------------------------------------------------------------------

    @property
    def current_sector(self) -> MarketSector:
        with self._lock:
            s = self._sectors[self._sector_index]
            return replace(s, keywords=list(s.keywords))

    @property
    def sectors(self) -> List[MarketSector]:
        with self._lock:
            return [replace(s, keywords=list(s.keywords)) for s in self._sectors]

    def rotate_sector(self, now: Optional[datetime] = None) -> MarketSector:
        """Advance to the next sector in the fixed cyclic order."""
        now = now or datetime.utcnow()
        with self._lock:
            self._sector_index = (self._sector_index + 1) % len(self._sectors)
            sector = self._sectors[self._sector_index]
            sector.active_until = now + timedelta(hours=self.config.sector_duration_hours)
        logger.info(f"🔄 Sector rotated to {sector.name} (x{sector.multiplier})")
        return replace(sector, keywords=list(sector.keywords))

    def rotate_sector_if_expired(self, now: Optional[datetime] = None) -> Optional[MarketSector]:
        now = now or datetime.utcnow()
        if self.current_sector.is_expired(now):
            return self.rotate_sector(now)
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_quote(self, item_id: str) -> Optional[MarketQuote]:
        with self._lock:
            quote = self._quotes.get(item_id)
            return quote.copy() if quote else None

    def get_all_quotes(self) -> Dict[str, MarketQuote]:
        with self._lock:
            return {item_id: q.copy() for item_id, q in self._quotes.items()}

    def tracked_ids(self) -> List[str]:
        with self._lock:
            return list(self._quotes.keys())

    def recent_events(self, limit: int = 10) -> List[MarketEvent]:
        with self._lock:
            if limit <= 0:
                return []
            return list(self._events)[-limit:][::-1]

    def market_summary(self) -> dict:
        quotes = list(self.get_all_quotes().values())
        if not quotes:
            return {
                'tracked': 0,
                'average_price': 0.0,
                'total_volume': 0,
                'gainers': 0,
                'losers': 0,
                'sector': self.current_sector.to_dict(),
            }
        return {
            'tracked': len(quotes),
            'average_price': round(sum(q.current_price for q in quotes) / len(quotes), 2),
            'total_volume': sum(q.volume for q in quotes),
            'gainers': sum(1 for q in quotes if q.trend == Trend.UP),
            'losers': sum(1 for q in quotes if q.trend == Trend.DOWN),
            'sector': self.current_sector.to_dict(),
        }
