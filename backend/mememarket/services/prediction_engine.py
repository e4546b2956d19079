"""
Prediction Engine - Odds pricing and wager resolution

Every computation here is a function of (item, quote, prediction, now);
the engine holds no market state of its own.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..core.constants import (
    POST_AGE_VOLATILITY,
    PREDICTION_TIMEFRAMES,
    PREDICTION_TYPES,
    RANKING_VOLATILITY,
    TIME_OF_DAY_VOLATILITY,
)
from ..core.randomness import RandomSource, create_random_source
from ..models.content import ContentItem
from ..models.market import MarketQuote
from ..models.prediction import (
    MarketConditions,
    Prediction,
    PredictionStatus,
    PredictionType,
    TimeOfDay,
)
from .market_engine import subreddit_multiplier


@dataclass
class OddsConfig:
    """Configuration for odds pricing and resolution."""
    min_odds: float = 1.1
    max_odds: float = 50.0
    default_odds: float = 2.0
    default_ranking: int = 50
    virality_default_ranking: int = 100
    expiry_hours: float = 24.0

    # Hours are UTC, inclusive
    peak_start_hour: int = 20
    peak_end_hour: int = 22
    quiet_start_hour: int = 22
    quiet_end_hour: int = 10

    # Relative tolerance per continuous prediction type
    tolerances: Dict[str, float] = field(default_factory=lambda: {
        PredictionType.GROWTH_RATE.value: 0.10,
        PredictionType.ENGAGEMENT_RATIO.value: 0.15,
        PredictionType.VIRALITY_INDEX.value: 0.20,
    })


@dataclass
class OddsQuote:
    """Odds together with the inputs they were priced from."""
    odds: float
    volatility_factor: float
    conditions: Optional[MarketConditions]


def _bucket(value: float, table: List[Tuple[float, float]]) -> float:
    for upper, factor in table:
        if value <= upper:
            return factor
    return table[-1][1]


class PredictionEngine:
    """
    Computes risk-adjusted odds for the five prediction types and resolves
    predictions against fresh item metrics.
    """

    def __init__(self, config: Optional[OddsConfig] = None, rng: Optional[RandomSource] = None):
        self.config = config or OddsConfig()
        self.rng = rng or create_random_source()

    # ------------------------------------------------------------------
    # Market conditions
    # ------------------------------------------------------------------

    def time_of_day(self, now: datetime) -> TimeOfDay:
        hour = now.hour
        if self.config.peak_start_hour <= hour <= self.config.peak_end_hour:
            return TimeOfDay.PEAK
        if hour >= self.config.quiet_start_hour or hour <= self.config.quiet_end_hour:
            return TimeOfDay.QUIET
        return TimeOfDay.NORMAL

    @staticmethod
    def growth_rate(item: ContentItem, now: Optional[datetime] = None) -> float:
        """Score gained per hour of post age."""
        age = item.age_hours(now)
        if age <= 0:
            return 0.0
        return item.score / age

    def analyze_conditions(
        self,
        item: ContentItem,
        quote: Optional[MarketQuote],
        now: Optional[datetime] = None,
    ) -> MarketConditions:
        now = now or datetime.utcnow()
        ranking = quote.ranking if quote and quote.ranking is not None else self.config.default_ranking
        return MarketConditions(
            post_age_hours=item.age_hours(now),
            current_ranking=ranking,
            subreddit_multiplier=subreddit_multiplier(item.subreddit),
            time_of_day=self.time_of_day(now),
            current_score=item.score,
            current_comments=item.comment_count,
            growth_rate=self.growth_rate(item, now),
        )

    @staticmethod
    def volatility_factor(conditions: MarketConditions) -> float:
        return (
            _bucket(conditions.post_age_hours, POST_AGE_VOLATILITY)
            * _bucket(conditions.current_ranking, RANKING_VOLATILITY)
            * TIME_OF_DAY_VOLATILITY[conditions.time_of_day.value]
        )

    @staticmethod
    def difficulty_multiplier(
        prediction_type: PredictionType,
        item: ContentItem,
        target_value: float,
        conditions: MarketConditions,
    ) -> float:
        if prediction_type == PredictionType.GROWTH_RATE:
            expected = conditions.growth_rate * 24
            if expected <= 0:
                return 2.0
            return max(0.5, min(2.0, 1 + abs(target_value - expected) / expected))

        if prediction_type == PredictionType.MILESTONE_REACH:
            ratio = target_value / max(1, item.score)
            return max(0.8, min(3.0, ratio / 2))

        if prediction_type == PredictionType.RANKING_POSITION:
            if target_value <= 5:
                return 2.5
            if target_value <= 20:
                return 1.8
            if target_value <= 50:
                return 1.2
            return 0.8

        if prediction_type == PredictionType.ENGAGEMENT_RATIO:
            current = item.comment_count / max(1, item.score)
            if current == 0:
                return 2.5
            return max(0.7, min(2.5, 1 + abs(target_value - current) / current))

        if prediction_type == PredictionType.VIRALITY_INDEX:
            return 2.0

        return 1.0

    # ------------------------------------------------------------------
    # Odds
    # ------------------------------------------------------------------

    def quote_odds(
        self,
        item: ContentItem,
        quote: Optional[MarketQuote],
        prediction_type: str,
        target_value: float,
        timeframe: str = "LONG",
        now: Optional[datetime] = None,
    ) -> OddsQuote:
        """Odds plus the conditions snapshot used to price them."""
        type_config = PREDICTION_TYPES.get(getattr(prediction_type, "value", prediction_type))
        if type_config is None:
            return OddsQuote(odds=self.config.default_odds, volatility_factor=1.0, conditions=None)

        ptype = PredictionType(prediction_type)
        timeframe_key = getattr(timeframe, "value", timeframe)
        time_multiplier = PREDICTION_TIMEFRAMES.get(timeframe_key, {}).get("base_multiplier", 1.0)

        conditions = self.analyze_conditions(item, quote, now)
        volatility = self.volatility_factor(conditions)

        odds = (
            type_config["base_odds"]
            * volatility
            * time_multiplier
            * conditions.subreddit_multiplier
            * self.difficulty_multiplier(ptype, item, target_value, conditions)
        )
        odds = round(max(self.config.min_odds, min(self.config.max_odds, odds)), 2)
        return OddsQuote(odds=odds, volatility_factor=volatility, conditions=conditions)

    def calculate_odds(
        self,
        item: ContentItem,
        quote: Optional[MarketQuote],
        prediction_type: str,
        target_value: float,
        timeframe: str = "LONG",
        now: Optional[datetime] = None,
    ) -> float:
        """Odds clamped to [1.1, 50]; unknown types get the neutral default."""
        return self.quote_odds(item, quote, prediction_type, target_value, timeframe, now).odds

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def virality_score(self, item: ContentItem, quote: Optional[MarketQuote], now: Optional[datetime] = None) -> float:
        age = item.age_hours(now)
        if age <= 0:
            return 0.0
        ranking = quote.ranking if quote and quote.ranking is not None else self.config.virality_default_ranking
        return (item.score + 2 * item.comment_count) / (age * max(1, ranking / 10))

    def actual_value(
        self,
        prediction: Prediction,
        item: ContentItem,
        quote: Optional[MarketQuote],
        now: Optional[datetime] = None,
    ) -> Optional[float]:
        """Observed metric for the prediction's type; None when unobservable."""
        ptype = prediction.prediction_type
        if ptype == PredictionType.GROWTH_RATE:
            return (item.score - prediction.baseline_value) / prediction.timeframe.hours
        if ptype == PredictionType.MILESTONE_REACH:
            return float(item.score)
        if ptype == PredictionType.RANKING_POSITION:
            return float(quote.ranking) if quote and quote.ranking is not None else None
        if ptype == PredictionType.ENGAGEMENT_RATIO:
            return item.comment_count / max(1, item.score)
        if ptype == PredictionType.VIRALITY_INDEX:
            return self.virality_score(item, quote, now)
        return None

    def is_win(self, prediction: Prediction, actual: Optional[float]) -> bool:
        if actual is None:
            return False
        ptype = prediction.prediction_type
        target = prediction.target_value
        if ptype == PredictionType.MILESTONE_REACH:
            return actual >= target
        if ptype == PredictionType.RANKING_POSITION:
            return actual == target
        tolerance = self.config.tolerances.get(ptype.value)
        if tolerance is None:
            return False
        return abs(actual - target) <= tolerance * target

    def expires_at(self, prediction: Prediction) -> datetime:
        horizon = max(prediction.timeframe.hours, self.config.expiry_hours)
        return prediction.created_at + timedelta(hours=horizon)

    def resolve(
        self,
        prediction: Prediction,
        item: ContentItem,
        quote: Optional[MarketQuote],
        now: Optional[datetime] = None,
    ) -> PredictionStatus:
        """
        Verdict for a prediction at `now`.

        PENDING until the timeframe has elapsed; WON as soon as the type's
        condition holds afterwards; LOST once past the expiry horizon.
        Terminal predictions keep their status.
        """
        if prediction.is_resolved:
            return prediction.status

        now = now or datetime.utcnow()
        if now < prediction.resolves_at:
            return PredictionStatus.PENDING

        actual = self.actual_value(prediction, item, quote, now)
        if self.is_win(prediction, actual):
            return PredictionStatus.WON
        if now >= self.expires_at(prediction):
            return PredictionStatus.LOST
        return PredictionStatus.PENDING

    # ------------------------------------------------------------------
    # Suggestions and stats
    # ------------------------------------------------------------------

    @staticmethod
    def _confidence(expected: float, predicted: float) -> float:
        if expected <= 0:
            return 0.1
        accuracy = 1 - abs(predicted - expected) / expected
        return round(max(0.1, min(0.9, accuracy)), 2)

    def generate_suggestions(
        self,
        item: ContentItem,
        quote: Optional[MarketQuote],
        now: Optional[datetime] = None,
    ) -> List[dict]:
        """Suggested targets around the item's current trajectory."""
        conditions = self.analyze_conditions(item, quote, now)
        expected_growth = conditions.growth_rate
        suggestions = []

        growth_target = round(expected_growth * (0.8 + float(self.rng.random()) * 0.4))
        suggestions.append({
            'type': PredictionType.GROWTH_RATE.value,
            'target_value': growth_target,
            'timeframe': 'LONG',
            'confidence': self._confidence(expected_growth, growth_target),
            'reasoning': f"Based on current {expected_growth:.1f} upvotes/hour growth rate",
        })

        projected = item.score + expected_growth * 24
        milestone_target = round(projected * (0.9 + float(self.rng.random()) * 0.2))
        suggestions.append({
            'type': PredictionType.MILESTONE_REACH.value,
            'target_value': milestone_target,
            'timeframe': 'LONG',
            'confidence': self._confidence(projected, milestone_target),
            'reasoning': f"Projected {projected:.0f} upvotes in 24 hours",
        })

        if item.score > 100:
            ranking_target = max(1, conditions.current_ranking - int(float(self.rng.random()) * 10))
            suggestions.append({
                'type': PredictionType.RANKING_POSITION.value,
                'target_value': ranking_target,
                'timeframe': 'LONG',
                'confidence': 0.6,
                'reasoning': f"Current ranking: {conditions.current_ranking}, strong performer",
            })

        logger.debug(f"Generated {len(suggestions)} suggestions for {item.id}")
        return suggestions

    @staticmethod
    def prediction_stats(predictions: List[Prediction]) -> dict:
        resolved = [p for p in predictions if p.is_resolved]
        won = [p for p in resolved if p.status == PredictionStatus.WON]

        def group(key) -> dict:
            grouped: Dict[str, dict] = {}
            for p in predictions:
                bucket = grouped.setdefault(key(p), {'total': 0, 'wins': 0})
                bucket['total'] += 1
                if p.status == PredictionStatus.WON:
                    bucket['wins'] += 1
            for bucket in grouped.values():
                bucket['win_rate'] = round(bucket['wins'] / bucket['total'] * 100, 1)
            return grouped

        return {
            'total_predictions': len(predictions),
            'resolved_predictions': len(resolved),
            'win_rate': round(len(won) / len(resolved) * 100, 1) if resolved else 0.0,
            'average_odds': round(sum(p.odds for p in predictions) / max(1, len(predictions)), 2),
            'by_type': group(lambda p: p.prediction_type.value),
            'by_timeframe': group(lambda p: p.timeframe.value),
        }
