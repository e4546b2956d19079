"""
Ledger Service - The single mutation surface for portfolios

Every balance movement is posted as a LedgerEntry, so earnings breakdowns
are summed from records rather than estimated. Mutating operations validate
first and mutate second: a raised error leaves the portfolio untouched.
"""
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Union

from loguru import logger

from ..core.constants import ACHIEVEMENTS, LEVELS
from ..core.errors import InsufficientFundsError, InvalidStateError, ValidationError
from ..models.content import ContentItem
from ..models.market import MarketQuote
from ..models.portfolio import Achievement, LedgerCategory, LedgerEntry, Portfolio
from ..models.prediction import (
    Prediction,
    PredictionIntent,
    PredictionStatus,
    PredictionType,
    Timeframe,
)
from .market_engine import MarketEngine
from .prediction_engine import PredictionEngine


ResolutionCallback = Callable[[Portfolio, Prediction, int], None]


@dataclass
class LedgerConfig:
    """Configuration for the wager ledger."""
    initial_balance: float = 1000.0
    min_bet: float = 10.0
    max_bet: float = 1000.0

    # Experience
    bet_experience_rate: float = 0.05
    win_experience_rate: float = 0.1

    # Bonuses (MemeCoins)
    daily_reward: float = 50.0
    level_up_bonus: float = 25.0
    streak_bonus: float = 10.0
    streak_bonus_interval: int = 5

    # Achievement thresholds
    high_roller_threshold: float = 1000.0
    winning_streak_threshold: int = 5
    perfect_predictor_threshold: int = 10
    market_veteran_threshold: int = 100


def level_for(experience: int) -> dict:
    """Level, title and progress (%) towards the next level."""
    for i in range(len(LEVELS) - 1, -1, -1):
        current = LEVELS[i]
        if experience >= current["experience"]:
            if i == len(LEVELS) - 1:
                return {
                    'level': current["level"],
                    'title': current["title"],
                    'progress': 100.0,
                    'next_level_experience': None,
                }
            nxt = LEVELS[i + 1]
            progress = (experience - current["experience"]) / (nxt["experience"] - current["experience"]) * 100
            return {
                'level': current["level"],
                'title': current["title"],
                'progress': round(min(progress, 100.0), 1),
                'next_level_experience': nxt["experience"],
            }
    return {
        'level': 1,
        'title': LEVELS[0]["title"],
        'progress': 0.0,
        'next_level_experience': LEVELS[1]["experience"],
    }


class LedgerService:
    """
    Wager ledger.

    Portfolio mutations are serialized per user through `lock_for`; the
    staking and tournament services take the same locks.
    """

    def __init__(
        self,
        prediction_engine: PredictionEngine,
        market: Optional[MarketEngine] = None,
        config: Optional[LedgerConfig] = None,
    ):
        self.config = config or LedgerConfig()
        self.engine = prediction_engine
        self.market = market

        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._callbacks: List[ResolutionCallback] = []

    def lock_for(self, user_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.RLock()
            return lock

    def on_prediction_resolved(self, callback: ResolutionCallback):
        """Register a callback invoked once per newly resolved prediction."""
        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    # Postings
    # ------------------------------------------------------------------

    def post(
        self,
        portfolio: Portfolio,
        category: LedgerCategory,
        amount: float,
        now: Optional[datetime] = None,
        reference: Optional[str] = None,
        note: str = "",
    ) -> LedgerEntry:
        """Apply a signed amount to the balance and record it."""
        portfolio.balance += amount
        entry = LedgerEntry(
            category=category,
            amount=amount,
            balance_after=portfolio.balance,
            created_at=now or datetime.utcnow(),
            reference=reference,
            note=note,
        )
        portfolio.ledger.append(entry)
        return entry

    def create_portfolio(self, user_id: str, now: Optional[datetime] = None) -> Portfolio:
        now = now or datetime.utcnow()
        portfolio = Portfolio(
            user_id=user_id,
            balance=0.0,
            initial_balance=self.config.initial_balance,
            created_at=now,
        )
        self.post(portfolio, LedgerCategory.INITIAL, self.config.initial_balance, now, note="Starting balance")
        logger.info(f"Created portfolio for {user_id} with {self.config.initial_balance:.0f} MemeCoins")
        return portfolio

    # ------------------------------------------------------------------
    # Bets
    # ------------------------------------------------------------------

    def validate_bet(self, portfolio: Portfolio, intent: PredictionIntent):
        valid_types = {t.value for t in PredictionType}
        if getattr(intent.prediction_type, "value", intent.prediction_type) not in valid_types:
            raise ValidationError(f"Unknown prediction type: {intent.prediction_type}")

        valid_timeframes = {t.value for t in Timeframe}
        if getattr(intent.timeframe, "value", intent.timeframe) not in valid_timeframes:
            raise ValidationError(f"Unknown timeframe: {intent.timeframe}")

        if not math.isfinite(intent.target_value) or intent.target_value <= 0:
            raise ValidationError("Target value must be a positive number")

        if not math.isfinite(intent.bet_amount):
            raise ValidationError("Bet amount must be a finite number")
        if intent.bet_amount < self.config.min_bet:
            raise ValidationError(f"Minimum bet is {self.config.min_bet:.0f} MemeCoins")
        if intent.bet_amount > portfolio.balance:
            raise InsufficientFundsError(intent.bet_amount, portfolio.balance)
        if intent.bet_amount > self.config.max_bet:
            raise ValidationError(f"Maximum bet is {self.config.max_bet:.0f} MemeCoins")

    def place_bet(
        self,
        portfolio: Portfolio,
        intent: PredictionIntent,
        item: ContentItem,
        quote: Optional[MarketQuote] = None,
        now: Optional[datetime] = None,
    ) -> Prediction:
        """
        Validate and place a wager.

        Raises:
            ValidationError: bad type, timeframe, target or amount bounds
            InsufficientFundsError: bet exceeds balance
        """
        now = now or datetime.utcnow()
        if item.id != intent.item_id:
            raise ValidationError(f"Item {item.id} does not match intent item {intent.item_id}")
        if quote is None and self.market is not None:
            quote = self.market.get_quote(item.id)

        with self.lock_for(portfolio.user_id):
            self.validate_bet(portfolio, intent)

            priced = self.engine.quote_odds(
                item, quote, intent.prediction_type, intent.target_value, intent.timeframe, now
            )
            prediction = Prediction.create(
                portfolio.user_id,
                intent,
                odds=priced.odds,
                baseline_value=float(item.score),
                created_at=now,
                item_title=item.title,
                item_url=item.url,
                volatility_factor=priced.volatility_factor,
                market_conditions=priced.conditions,
            )

            self.post(portfolio, LedgerCategory.WAGER, -intent.bet_amount, now, reference=prediction.id)
            portfolio.predictions.append(prediction)
            self._gain_experience(portfolio, math.floor(intent.bet_amount * self.config.bet_experience_rate), now)
            self._check_achievements(portfolio, now)

        logger.info(
            f"🎯 {portfolio.user_id} bet {intent.bet_amount:.0f} on {item.id} "
            f"{prediction.prediction_type.value} -> {intent.target_value} @ {prediction.odds:.2f}x"
        )
        return prediction

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_all(
        self,
        portfolio: Portfolio,
        items: Union[Iterable[ContentItem], Dict[str, ContentItem]],
        now: Optional[datetime] = None,
        quotes: Optional[Dict[str, MarketQuote]] = None,
    ) -> Portfolio:
        """
        Resolve every active prediction whose item is present.
        Terminal predictions are skipped, so repeated calls are no-ops.
        """
        now = now or datetime.utcnow()
        by_id = items if isinstance(items, dict) else {item.id: item for item in items}
        newly_resolved = []

        with self.lock_for(portfolio.user_id):
            for prediction in portfolio.predictions:
                if not prediction.is_active:
                    continue
                item = by_id.get(prediction.item_id)
                if item is None:
                    continue

                quote = self._quote_for(prediction.item_id, quotes)
                verdict = self.engine.resolve(prediction, item, quote, now)
                if verdict not in (PredictionStatus.WON, PredictionStatus.LOST):
                    continue

                prediction.settle(verdict, now)
                if verdict == PredictionStatus.WON:
                    self._apply_win(portfolio, prediction, now)
                else:
                    self._apply_loss(portfolio)
                newly_resolved.append((prediction, portfolio.consecutive_wins))

            if newly_resolved:
                self._check_achievements(portfolio, now)

        for prediction, streak in newly_resolved:
            logger.info(
                f"{'✅' if prediction.status == PredictionStatus.WON else '❌'} "
                f"{portfolio.user_id} {prediction.id} {prediction.status.value}"
            )
            self._notify(portfolio, prediction, streak)
        return portfolio

    def _quote_for(self, item_id: str, quotes: Optional[Dict[str, MarketQuote]]) -> Optional[MarketQuote]:
        if quotes is not None:
            return quotes.get(item_id)
        if self.market is not None:
            return self.market.get_quote(item_id)
        return None

    def _apply_win(self, portfolio: Portfolio, prediction: Prediction, now: datetime):
        winnings = prediction.bet_amount * prediction.odds
        self.post(portfolio, LedgerCategory.WINNINGS, winnings, now, reference=prediction.id)

        portfolio.consecutive_wins += 1
        portfolio.consecutive_losses = 0
        portfolio.best_win_streak = max(portfolio.best_win_streak, portfolio.consecutive_wins)
        portfolio.best_win = max(portfolio.best_win, winnings - prediction.bet_amount)

        interval = self.config.streak_bonus_interval
        if portfolio.consecutive_wins % interval == 0:
            bonus = self.config.streak_bonus * portfolio.consecutive_wins / interval
            self.post(
                portfolio, LedgerCategory.STREAK_BONUS, bonus, now,
                note=f"{portfolio.consecutive_wins} wins in a row",
            )

        self._gain_experience(portfolio, math.floor(winnings * self.config.win_experience_rate), now)

    @staticmethod
    def _apply_loss(portfolio: Portfolio):
        portfolio.consecutive_losses += 1
        portfolio.consecutive_wins = 0

    def _notify(self, portfolio: Portfolio, prediction: Prediction, consecutive_wins: int):
        for callback in self._callbacks:
            try:
                callback(portfolio, prediction, consecutive_wins)
            except Exception as e:
                logger.error(f"Resolution callback failed for {prediction.id}: {e}")

    # ------------------------------------------------------------------
    # Progression
    # ------------------------------------------------------------------

    def _gain_experience(self, portfolio: Portfolio, amount: int, now: datetime):
        portfolio.experience += amount
        new_level = level_for(portfolio.experience)['level']
        if new_level > portfolio.level:
            gained = new_level - portfolio.level
            self.post(
                portfolio, LedgerCategory.LEVEL_UP, self.config.level_up_bonus * gained, now,
                note=f"Reached level {new_level}",
            )
            logger.info(f"⬆️ {portfolio.user_id} reached level {new_level}")
        portfolio.level = max(portfolio.level, new_level)

    def _achievement_conditions(self, portfolio: Portfolio) -> Dict[str, bool]:
        cfg = self.config
        return {
            'first_trade': portfolio.total_predictions > 0,
            'high_roller': any(p.bet_amount >= cfg.high_roller_threshold for p in portfolio.predictions),
            'winning_streak': portfolio.best_win_streak >= cfg.winning_streak_threshold,
            'perfect_predictor': portfolio.best_win_streak >= cfg.perfect_predictor_threshold,
            'market_veteran': portfolio.total_predictions >= cfg.market_veteran_threshold,
        }

    def _check_achievements(self, portfolio: Portfolio, now: datetime) -> List[Achievement]:
        unlocked = []
        for achievement_id, met in self._achievement_conditions(portfolio).items():
            if not met or portfolio.has_achievement(achievement_id):
                continue
            definition = ACHIEVEMENTS[achievement_id]
            achievement = Achievement(
                id=achievement_id,
                name=definition["name"],
                description=definition["description"],
                rarity=definition["rarity"],
                reward=definition["reward"],
                unlocked_at=now,
            )
            portfolio.achievements.append(achievement)
            self.post(portfolio, LedgerCategory.ACHIEVEMENT, achievement.reward, now, reference=achievement_id)
            unlocked.append(achievement)
            logger.info(f"🏆 {portfolio.user_id} unlocked {achievement.name}")
        return unlocked

    # ------------------------------------------------------------------
    # Rewards and tournament money flow
    # ------------------------------------------------------------------

    def claim_daily_reward(self, portfolio: Portfolio, now: Optional[datetime] = None) -> float:
        """Credit the daily reward once per UTC day."""
        now = now or datetime.utcnow()
        with self.lock_for(portfolio.user_id):
            last = portfolio.last_daily_reward
            if last is not None and last.date() == now.date():
                raise InvalidStateError("Daily reward already claimed today")
            portfolio.last_daily_reward = now
            self.post(portfolio, LedgerCategory.DAILY_REWARD, self.config.daily_reward, now)
        logger.info(f"🎁 {portfolio.user_id} claimed daily reward")
        return self.config.daily_reward

    def debit_tournament_fee(
        self,
        portfolio: Portfolio,
        fee: float,
        tournament_id: str,
        now: Optional[datetime] = None,
    ) -> LedgerEntry:
        with self.lock_for(portfolio.user_id):
            if fee > portfolio.balance:
                raise InsufficientFundsError(fee, portfolio.balance)
            return self.post(portfolio, LedgerCategory.TOURNAMENT_FEE, -fee, now, reference=tournament_id)

    def credit_tournament_prize(
        self,
        portfolio: Portfolio,
        prize: float,
        tournament_id: str,
        now: Optional[datetime] = None,
    ) -> LedgerEntry:
        with self.lock_for(portfolio.user_id):
            return self.post(portfolio, LedgerCategory.TOURNAMENT_PRIZE, prize, now, reference=tournament_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def portfolio_value(portfolio: Portfolio) -> float:
        """Balance plus 10% of open upside plus realized profit on wins."""
        value = portfolio.balance
        for prediction in portfolio.predictions:
            if prediction.status == PredictionStatus.ACTIVE:
                value += prediction.bet_amount * prediction.odds * 0.1
            elif prediction.status == PredictionStatus.WON:
                value += prediction.bet_amount * (prediction.odds - 1)
        return value

    @staticmethod
    def earnings_summary(portfolio: Portfolio) -> dict:
        totals: Dict[LedgerCategory, float] = {c: 0.0 for c in LedgerCategory}
        for entry in portfolio.ledger:
            totals[entry.category] += entry.amount

        return {
            'initial': portfolio.initial_balance,
            'from_wins': round(totals[LedgerCategory.WINNINGS], 2),
            'from_daily_rewards': round(totals[LedgerCategory.DAILY_REWARD], 2),
            'from_achievements': round(totals[LedgerCategory.ACHIEVEMENT], 2),
            'from_level_ups': round(totals[LedgerCategory.LEVEL_UP], 2),
            'from_streaks': round(totals[LedgerCategory.STREAK_BONUS], 2),
            'from_staking': round(totals[LedgerCategory.STAKING_REWARD], 2),
            'from_tournaments': round(
                totals[LedgerCategory.TOURNAMENT_PRIZE] + totals[LedgerCategory.TOURNAMENT_FEE], 2
            ),
            'total_spent': round(-totals[LedgerCategory.WAGER], 2),
            'currently_staked': round(portfolio.staked_balance, 2),
            'net_earnings': round(portfolio.balance - portfolio.initial_balance, 2),
        }
