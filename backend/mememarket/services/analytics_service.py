"""
Analytics Service - Read-only derived statistics over a portfolio

Every query degrades to zeroed defaults on failure; analytics never
propagate errors into the ledger path.
"""
import functools
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd
from loguru import logger

from ..models.content import ContentItem
from ..models.portfolio import Portfolio
from ..models.prediction import Prediction, PredictionStatus
from .market_engine import subreddit_multiplier

Items = Union[Iterable[ContentItem], Dict[str, ContentItem], None]


@dataclass
class AnalyticsConfig:
    """Configuration for analytics."""
    performance_tracking_days: int = 30
    favorite_limit: int = 5

    # Subreddit classification (win rate %)
    low_volatility_above: float = 70.0
    medium_volatility_above: float = 40.0
    rising_above: float = 60.0
    falling_below: float = 30.0
    buy_win_rate_above: float = 65.0
    buy_multiplier_above: float = 1.2
    sell_win_rate_below: float = 35.0

    # Risk level by PnL volatility
    high_risk_above: float = 1000.0
    medium_risk_above: float = 500.0


def degrades_to(default_factory: Callable[[], object]):
    """Return a zeroed default instead of raising."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.warning(f"{func.__name__} failed, returning defaults: {e}")
                return default_factory()
        return wrapper
    return decorator


def _streak_defaults() -> dict:
    return {
        'current_win_streak': 0,
        'current_loss_streak': 0,
        'best_win_streak': 0,
        'best_loss_streak': 0,
        'total_predictions': 0,
        'total_wins': 0,
        'total_losses': 0,
    }


def _risk_defaults() -> dict:
    return {
        'total_invested': 0.0,
        'average_bet_size': 0.0,
        'win_rate': 0.0,
        'volatility': 0.0,
        'risk_adjusted_return': 0.0,
        'risk_level': 'Low',
    }


def _frequency_defaults() -> dict:
    return {
        'bets_per_day': 0.0,
        'average_interval_minutes': 0,
        'most_active_hour': 0,
        'most_active_day': 'N/A',
    }


def _as_lookup(items: Items) -> Dict[str, ContentItem]:
    if items is None:
        return {}
    if isinstance(items, dict):
        return items
    return {item.id: item for item in items}


def _pnl(prediction: Prediction) -> float:
    if prediction.status == PredictionStatus.WON:
        return prediction.bet_amount * prediction.odds - prediction.bet_amount
    if prediction.status == PredictionStatus.LOST:
        return -prediction.bet_amount
    return 0.0


class AnalyticsService:
    """
    Streaks, subreddit breakdowns, risk metrics and betting frequency.

    Only `track_daily_performance` writes, and only to the portfolio's
    performance history.
    """

    def __init__(self, config: Optional[AnalyticsConfig] = None, ledger=None):
        self.config = config or AnalyticsConfig()
        self.ledger = ledger

    @degrades_to(_streak_defaults)
    def calculate_streaks(self, portfolio: Portfolio) -> dict:
        resolved = sorted(
            portfolio.resolved_predictions,
            key=lambda p: p.resolved_at or p.created_at,
        )

        win_run = loss_run = best_win = best_loss = 0
        for prediction in resolved:
            if prediction.status == PredictionStatus.WON:
                win_run += 1
                loss_run = 0
                best_win = max(best_win, win_run)
            else:
                loss_run += 1
                win_run = 0
                best_loss = max(best_loss, loss_run)

        # The run still open after the scan is the one ending at the most recent result
        wins = sum(1 for p in resolved if p.status == PredictionStatus.WON)
        return {
            'current_win_streak': win_run,
            'current_loss_streak': loss_run,
            'best_win_streak': best_win,
            'best_loss_streak': best_loss,
            'total_predictions': len(resolved),
            'total_wins': wins,
            'total_losses': len(resolved) - wins,
        }

    def _resolved_frame(self, portfolio: Portfolio, items: Items) -> pd.DataFrame:
        lookup = _as_lookup(items)
        rows = []
        for p in portfolio.resolved_predictions:
            item = lookup.get(p.item_id)
            rows.append({
                'subreddit': item.subreddit if item and item.subreddit else 'unknown',
                'won': p.status == PredictionStatus.WON,
                'odds': p.odds,
                'bet_amount': p.bet_amount,
            })
        return pd.DataFrame(rows, columns=['subreddit', 'won', 'odds', 'bet_amount'])

    @degrades_to(list)
    def analyze_subreddits(self, portfolio: Portfolio, items: Items = None) -> List[dict]:
        cfg = self.config
        df = self._resolved_frame(portfolio, items)
        if df.empty:
            return []

        grouped = df.groupby('subreddit', sort=False).agg(
            total_predictions=('won', 'size'),
            wins=('won', 'sum'),
            average_odds=('odds', 'mean'),
            total_bet_amount=('bet_amount', 'sum'),
        )

        analysis = []
        for subreddit, row in grouped.iterrows():
            win_rate = float(row['wins']) / int(row['total_predictions']) * 100
            multiplier = subreddit_multiplier(subreddit)

            if win_rate > cfg.low_volatility_above:
                volatility = 'low'
            elif win_rate > cfg.medium_volatility_above:
                volatility = 'medium'
            else:
                volatility = 'high'

            if win_rate > cfg.rising_above:
                trend = 'rising'
            elif win_rate < cfg.falling_below:
                trend = 'falling'
            else:
                trend = 'stable'

            recommendation = 'hold'
            if win_rate > cfg.buy_win_rate_above and multiplier > cfg.buy_multiplier_above:
                recommendation = 'buy'
            elif win_rate < cfg.sell_win_rate_below:
                recommendation = 'sell'

            analysis.append({
                'subreddit': subreddit,
                'total_predictions': int(row['total_predictions']),
                'win_rate': round(win_rate, 1),
                'average_odds': round(float(row['average_odds']), 2),
                'total_bet_amount': round(float(row['total_bet_amount']), 2),
                'volatility': volatility,
                'trend': trend,
                'recommendation': recommendation,
            })

        analysis.sort(key=lambda a: a['total_predictions'], reverse=True)
        return analysis

    @degrades_to(_risk_defaults)
    def calculate_risk_metrics(self, portfolio: Portfolio) -> dict:
        active = portfolio.active_predictions
        resolved = portfolio.resolved_predictions

        total_invested = sum(p.bet_amount for p in active)
        average_bet = total_invested / len(active) if active else 0.0

        wins = sum(1 for p in resolved if p.status == PredictionStatus.WON)
        win_rate = wins / len(resolved) * 100 if resolved else 0.0

        returns = np.array([_pnl(p) for p in resolved], dtype=float)
        if returns.size:
            mean_return = float(np.mean(returns))
            volatility = float(np.std(returns))
        else:
            mean_return = volatility = 0.0
        risk_adjusted = mean_return / volatility if volatility > 0 else 0.0

        if volatility > self.config.high_risk_above:
            risk_level = 'High'
        elif volatility > self.config.medium_risk_above:
            risk_level = 'Medium'
        else:
            risk_level = 'Low'

        return {
            'total_invested': round(total_invested, 2),
            'average_bet_size': round(average_bet, 2),
            'win_rate': round(win_rate, 1),
            'volatility': round(volatility, 2),
            'risk_adjusted_return': round(risk_adjusted, 4),
            'risk_level': risk_level,
        }

    @degrades_to(_frequency_defaults)
    def betting_frequency(self, portfolio: Portfolio) -> dict:
        if len(portfolio.predictions) < 2:
            return _frequency_defaults()

        created = pd.Series(sorted(p.created_at for p in portfolio.predictions))
        span_days = (created.iloc[-1] - created.iloc[0]).total_seconds() / 86400
        bets_per_day = len(created) / max(1.0, span_days)
        average_interval = created.diff().dropna().mean().total_seconds() / 60

        # Ties resolve to the earliest hour / weekday
        hour_counts = created.dt.hour.value_counts().sort_index()
        day_counts = created.dt.dayofweek.value_counts().sort_index()
        day_names = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

        return {
            'bets_per_day': round(bets_per_day, 1),
            'average_interval_minutes': int(round(average_interval)),
            'most_active_hour': int(hour_counts.idxmax()),
            'most_active_day': day_names[int(day_counts.idxmax())],
        }

    @degrades_to(list)
    def favorite_subreddits(self, portfolio: Portfolio, items: Items = None) -> List[str]:
        lookup = _as_lookup(items)
        stats: Dict[str, Dict[str, int]] = {}
        for p in portfolio.predictions:
            item = lookup.get(p.item_id)
            subreddit = item.subreddit if item and item.subreddit else 'unknown'
            entry = stats.setdefault(subreddit, {'wins': 0, 'total': 0})
            entry['total'] += 1
            if p.status == PredictionStatus.WON:
                entry['wins'] += 1

        ranked = sorted(stats.items(), key=lambda kv: kv[1]['wins'] / kv[1]['total'], reverse=True)
        return [subreddit for subreddit, _ in ranked[:self.config.favorite_limit]]

    def track_daily_performance(self, portfolio: Portfolio, now: Optional[datetime] = None) -> Optional[dict]:
        """Upsert today's snapshot into the portfolio's rolling history."""
        now = now or datetime.utcnow()
        lock = self.ledger.lock_for(portfolio.user_id) if self.ledger else nullcontext()
        try:
            with lock:
                today = now.date().isoformat()
                todays = [p for p in portfolio.predictions if p.created_at.date().isoformat() == today]
                won = sum(1 for p in todays if p.status == PredictionStatus.WON)
                snapshot = {
                    'date': today,
                    'balance': round(portfolio.balance, 2),
                    'total_predictions': len(todays),
                    'win_rate': round(won / len(todays) * 100, 1) if todays else 0.0,
                    'net_earnings': round(sum(_pnl(p) for p in todays), 2),
                    'experience': portfolio.experience,
                }

                history = [d for d in portfolio.performance_history if d.get('date') != today]
                history.append(snapshot)
                history.sort(key=lambda d: d['date'])
                portfolio.performance_history = history[-self.config.performance_tracking_days:]
                return snapshot
        except Exception as e:
            logger.warning(f"track_daily_performance failed for {portfolio.user_id}: {e}")
            return None

    @staticmethod
    def performance_history(portfolio: Portfolio) -> List[dict]:
        return sorted(portfolio.performance_history, key=lambda d: d['date'])

    def dashboard(self, portfolio: Portfolio, items: Items = None) -> dict:
        return {
            'streaks': self.calculate_streaks(portfolio),
            'subreddits': self.analyze_subreddits(portfolio, items),
            'risk': self.calculate_risk_metrics(portfolio),
            'frequency': self.betting_frequency(portfolio),
            'favorite_subreddits': self.favorite_subreddits(portfolio, items),
            'performance_history': self.performance_history(portfolio),
        }
