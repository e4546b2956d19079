"""
Alert Service - Periodic sweep deriving notifications from portfolio state
"""
import hashlib
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set

from loguru import logger

from ..core.errors import MarketError
from ..models.alert import Alert, AlertType
from ..models.content import ContentItem
from ..models.portfolio import Portfolio
from ..models.tournament import TournamentStatus
from .prediction_engine import PredictionEngine
from .staking_service import StakingService
from .tournament_service import TournamentService

AlertListener = Callable[[str, List[Alert]], None]


@dataclass
class AlertConfig:
    """Configuration for alerts."""
    max_alerts_per_user: int = 50
    expiring_window_hours: float = 2.0
    min_staking_reward: float = 10.0
    opportunity_min_score: int = 1000
    opportunity_min_comments: int = 50


class AlertService:
    """
    Per-user alert feed.

    Each alert carries a deduplication key; a key fires at most once per
    user. Feeds are kept newest first and capped.
    """

    def __init__(
        self,
        prediction_engine: PredictionEngine,
        staking: StakingService,
        tournaments: TournamentService,
        config: Optional[AlertConfig] = None,
    ):
        self.config = config or AlertConfig()
        self.engine = prediction_engine
        self.staking = staking
        self.tournaments = tournaments

        self._alerts: Dict[str, List[Alert]] = defaultdict(list)
        self._seen: Dict[str, Set[str]] = defaultdict(set)
        self._listeners: List[AlertListener] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Feed
    # ------------------------------------------------------------------

    def subscribe(self, listener: AlertListener) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self, user_id: str):
        alerts = self.get_alerts(user_id)
        for listener in list(self._listeners):
            try:
                listener(user_id, alerts)
            except Exception as e:
                logger.error(f"Alert listener failed: {e}")

    def add_alert(
        self,
        user_id: str,
        alert_type: AlertType,
        title: str,
        message: str,
        key: str,
        now: Optional[datetime] = None,
        action_url: Optional[str] = None,
    ) -> Optional[Alert]:
        """Append an alert unless its key already fired for this user."""
        with self._lock:
            if key in self._seen[user_id]:
                return None
            self._seen[user_id].add(key)

            alert = Alert(
                id=f"alert_{uuid.uuid4().hex[:12]}",
                user_id=user_id,
                type=alert_type,
                title=title,
                message=message,
                key=key,
                created_at=now or datetime.utcnow(),
                action_url=action_url,
            )
            feed = self._alerts[user_id]
            feed.insert(0, alert)
            del feed[self.config.max_alerts_per_user:]
        return alert

    def get_alerts(self, user_id: str, unread_only: bool = False) -> List[Alert]:
        with self._lock:
            alerts = list(self._alerts.get(user_id, []))
        if unread_only:
            return [a for a in alerts if not a.read]
        return alerts

    def mark_read(self, user_id: str, alert_id: str) -> bool:
        with self._lock:
            for alert in self._alerts.get(user_id, []):
                if alert.id == alert_id:
                    alert.read = True
                    break
            else:
                return False
        self._notify(user_id)
        return True

    def mark_all_read(self, user_id: str) -> int:
        with self._lock:
            unread = [a for a in self._alerts.get(user_id, []) if not a.read]
            for alert in unread:
                alert.read = True
        if unread:
            self._notify(user_id)
        return len(unread)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_expiring_bets(self, portfolio: Portfolio, now: datetime) -> List[Alert]:
        created = []
        for prediction in portfolio.active_predictions:
            remaining = (self.engine.expires_at(prediction) - now).total_seconds() / 3600
            if 0 < remaining <= self.config.expiring_window_hours:
                alert = self.add_alert(
                    portfolio.user_id,
                    AlertType.EXPIRING_BET,
                    "Bet Expiring Soon!",
                    f'Your bet on "{prediction.item_title or prediction.item_id}" expires in {int(remaining)} hours',
                    key=f"expiring:{prediction.id}",
                    now=now,
                    action_url=f"/market/item/{prediction.item_id}",
                )
                if alert:
                    created.append(alert)
        return created

    def check_staking_rewards(self, portfolio: Portfolio, now: datetime) -> List[Alert]:
        pending = self.staking.claimable_reward(portfolio, now)
        if pending <= self.config.min_staking_reward or portfolio.last_staking_claim is None:
            return []
        alert = self.add_alert(
            portfolio.user_id,
            AlertType.STAKING_REWARD,
            "Staking Rewards Available!",
            f"You have {pending:.2f} MemeCoins ready to claim from staking",
            key=f"staking:{portfolio.last_staking_claim.isoformat()}",
            now=now,
            action_url="/portfolio",
        )
        return [alert] if alert else []

    def check_tournament_standing(self, portfolio: Portfolio, now: datetime) -> List[Alert]:
        tournament_id = portfolio.current_tournament_id
        if not tournament_id:
            return []
        try:
            tournament = self.tournaments.get_tournament(tournament_id)
        except MarketError:
            return []
        if tournament.status != TournamentStatus.ACTIVE:
            return []

        rank = self.tournaments.user_rank(tournament_id, portfolio.user_id)
        if rank <= 0:
            return []
        alert = self.add_alert(
            portfolio.user_id,
            AlertType.TOURNAMENT,
            "Tournament Update",
            f"You are ranked #{rank} in {tournament.name} with {portfolio.tournament_points} points",
            key=f"tournament:{tournament_id}:{rank}:{portfolio.tournament_points}",
            now=now,
            action_url="/tournaments",
        )
        return [alert] if alert else []

    def check_market_opportunities(
        self,
        portfolio: Portfolio,
        items: Iterable[ContentItem],
        now: datetime,
    ) -> List[Alert]:
        hot = sorted(
            item.id for item in items
            if item.score > self.config.opportunity_min_score
            and item.comment_count > self.config.opportunity_min_comments
        )
        if not hot:
            return []
        digest = hashlib.md5(",".join(hot).encode()).hexdigest()[:12]
        alert = self.add_alert(
            portfolio.user_id,
            AlertType.MARKET_OPPORTUNITY,
            "Market Opportunity!",
            f"{len(hot)} high-potential posts detected. Great time to place bets!",
            key=f"opportunity:{digest}",
            now=now,
            action_url="/market",
        )
        return [alert] if alert else []

    def check_achievements(self, portfolio: Portfolio, now: datetime) -> List[Alert]:
        created = []
        for achievement in portfolio.achievements:
            alert = self.add_alert(
                portfolio.user_id,
                AlertType.ACHIEVEMENT,
                "Achievement Unlocked!",
                f'You\'ve earned the "{achievement.name}" achievement!',
                key=f"achievement:{achievement.id}",
                now=now,
                action_url="/achievements",
            )
            if alert:
                created.append(alert)
        return created

    def sweep(
        self,
        portfolio: Portfolio,
        items: Optional[Iterable[ContentItem]] = None,
        now: Optional[datetime] = None,
    ) -> List[Alert]:
        """Run every check; a failing check is skipped, not propagated."""
        now = now or datetime.utcnow()
        items = list(items or [])
        checks = [
            lambda: self.check_expiring_bets(portfolio, now),
            lambda: self.check_staking_rewards(portfolio, now),
            lambda: self.check_tournament_standing(portfolio, now),
            lambda: self.check_market_opportunities(portfolio, items, now),
            lambda: self.check_achievements(portfolio, now),
        ]

        created: List[Alert] = []
        for check in checks:
            try:
                created.extend(check())
            except Exception as e:
                logger.warning(f"Alert check failed for {portfolio.user_id}: {e}")

        if created:
            logger.debug(f"{len(created)} new alerts for {portfolio.user_id}")
            self._notify(portfolio.user_id)
        return created
