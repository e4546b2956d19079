"""
Staking Service - Tiered yield on staked MemeCoins
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from loguru import logger

from ..core.constants import STAKING_TIERS
from ..core.errors import InsufficientFundsError, NotFoundError, ValidationError
from ..models.portfolio import LedgerCategory, Portfolio, StakingTier
from .ledger_service import LedgerService


def default_tiers() -> List[StakingTier]:
    return [StakingTier(**tier) for tier in STAKING_TIERS]


@dataclass
class StakingConfig:
    """Configuration for staking."""
    tiers: List[StakingTier] = field(default_factory=default_tiers)
    claim_interval: timedelta = timedelta(hours=1)


class StakingService:
    """
    Moves funds between balance and staked balance and accrues yield.

    Reward = staked x (apr / 100 / 365) x (hours since last claim / 24).
    """

    def __init__(self, ledger: LedgerService, config: Optional[StakingConfig] = None):
        self.config = config or StakingConfig()
        self.ledger = ledger
        self._tiers = sorted(self.config.tiers, key=lambda t: t.min_amount)

    @property
    def tiers(self) -> List[StakingTier]:
        return list(self._tiers)

    def tier_for(self, amount: float) -> StakingTier:
        """Highest tier whose minimum is covered by the amount."""
        selected = self._tiers[0]
        for tier in self._tiers:
            if amount >= tier.min_amount:
                selected = tier
        return selected

    def get_tier(self, name: str) -> StakingTier:
        for tier in self._tiers:
            if tier.name == name:
                return tier
        raise NotFoundError(f"Unknown staking tier: {name}")

    def claimable_reward(self, portfolio: Portfolio, now: Optional[datetime] = None) -> float:
        if portfolio.staked_balance <= 0 or portfolio.last_staking_claim is None:
            return 0.0
        now = now or datetime.utcnow()
        hours = (now - portfolio.last_staking_claim).total_seconds() / 3600
        tier = self.tier_for(portfolio.staked_balance)
        reward = portfolio.staked_balance * (tier.apr / 100 / 365) * (hours / 24)
        return max(0.0, reward)

    def stake(self, portfolio: Portfolio, amount: float, now: Optional[datetime] = None) -> Portfolio:
        now = now or datetime.utcnow()
        with self.ledger.lock_for(portfolio.user_id):
            if not math.isfinite(amount) or amount <= 0:
                raise ValidationError("Stake amount must be a positive number")
            if amount > portfolio.balance:
                raise InsufficientFundsError(amount, portfolio.balance)

            self.ledger.post(portfolio, LedgerCategory.STAKE, -amount, now)
            portfolio.staked_balance += amount
            portfolio.last_staking_claim = now

        logger.info(f"🔒 {portfolio.user_id} staked {amount:.2f} (total {portfolio.staked_balance:.2f})")
        return portfolio

    def unstake(self, portfolio: Portfolio, amount: float, now: Optional[datetime] = None) -> Portfolio:
        """Pending rewards are claimed before the principal is released."""
        now = now or datetime.utcnow()
        with self.ledger.lock_for(portfolio.user_id):
            if not math.isfinite(amount) or amount <= 0:
                raise ValidationError("Unstake amount must be a positive number")
            if amount > portfolio.staked_balance:
                raise InsufficientFundsError(amount, portfolio.staked_balance, what="staked MemeCoins")

            self.claim(portfolio, now)
            portfolio.staked_balance -= amount
            self.ledger.post(portfolio, LedgerCategory.UNSTAKE, amount, now)

        logger.info(f"🔓 {portfolio.user_id} unstaked {amount:.2f} (remaining {portfolio.staked_balance:.2f})")
        return portfolio

    def claim(self, portfolio: Portfolio, now: Optional[datetime] = None) -> float:
        now = now or datetime.utcnow()
        with self.ledger.lock_for(portfolio.user_id):
            reward = self.claimable_reward(portfolio, now)
            if reward > 0:
                self.ledger.post(portfolio, LedgerCategory.STAKING_REWARD, reward, now)
                portfolio.staking_rewards_accrued += reward
            portfolio.last_staking_claim = now

        if reward > 0:
            logger.info(f"💰 {portfolio.user_id} claimed {reward:.2f} staking reward")
        return reward

    def can_claim(self, portfolio: Portfolio, now: Optional[datetime] = None) -> bool:
        if portfolio.last_staking_claim is None:
            return False
        now = now or datetime.utcnow()
        return now - portfolio.last_staking_claim >= self.config.claim_interval

    def staking_stats(self, portfolio: Portfolio, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        tier = self.tier_for(portfolio.staked_balance)

        if portfolio.last_staking_claim is None:
            until_next = 0.0
        else:
            remaining = self.config.claim_interval - (now - portfolio.last_staking_claim)
            until_next = max(0.0, remaining.total_seconds())

        next_tier = next((t for t in self._tiers if t.min_amount > tier.min_amount), None)
        return {
            'current_tier': tier.to_dict(),
            'pending_rewards': round(self.claimable_reward(portfolio, now), 2),
            'total_staked': round(portfolio.staked_balance, 2),
            'total_rewards': round(portfolio.staking_rewards_accrued, 2),
            'seconds_until_next_claim': until_next,
            'next_tier_threshold': next_tier.min_amount if next_tier else None,
        }
