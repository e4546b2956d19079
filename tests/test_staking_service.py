"""Tests for tiered staking yield."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW
from mememarket.core.errors import InsufficientFundsError, NotFoundError, ValidationError
from mememarket.models.portfolio import LedgerCategory

DAY = timedelta(hours=24)
# Diamond 15% APR on 10,000 for one day
DIAMOND_DAY = 10_000 * 0.15 / 365


@pytest.fixture
def rich(ledger, portfolio):
    """Portfolio topped up to 20,000 MemeCoins."""
    ledger.post(portfolio, LedgerCategory.DAILY_REWARD, 19_000, NOW)
    return portfolio


class TestTiers:
    @pytest.mark.parametrize("amount,name", [
        (0, "Bronze Staker"),
        (999, "Bronze Staker"),
        (1000, "Silver Staker"),
        (4999.5, "Silver Staker"),
        (5000, "Gold Staker"),
        (10_000, "Diamond Staker"),
        (1_000_000, "Diamond Staker"),
    ])
    def test_tier_for(self, staking, amount, name):
        assert staking.tier_for(amount).name == name

    def test_get_tier(self, staking):
        assert staking.get_tier("Gold Staker").apr == 12.0
        with pytest.raises(NotFoundError):
            staking.get_tier("Platinum Staker")

    def test_top_tier_has_open_maximum(self, staking):
        assert staking.tiers[-1].to_dict()['max_amount'] is None


class TestStake:
    def test_stake_moves_balance(self, staking, portfolio):
        staking.stake(portfolio, 400, NOW)
        assert portfolio.balance == 600.0
        assert portfolio.staked_balance == 400.0
        assert portfolio.last_staking_claim == NOW
        assert portfolio.ledger[-1].category == LedgerCategory.STAKE

    def test_invalid_amounts(self, staking, portfolio):
        with pytest.raises(ValidationError):
            staking.stake(portfolio, 0, NOW)
        with pytest.raises(InsufficientFundsError):
            staking.stake(portfolio, 1000.01, NOW)
        assert portfolio.staked_balance == 0.0
        assert portfolio.balance == 1000.0

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), -float("inf")])
    def test_non_finite_amounts_are_rejected(self, staking, portfolio, amount):
        staking.stake(portfolio, 100, NOW)
        ledger_size = len(portfolio.ledger)

        with pytest.raises(ValidationError):
            staking.stake(portfolio, amount, NOW)
        with pytest.raises(ValidationError):
            staking.unstake(portfolio, amount, NOW + DAY)

        assert portfolio.balance == 900.0
        assert portfolio.staked_balance == 100.0
        assert len(portfolio.ledger) == ledger_size

    def test_restaking_resets_clock_without_paying(self, staking, rich):
        staking.stake(rich, 10_000, NOW)
        staking.stake(rich, 100, NOW + DAY)

        assert LedgerCategory.STAKING_REWARD not in [e.category for e in rich.ledger]
        assert rich.last_staking_claim == NOW + DAY
        assert staking.claimable_reward(rich, NOW + DAY) == 0.0


class TestRewards:
    def test_reward_formula(self, staking, rich):
        staking.stake(rich, 10_000, NOW)
        assert staking.claimable_reward(rich, NOW + DAY) == pytest.approx(DIAMOND_DAY)

    def test_nothing_staked_means_nothing_claimable(self, staking, portfolio):
        assert staking.claimable_reward(portfolio, NOW + DAY) == 0.0
        assert staking.claim(portfolio, NOW + DAY) == 0.0
        assert portfolio.balance == 1000.0

    def test_second_claim_returns_zero(self, staking, rich):
        staking.stake(rich, 10_000, NOW)
        first = staking.claim(rich, NOW + DAY)
        assert first == pytest.approx(DIAMOND_DAY)
        assert rich.staking_rewards_accrued == pytest.approx(DIAMOND_DAY)

        assert staking.claim(rich, NOW + DAY) == 0.0
        rewards = [e for e in rich.ledger if e.category == LedgerCategory.STAKING_REWARD]
        assert len(rewards) == 1

    def test_frequent_claims_add_up_to_one_long_claim(self, ledger, staking, portfolio):
        patient = ledger.create_portfolio("user_0002", NOW)
        staking.stake(portfolio, 100, NOW)
        staking.stake(patient, 100, NOW)

        hourly = sum(staking.claim(portfolio, NOW + timedelta(hours=h)) for h in range(1, 25))
        daily = staking.claim(patient, NOW + DAY)

        # Bronze 5% APR on 100 for one day
        assert daily == pytest.approx(100 * 0.05 / 365)
        assert hourly == pytest.approx(daily)
        assert portfolio.balance == pytest.approx(patient.balance)

    def test_unstake_claims_pending_rewards_first(self, staking, rich):
        staking.stake(rich, 10_000, NOW)
        balance = rich.balance

        staking.unstake(rich, 5000, NOW + DAY)

        assert [e.category for e in rich.ledger[-2:]] == [LedgerCategory.STAKING_REWARD, LedgerCategory.UNSTAKE]
        assert rich.staked_balance == 5000.0
        assert rich.balance == pytest.approx(balance + DIAMOND_DAY + 5000)

    def test_unstake_more_than_staked(self, staking, portfolio):
        staking.stake(portfolio, 100, NOW)
        with pytest.raises(InsufficientFundsError):
            staking.unstake(portfolio, 101, NOW + DAY)
        with pytest.raises(ValidationError):
            staking.unstake(portfolio, -1, NOW + DAY)
        assert portfolio.staked_balance == 100.0

    def test_claim_interval(self, staking, portfolio):
        assert staking.can_claim(portfolio, NOW) is False
        staking.stake(portfolio, 100, NOW)
        assert staking.can_claim(portfolio, NOW + timedelta(minutes=30)) is False
        assert staking.can_claim(portfolio, NOW + timedelta(hours=1)) is True

    def test_staking_stats(self, staking, rich):
        staking.stake(rich, 6000, NOW)
        stats = staking.staking_stats(rich, NOW + timedelta(minutes=15))

        assert stats['current_tier']['name'] == "Gold Staker"
        assert stats['total_staked'] == 6000.0
        assert stats['seconds_until_next_claim'] == 45 * 60
        assert stats['next_tier_threshold'] == 10_000.0
