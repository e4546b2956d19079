"""Tests for the wager ledger: bet validation, resolution and rewards."""

from __future__ import annotations

import copy
import math
from datetime import timedelta

import pytest

from conftest import NOW, make_item
from mememarket.core.errors import InsufficientFundsError, InvalidStateError, ValidationError
from mememarket.models.portfolio import LedgerCategory
from mememarket.models.prediction import PredictionIntent, PredictionStatus
from mememarket.services.ledger_service import level_for

RESOLVE_AT = NOW + timedelta(hours=24)


def intent(amount: float = 100.0, target: float = 600.0, prediction_type: str = "milestone_reach",
           timeframe: str = "LONG", item_id: str = "abc123") -> PredictionIntent:
    return PredictionIntent(
        item_id=item_id,
        prediction_type=prediction_type,
        target_value=target,
        timeframe=timeframe,
        bet_amount=amount,
    )


def categories(portfolio):
    return [entry.category for entry in portfolio.ledger]


# ===========================================================================
# PORTFOLIO CREATION
# ===========================================================================


class TestCreatePortfolio:
    def test_starting_balance_is_posted(self, portfolio):
        assert portfolio.balance == 1000.0
        assert portfolio.initial_balance == 1000.0
        assert categories(portfolio) == [LedgerCategory.INITIAL]
        assert portfolio.ledger[0].balance_after == 1000.0
        assert portfolio.level == 1


# ===========================================================================
# BET VALIDATION
# ===========================================================================


class TestPlaceBetValidation:
    def test_bet_below_minimum_is_rejected(self, ledger, portfolio, item):
        with pytest.raises(ValidationError):
            ledger.place_bet(portfolio, intent(amount=9), item, now=NOW)
        assert portfolio.balance == 1000.0
        assert portfolio.predictions == []

    def test_bet_above_balance_leaves_portfolio_untouched(self, ledger, portfolio, item):
        snapshot = copy.deepcopy(portfolio)
        with pytest.raises(InsufficientFundsError) as exc:
            ledger.place_bet(portfolio, intent(amount=portfolio.balance + 1), item, now=NOW)
        assert exc.value.required == 1001.0
        assert exc.value.available == 1000.0
        assert portfolio == snapshot

    def test_bet_above_maximum_is_rejected(self, ledger, portfolio, item):
        ledger.post(portfolio, LedgerCategory.DAILY_REWARD, 5000, NOW)
        with pytest.raises(ValidationError):
            ledger.place_bet(portfolio, intent(amount=1001), item, now=NOW)

    @pytest.mark.parametrize("bad", [
        {"prediction_type": "moon_shot"},
        {"timeframe": "FOREVER"},
        {"target": 0},
        {"target": -5},
        {"target": math.nan},
        {"target": math.inf},
    ])
    def test_malformed_intents_are_rejected(self, ledger, portfolio, item, bad):
        with pytest.raises(ValidationError):
            ledger.place_bet(portfolio, intent(**bad), item, now=NOW)
        assert portfolio.balance == 1000.0

    @pytest.mark.parametrize("amount", [math.nan, math.inf, -math.inf])
    def test_non_finite_bet_amount_leaves_portfolio_untouched(self, ledger, portfolio, item, amount):
        snapshot = copy.deepcopy(portfolio)
        with pytest.raises(ValidationError):
            ledger.place_bet(portfolio, intent(amount=amount), item, now=NOW)
        assert portfolio == snapshot

    def test_item_must_match_intent(self, ledger, portfolio):
        with pytest.raises(ValidationError):
            ledger.place_bet(portfolio, intent(item_id="other"), make_item("abc123"), now=NOW)


# ===========================================================================
# PLACING BETS
# ===========================================================================


class TestPlaceBet:
    def test_bet_debits_and_records(self, ledger, portfolio, item):
        prediction = ledger.place_bet(portfolio, intent(amount=100), item, now=NOW)

        assert prediction.status == PredictionStatus.ACTIVE
        assert prediction.baseline_value == 500.0
        assert prediction.created_at == NOW
        assert prediction.item_title == item.title
        assert 1.1 <= prediction.odds <= 50.0
        assert prediction.market_conditions is not None
        assert portfolio.predictions == [prediction]

        # -100 wager, +100 first trade achievement
        assert categories(portfolio) == [
            LedgerCategory.INITIAL, LedgerCategory.WAGER, LedgerCategory.ACHIEVEMENT,
        ]
        assert portfolio.balance == 1000.0
        assert portfolio.experience == 5
        assert portfolio.has_achievement("first_trade")

    def test_full_balance_bet_unlocks_high_roller(self, ledger, portfolio, item):
        ledger.place_bet(portfolio, intent(amount=1000), item, now=NOW)
        assert portfolio.has_achievement("high_roller")
        assert portfolio.balance == 400.0

    def test_achievements_unlock_once(self, ledger, portfolio, item):
        ledger.place_bet(portfolio, intent(amount=100), item, now=NOW)
        ledger.place_bet(portfolio, intent(amount=100), item, now=NOW)
        assert [a.id for a in portfolio.achievements] == ["first_trade"]

    def test_odds_are_locked_at_placement(self, ledger, market, portfolio, item):
        market.initialize_quote(item, NOW)
        market.apply_rankings([item.id])
        prediction = ledger.place_bet(portfolio, intent(prediction_type="virality_index", target=5), item, now=NOW)
        odds = prediction.odds

        market.apply_rankings([])
        assert portfolio.predictions[0].odds == odds


# ===========================================================================
# RESOLUTION
# ===========================================================================


class TestResolveAll:
    def test_win_pays_bet_times_odds(self, ledger, portfolio, item):
        prediction = ledger.place_bet(portfolio, intent(amount=100, target=600), item, now=NOW)
        balance = portfolio.balance

        ledger.resolve_all(portfolio, [make_item(score=700)], RESOLVE_AT)

        assert prediction.status == PredictionStatus.WON
        assert prediction.resolved_at == RESOLVE_AT
        assert portfolio.balance == pytest.approx(balance + 100 * prediction.odds)
        assert portfolio.consecutive_wins == 1
        assert portfolio.best_win == pytest.approx(100 * prediction.odds - 100)

    def test_loss_keeps_stake(self, ledger, portfolio, item):
        prediction = ledger.place_bet(portfolio, intent(amount=100, target=10_000), item, now=NOW)
        balance = portfolio.balance

        ledger.resolve_all(portfolio, {item.id: make_item(score=700)}, RESOLVE_AT)

        assert prediction.status == PredictionStatus.LOST
        assert portfolio.balance == balance
        assert portfolio.consecutive_losses == 1
        assert portfolio.consecutive_wins == 0

    def test_resolution_is_idempotent(self, ledger, portfolio, item):
        ledger.place_bet(portfolio, intent(amount=100, target=600), item, now=NOW)
        resolved = []
        ledger.on_prediction_resolved(lambda p, pred, streak: resolved.append((pred.id, streak)))

        ledger.resolve_all(portfolio, [make_item(score=700)], RESOLVE_AT)
        balance, entries = portfolio.balance, len(portfolio.ledger)
        ledger.resolve_all(portfolio, [make_item(score=700)], RESOLVE_AT + timedelta(hours=1))

        assert portfolio.balance == balance
        assert len(portfolio.ledger) == entries
        assert len(resolved) == 1
        assert resolved[0][1] == 1

    def test_pending_predictions_stay_active(self, ledger, portfolio, item):
        prediction = ledger.place_bet(portfolio, intent(amount=100, target=10_000), item, now=NOW)
        ledger.resolve_all(portfolio, [make_item(score=700)], NOW + timedelta(hours=12))
        assert prediction.status == PredictionStatus.ACTIVE

    def test_missing_items_are_skipped(self, ledger, portfolio, item):
        prediction = ledger.place_bet(portfolio, intent(amount=100, target=600), item, now=NOW)
        ledger.resolve_all(portfolio, [make_item("someone_else", score=5000)], RESOLVE_AT)
        assert prediction.status == PredictionStatus.ACTIVE

    def test_streak_bonus_every_fifth_win(self, ledger, portfolio, item):
        for _ in range(5):
            ledger.place_bet(portfolio, intent(amount=100, target=600), item, now=NOW)

        ledger.resolve_all(portfolio, [make_item(score=700)], RESOLVE_AT)

        bonuses = [e for e in portfolio.ledger if e.category == LedgerCategory.STREAK_BONUS]
        assert [b.amount for b in bonuses] == [10.0]
        assert portfolio.best_win_streak == 5
        assert portfolio.has_achievement("winning_streak")

    def test_level_up_bonus(self, ledger, portfolio, item):
        prediction = ledger.place_bet(portfolio, intent(amount=1000, target=600), item, now=NOW)
        ledger.resolve_all(portfolio, [make_item(score=700)], RESOLVE_AT)

        assert portfolio.experience == 50 + math.floor(1000 * prediction.odds * 0.1)
        assert portfolio.level == 2
        level_ups = [e for e in portfolio.ledger if e.category == LedgerCategory.LEVEL_UP]
        assert [e.amount for e in level_ups] == [25.0]

    def test_callback_failure_does_not_break_resolution(self, ledger, portfolio, item):
        def explode(*_):
            raise RuntimeError("boom")

        ledger.on_prediction_resolved(explode)
        prediction = ledger.place_bet(portfolio, intent(amount=100, target=600), item, now=NOW)
        ledger.resolve_all(portfolio, [make_item(score=700)], RESOLVE_AT)
        assert prediction.status == PredictionStatus.WON


# ===========================================================================
# REWARDS AND READS
# ===========================================================================


class TestDailyReward:
    def test_once_per_utc_day(self, ledger, portfolio):
        assert ledger.claim_daily_reward(portfolio, NOW) == 50.0
        assert portfolio.balance == 1050.0

        with pytest.raises(InvalidStateError):
            ledger.claim_daily_reward(portfolio, NOW + timedelta(hours=2))
        assert portfolio.balance == 1050.0

        ledger.claim_daily_reward(portfolio, NOW + timedelta(days=1))
        assert portfolio.balance == 1100.0


class TestReads:
    def test_portfolio_value(self, ledger, portfolio, item):
        won = ledger.place_bet(portfolio, intent(amount=100, target=600), item, now=NOW)
        ledger.resolve_all(portfolio, [make_item(score=700)], RESOLVE_AT)
        open_bet = ledger.place_bet(portfolio, intent(amount=200, target=10_000), item, now=RESOLVE_AT)

        expected = portfolio.balance + 200 * open_bet.odds * 0.1 + 100 * (won.odds - 1)
        assert ledger.portfolio_value(portfolio) == pytest.approx(expected)

    def test_earnings_summary_sums_ledger(self, ledger, staking, portfolio, item):
        prediction = ledger.place_bet(portfolio, intent(amount=100, target=600), item, now=NOW)
        ledger.resolve_all(portfolio, [make_item(score=700)], RESOLVE_AT)
        ledger.claim_daily_reward(portfolio, RESOLVE_AT)
        staking.stake(portfolio, 200, RESOLVE_AT)

        summary = ledger.earnings_summary(portfolio)
        assert summary['initial'] == 1000.0
        assert summary['from_wins'] == round(100 * prediction.odds, 2)
        assert summary['from_daily_rewards'] == 50.0
        assert summary['from_achievements'] == 100.0
        assert summary['total_spent'] == 100.0
        assert summary['currently_staked'] == 200.0
        assert summary['net_earnings'] == round(portfolio.balance - 1000.0, 2)

    @pytest.mark.parametrize("experience,level,progress", [
        (0, 1, 0.0),
        (150, 2, 33.3),
        (999, 4, 99.8),
        (10_000, 10, 100.0),
        (50_000, 10, 100.0),
    ])
    def test_level_for(self, experience, level, progress):
        info = level_for(experience)
        assert info['level'] == level
        assert info['progress'] == progress
