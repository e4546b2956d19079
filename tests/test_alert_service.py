"""Tests for the alert sweep and per-user feeds."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, make_item
from mememarket.models.alert import AlertType
from mememarket.models.portfolio import LedgerCategory
from mememarket.models.prediction import PredictionIntent
from mememarket.services.alert_service import AlertConfig, AlertService


@pytest.fixture
def alerts(engine, staking, tournaments) -> AlertService:
    return AlertService(engine, staking, tournaments)


def bet(ledger, portfolio, item, now=NOW):
    return ledger.place_bet(
        portfolio,
        PredictionIntent(item.id, "milestone_reach", 10_000, "LONG", 100),
        item,
        now=now,
    )


def types(alerts_list):
    return [a.type for a in alerts_list]


class TestFeed:
    def test_keys_fire_once(self, alerts):
        first = alerts.add_alert("u1", AlertType.ACHIEVEMENT, "t", "m", key="k1", now=NOW)
        again = alerts.add_alert("u1", AlertType.ACHIEVEMENT, "t", "m", key="k1", now=NOW)
        other_user = alerts.add_alert("u2", AlertType.ACHIEVEMENT, "t", "m", key="k1", now=NOW)

        assert first is not None
        assert again is None
        assert other_user is not None

    def test_feed_is_capped_newest_first(self, engine, staking, tournaments):
        service = AlertService(engine, staking, tournaments, AlertConfig(max_alerts_per_user=3))
        for i in range(5):
            service.add_alert("u1", AlertType.TOURNAMENT, f"t{i}", "m", key=f"k{i}", now=NOW)

        assert [a.title for a in service.get_alerts("u1")] == ["t4", "t3", "t2"]

    def test_mark_read(self, alerts):
        a = alerts.add_alert("u1", AlertType.TOURNAMENT, "t", "m", key="a", now=NOW)
        alerts.add_alert("u1", AlertType.TOURNAMENT, "t", "m", key="b", now=NOW)

        assert alerts.mark_read("u1", a.id) is True
        assert alerts.mark_read("u1", "alert_missing") is False
        assert len(alerts.get_alerts("u1", unread_only=True)) == 1
        assert alerts.mark_all_read("u1") == 1
        assert alerts.get_alerts("u1", unread_only=True) == []

    def test_subscribers_are_notified(self, alerts, ledger, portfolio, item):
        received = []
        unsubscribe = alerts.subscribe(lambda user_id, feed: received.append((user_id, len(feed))))

        bet(ledger, portfolio, item)
        alerts.sweep(portfolio, [], NOW)
        assert received and received[-1][0] == portfolio.user_id

        unsubscribe()
        count = len(received)
        alerts.add_alert(portfolio.user_id, AlertType.TOURNAMENT, "t", "m", key="x", now=NOW)
        alerts.mark_all_read(portfolio.user_id)
        assert len(received) == count


class TestChecks:
    def test_expiring_bet(self, alerts, ledger, portfolio, item):
        bet(ledger, portfolio, item)

        assert alerts.check_expiring_bets(portfolio, NOW + timedelta(hours=12)) == []
        created = alerts.check_expiring_bets(portfolio, NOW + timedelta(hours=23))
        assert types(created) == [AlertType.EXPIRING_BET]
        assert alerts.check_expiring_bets(portfolio, NOW + timedelta(hours=23, minutes=30)) == []

    def test_staking_reward(self, alerts, ledger, staking, portfolio):
        ledger.post(portfolio, LedgerCategory.DAILY_REWARD, 10_000, NOW)
        staking.stake(portfolio, 10_000, NOW)

        assert alerts.check_staking_rewards(portfolio, NOW + timedelta(hours=24)) == []
        created = alerts.check_staking_rewards(portfolio, NOW + timedelta(hours=72))
        assert types(created) == [AlertType.STAKING_REWARD]
        assert alerts.check_staking_rewards(portfolio, NOW + timedelta(hours=96)) == []

        staking.claim(portfolio, NOW + timedelta(hours=96))
        assert len(alerts.check_staking_rewards(portfolio, NOW + timedelta(hours=180))) == 1

    def test_tournament_standing(self, alerts, tournaments, portfolio):
        tournament = tournaments.create_tournament("Cup", "", NOW)
        tournaments.join(tournament.id, portfolio, NOW)
        assert alerts.check_tournament_standing(portfolio, NOW) == []

        tournaments.start(tournament.id)
        assert len(alerts.check_tournament_standing(portfolio, NOW)) == 1
        assert alerts.check_tournament_standing(portfolio, NOW) == []

        portfolio.tournament_points = 10
        assert len(alerts.check_tournament_standing(portfolio, NOW)) == 1

    def test_market_opportunity(self, alerts, portfolio, items):
        created = alerts.check_market_opportunities(portfolio, items, NOW)
        assert types(created) == [AlertType.MARKET_OPPORTUNITY]
        assert "2 high-potential posts" in created[0].message
        assert alerts.check_market_opportunities(portfolio, list(reversed(items)), NOW) == []

        quiet = [make_item("q", score=5000, comments=10)]
        assert alerts.check_market_opportunities(portfolio, quiet, NOW) == []

    def test_achievement_alerts(self, alerts, ledger, portfolio, item):
        bet(ledger, portfolio, item)
        created = alerts.check_achievements(portfolio, NOW)
        assert types(created) == [AlertType.ACHIEVEMENT]
        assert alerts.check_achievements(portfolio, NOW) == []


class TestSweep:
    def test_sweep_runs_every_check(self, alerts, ledger, portfolio, item, items):
        bet(ledger, portfolio, item)
        created = alerts.sweep(portfolio, items, NOW + timedelta(hours=23))
        assert set(types(created)) == {AlertType.EXPIRING_BET, AlertType.MARKET_OPPORTUNITY, AlertType.ACHIEVEMENT}

    def test_failing_check_is_skipped(self, alerts, ledger, portfolio, item, monkeypatch):
        def broken(*_):
            raise RuntimeError("staking offline")

        monkeypatch.setattr(alerts, "check_staking_rewards", broken)
        bet(ledger, portfolio, item)
        created = alerts.sweep(portfolio, [], NOW)
        assert types(created) == [AlertType.ACHIEVEMENT]
