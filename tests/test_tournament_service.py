"""Tests for tournament lifecycle, scoring and prizes."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW
from mememarket.core.errors import (
    AlreadyParticipatingError,
    CapacityExceededError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
)
from mememarket.models.portfolio import LedgerCategory
from mememarket.models.tournament import TournamentStatus
from mememarket.services.tournament_service import TournamentConfig, TournamentService


@pytest.fixture
def tournament(tournaments):
    return tournaments.create_tournament("Daily Meme Masters", "test", NOW + timedelta(hours=2))


@pytest.fixture
def players(ledger):
    return [ledger.create_portfolio(f"user_{i:04d}", NOW) for i in range(1, 4)]


class TestCreate:
    def test_defaults(self, tournament):
        assert tournament.status == TournamentStatus.UPCOMING
        assert tournament.entry_fee == 100.0
        assert tournament.prize_pool == 0.0
        assert tournament.end_date == tournament.start_date + timedelta(hours=24)
        assert tournament.rules

    def test_prize_distribution_must_sum_to_one(self):
        with pytest.raises(ValueError):
            TournamentConfig(prize_distribution=[0.5, 0.3])
        with pytest.raises(ValueError):
            TournamentConfig(prize_distribution=[])

    def test_default_tournaments_are_created_once(self, tournaments):
        created = tournaments.initialize_default_tournaments(NOW)
        assert [t.name for t in created] == ["Daily Meme Masters", "Weekend Champion"]
        assert tournaments.initialize_default_tournaments(NOW) == []
        assert len(tournaments.upcoming_tournaments()) == 2

    def test_unknown_tournament(self, tournaments):
        with pytest.raises(NotFoundError):
            tournaments.get_tournament("tournament_missing")


class TestJoin:
    def test_join_pays_fee_into_pool(self, tournaments, tournament, portfolio):
        tournaments.join(tournament.id, portfolio, NOW)

        assert portfolio.balance == 900.0
        assert portfolio.ledger[-1].category == LedgerCategory.TOURNAMENT_FEE
        assert portfolio.current_tournament_id == tournament.id
        assert tournament.prize_pool == 100.0
        assert tournament.current_participants == 1
        assert tournament.get_participant(portfolio.user_id).rank == 1

    def test_duplicate_join_is_rejected(self, tournaments, tournament, portfolio):
        tournaments.join(tournament.id, portfolio, NOW)
        with pytest.raises(AlreadyParticipatingError):
            tournaments.join(tournament.id, portfolio, NOW)

        assert len(tournament.leaderboard) == 1
        assert tournament.prize_pool == 100.0
        assert portfolio.balance == 900.0

    def test_full_tournament(self, ledger, players):
        service = TournamentService(ledger, TournamentConfig(max_participants=2))
        tournament = service.create_tournament("Tiny", "", NOW)
        service.join(tournament.id, players[0], NOW)
        service.join(tournament.id, players[1], NOW)

        with pytest.raises(CapacityExceededError):
            service.join(tournament.id, players[2], NOW)
        assert players[2].balance == 1000.0

    def test_fee_must_be_covered(self, ledger, tournaments, tournament, portfolio):
        ledger.post(portfolio, LedgerCategory.STAKE, -950, NOW)
        with pytest.raises(InsufficientFundsError):
            tournaments.join(tournament.id, portfolio, NOW)
        assert tournament.current_participants == 0
        assert portfolio.current_tournament_id is None

    def test_cannot_join_after_start(self, tournaments, tournament, portfolio):
        tournaments.start(tournament.id)
        with pytest.raises(InvalidStateError):
            tournaments.join(tournament.id, portfolio, NOW)

    def test_second_tournament_waits_for_the_first(self, tournaments, tournament, portfolio):
        later = tournaments.create_tournament("Weekend Champion", "", NOW + timedelta(days=2))
        tournaments.join(tournament.id, portfolio, NOW)
        tournaments.start(tournament.id)

        with pytest.raises(InvalidStateError):
            tournaments.join(later.id, portfolio, NOW)
        assert portfolio.current_tournament_id == tournament.id
        assert portfolio.balance == 900.0
        assert later.current_participants == 0

        tournaments.score_point(tournament.id, portfolio.user_id, won=True)
        assert tournament.get_participant(portfolio.user_id).points == 10

    def test_can_join_again_once_finished(self, tournaments, tournament, portfolio):
        later = tournaments.create_tournament("Weekend Champion", "", NOW + timedelta(days=2))
        tournaments.join(tournament.id, portfolio, NOW)
        tournaments.start(tournament.id)
        tournaments.end(tournament.id, NOW + timedelta(days=1))

        tournaments.join(later.id, portfolio, NOW + timedelta(days=1))
        assert portfolio.current_tournament_id == later.id


class TestScoring:
    def test_scoring_requires_active_tournament(self, tournaments, tournament, portfolio):
        tournaments.join(tournament.id, portfolio, NOW)
        with pytest.raises(InvalidStateError):
            tournaments.score_point(tournament.id, portfolio.user_id, True)

    def test_non_participant(self, tournaments, tournament):
        tournaments.start(tournament.id)
        with pytest.raises(NotFoundError):
            tournaments.score_point(tournament.id, "stranger", True)

    def test_points_and_streak_bonus(self, tournaments, tournament, portfolio):
        tournaments.join(tournament.id, portfolio, NOW)
        tournaments.start(tournament.id)

        assert tournaments.score_point(tournament.id, portfolio.user_id, True, 1) == 10
        assert tournaments.score_point(tournament.id, portfolio.user_id, True, 2) == 15
        assert tournaments.score_point(tournament.id, portfolio.user_id, False, 0) == -2

        participant = tournament.get_participant(portfolio.user_id)
        assert participant.points == 23
        assert participant.predictions == 3
        assert participant.wins == 2

    def test_leaderboard_reranks(self, tournaments, tournament, players):
        for player in players:
            tournaments.join(tournament.id, player, NOW)
        tournaments.start(tournament.id)

        tournaments.score_point(tournament.id, players[2].user_id, True, 1)
        tournaments.score_point(tournament.id, players[0].user_id, False, 0)

        assert [p.user_id for p in tournament.leaderboard] == [
            players[2].user_id, players[1].user_id, players[0].user_id,
        ]
        assert tournaments.user_rank(tournament.id, players[2].user_id) == 1
        assert tournaments.user_rank(tournament.id, "stranger") == 0


class TestEnd:
    def test_full_lifecycle(self, tournaments, tournament, players):
        for player in players:
            tournaments.join(tournament.id, player, NOW)
        tournaments.start(tournament.id)
        assert tournaments.active_tournaments() == [tournament]

        tournaments.score_point(tournament.id, players[1].user_id, True, 1)
        result = tournaments.end(tournament.id, NOW + timedelta(hours=26))

        assert tournament.status == TournamentStatus.COMPLETED
        assert tournament.completed_at == NOW + timedelta(hours=26)
        assert result.prizes == [150.0, 75.0, 45.0, 30.0]
        assert [w.user_id for w in result.winners][0] == players[1].user_id
        assert len(result.payouts) == 3
        assert result.payouts[0] == (players[1].user_id, 150.0)

    def test_result_is_a_snapshot(self, tournaments, tournament, portfolio):
        tournaments.join(tournament.id, portfolio, NOW)
        tournaments.start(tournament.id)
        result = tournaments.end(tournament.id, NOW)

        tournament.leaderboard[0].points = 999
        assert result.winners[0].points == 0

    def test_end_only_once(self, tournaments, tournament):
        with pytest.raises(InvalidStateError):
            tournaments.end(tournament.id, NOW)
        tournaments.start(tournament.id)
        tournaments.end(tournament.id, NOW)
        with pytest.raises(InvalidStateError):
            tournaments.end(tournament.id, NOW)
        with pytest.raises(InvalidStateError):
            tournaments.start(tournament.id)
