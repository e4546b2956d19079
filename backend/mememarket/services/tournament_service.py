"""
Tournament Service - Multi-user competitive pools

Lifecycle per tournament: upcoming -> active -> completed, one way.
"""
import math
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from loguru import logger

from ..core.errors import (
    AlreadyParticipatingError,
    CapacityExceededError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
)
from ..models.portfolio import Portfolio
from ..models.tournament import Tournament, TournamentParticipant, TournamentResult, TournamentStatus
from .ledger_service import LedgerService


@dataclass
class TournamentConfig:
    """Configuration for tournaments."""
    entry_fee: float = 100.0
    duration_hours: int = 24
    max_participants: int = 100
    prize_distribution: List[float] = field(default_factory=lambda: [0.5, 0.25, 0.15, 0.1])
    points_per_win: int = 10
    points_per_loss: int = -2
    bonus_multiplier: float = 1.5

    def __post_init__(self):
        if not self.prize_distribution or abs(sum(self.prize_distribution) - 1.0) > 1e-9:
            raise ValueError(
                f"Prize distribution must sum to 1, got {sum(self.prize_distribution or [])}"
            )


class TournamentService:
    """Tournament registry and scorer."""

    def __init__(self, ledger: LedgerService, config: Optional[TournamentConfig] = None):
        self.config = config or TournamentConfig()
        self.ledger = ledger
        self._tournaments: Dict[str, Tournament] = {}
        self._lock = threading.RLock()

    def _rules(self) -> List[str]:
        cfg = self.config
        return [
            f"Entry fee: {cfg.entry_fee:.0f} MemeCoins",
            f"Duration: {cfg.duration_hours} hours",
            f"Points per win: {cfg.points_per_win}",
            f"Points per loss: {cfg.points_per_loss}",
            f"Consecutive win bonus: {cfg.bonus_multiplier}x",
        ]

    def _require(self, tournament_id: str) -> Tournament:
        tournament = self._tournaments.get(tournament_id)
        if tournament is None:
            raise NotFoundError(f"Tournament not found: {tournament_id}")
        return tournament

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_tournament(self, name: str, description: str, start_date: datetime) -> Tournament:
        tournament = Tournament(
            id=f"tournament_{uuid.uuid4().hex[:10]}",
            name=name,
            description=description,
            start_date=start_date,
            end_date=start_date + timedelta(hours=self.config.duration_hours),
            entry_fee=self.config.entry_fee,
            max_participants=self.config.max_participants,
            rules=self._rules(),
        )
        with self._lock:
            self._tournaments[tournament.id] = tournament
        logger.info(f"🏁 Created tournament '{name}' ({tournament.id}) starting {start_date.isoformat()}")
        return tournament

    def join(self, tournament_id: str, portfolio: Portfolio, now: Optional[datetime] = None) -> Tournament:
        """
        Enter a user into an upcoming tournament.

        Raises:
            NotFoundError, InvalidStateError, AlreadyParticipatingError,
            CapacityExceededError, InsufficientFundsError
        """
        now = now or datetime.utcnow()
        with self._lock, self.ledger.lock_for(portfolio.user_id):
            tournament = self._require(tournament_id)
            if tournament.status != TournamentStatus.UPCOMING:
                raise InvalidStateError(f"Tournament {tournament_id} has already started")
            if tournament.get_participant(portfolio.user_id) is not None:
                raise AlreadyParticipatingError(f"{portfolio.user_id} already in {tournament_id}")
            current = self._tournaments.get(portfolio.current_tournament_id or "")
            if current is not None and current.status != TournamentStatus.COMPLETED:
                raise InvalidStateError(
                    f"{portfolio.user_id} is still entered in {current.id} ({current.status.value})"
                )
            if tournament.is_full:
                raise CapacityExceededError(f"Tournament {tournament_id} is full")
            if portfolio.balance < tournament.entry_fee:
                raise InsufficientFundsError(tournament.entry_fee, portfolio.balance)

            self.ledger.debit_tournament_fee(portfolio, tournament.entry_fee, tournament_id, now)
            tournament.prize_pool += tournament.entry_fee
            tournament.leaderboard.append(TournamentParticipant(
                user_id=portfolio.user_id,
                username=f"Player_{portfolio.user_id[-4:]}",
                rank=len(tournament.leaderboard) + 1,
                joined_at=now,
            ))
            portfolio.current_tournament_id = tournament_id
            portfolio.tournament_points = 0

        logger.info(f"{portfolio.user_id} joined {tournament.name} (pool {tournament.prize_pool:.0f})")
        return tournament

    def start(self, tournament_id: str) -> Tournament:
        with self._lock:
            tournament = self._require(tournament_id)
            if tournament.status != TournamentStatus.UPCOMING:
                raise InvalidStateError(f"Tournament {tournament_id} is {tournament.status.value}")
            tournament.status = TournamentStatus.ACTIVE
        logger.info(f"▶️ Tournament {tournament.name} started with {tournament.current_participants} players")
        return tournament

    def score_point(self, tournament_id: str, user_id: str, won: bool, consecutive_wins: int = 0) -> int:
        """Apply one resolved prediction to the leaderboard; returns points added."""
        with self._lock:
            tournament = self._require(tournament_id)
            if tournament.status != TournamentStatus.ACTIVE:
                raise InvalidStateError(f"Tournament {tournament_id} is not active")
            participant = tournament.get_participant(user_id)
            if participant is None:
                raise NotFoundError(f"{user_id} is not in tournament {tournament_id}")

            base = self.config.points_per_win if won else self.config.points_per_loss
            multiplier = self.config.bonus_multiplier if won and consecutive_wins > 1 else 1
            points = math.floor(base * multiplier)

            participant.points += points
            participant.predictions += 1
            if won:
                participant.wins += 1

            # sort is stable: ties keep join order
            tournament.leaderboard.sort(key=lambda p: p.points, reverse=True)
            for rank, entry in enumerate(tournament.leaderboard, start=1):
                entry.rank = rank

        logger.debug(f"{user_id} {points:+d} pts in {tournament_id} (now {participant.points})")
        return points

    def end(self, tournament_id: str, now: Optional[datetime] = None) -> TournamentResult:
        """Freeze the leaderboard and compute prizes for the top ranks."""
        now = now or datetime.utcnow()
        with self._lock:
            tournament = self._require(tournament_id)
            if tournament.status != TournamentStatus.ACTIVE:
                raise InvalidStateError(f"Tournament {tournament_id} is not active")

            tournament.status = TournamentStatus.COMPLETED
            tournament.completed_at = now
            tournament.end_date = now

            prizes = [round(tournament.prize_pool * fraction, 2) for fraction in self.config.prize_distribution]
            winners = [
                replace(p) for p in tournament.leaderboard[:len(prizes)]
            ]

        logger.info(f"🏆 Tournament {tournament.name} completed, pool {tournament.prize_pool:.2f}")
        return TournamentResult(tournament_id=tournament_id, winners=winners, prizes=prizes)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_tournament(self, tournament_id: str) -> Tournament:
        with self._lock:
            return self._require(tournament_id)

    def list_tournaments(self) -> List[Tournament]:
        with self._lock:
            return list(self._tournaments.values())

    def active_tournaments(self) -> List[Tournament]:
        return [t for t in self.list_tournaments() if t.status == TournamentStatus.ACTIVE]

    def upcoming_tournaments(self) -> List[Tournament]:
        return [t for t in self.list_tournaments() if t.status == TournamentStatus.UPCOMING]

    def user_rank(self, tournament_id: str, user_id: str) -> int:
        """1-based rank, or 0 when the user is not participating."""
        with self._lock:
            participant = self._require(tournament_id).get_participant(user_id)
            return participant.rank if participant else 0

    def initialize_default_tournaments(self, now: Optional[datetime] = None) -> List[Tournament]:
        now = now or datetime.utcnow()
        with self._lock:
            if self._tournaments:
                return []
            return [
                self.create_tournament(
                    "Daily Meme Masters",
                    "Compete for the best meme predictions in 24 hours!",
                    now + timedelta(hours=2),
                ),
                self.create_tournament(
                    "Weekend Champion",
                    "Longer tournament with bigger prizes!",
                    now + timedelta(hours=24),
                ),
            ]
