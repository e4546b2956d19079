"""
API Routes for the MemeMarket Simulation Engine
"""
from datetime import datetime
from typing import Optional, List
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field
from loguru import logger

from ..core.errors import (
    AlreadyParticipatingError,
    CapacityExceededError,
    InvalidStateError,
    MarketError,
    NotFoundError,
)
from ..models.market import ShockKind
from ..models.prediction import PredictionIntent

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class ShockRequest(BaseModel):
    """Request model for a manual market shock."""
    kind: ShockKind = Field(description="crash or boom")


class OddsRequest(BaseModel):
    """Request model for an odds quote."""
    item_id: str
    prediction_type: str = Field(description="growth_rate, milestone_reach, ranking_position, engagement_ratio, virality_index")
    target_value: float = Field(allow_inf_nan=False)
    timeframe: str = Field(default="LONG", description="SHORT, MEDIUM, LONG, EXTENDED")


class OddsResponse(BaseModel):
    item_id: str
    prediction_type: str
    timeframe: str
    odds: float
    volatility_factor: float
    conditions: Optional[dict] = None


class BetRequest(BaseModel):
    """Request model for placing a bet."""
    item_id: str
    prediction_type: str
    target_value: float = Field(allow_inf_nan=False)
    timeframe: str = Field(default="LONG")
    bet_amount: float = Field(allow_inf_nan=False, description="MemeCoins wagered (10 - 1000)")


class AmountRequest(BaseModel):
    amount: float = Field(gt=0)


class TournamentRequest(BaseModel):
    """Request model for creating a tournament."""
    name: str
    description: str = ""
    start_date: Optional[datetime] = None  # None = now


# ============================================================================
# Helpers
# ============================================================================

def _context(req: Request):
    return req.app.state.context


def _http_error(e: MarketError) -> HTTPException:
    if isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, (AlreadyParticipatingError, CapacityExceededError, InvalidStateError)):
        status = 409
    else:
        status = 400
    return HTTPException(status_code=status, detail=str(e))


# ============================================================================
# Market
# ============================================================================

@router.get("/market/quotes")
async def get_quotes(req: Request):
    """All tracked quotes keyed by item id."""
    quotes = _context(req).market.get_all_quotes()
    return {item_id: quote.to_dict() for item_id, quote in quotes.items()}


@router.get("/market/quotes/{item_id}")
async def get_quote(item_id: str, req: Request):
    quote = _context(req).market.get_quote(item_id)
    if quote is None:
        raise HTTPException(status_code=404, detail=f"No quote for {item_id}")
    return quote.to_dict()


@router.get("/market/sector")
async def get_current_sector(req: Request):
    return _context(req).market.current_sector.to_dict()


@router.get("/market/sectors")
async def get_sectors(req: Request):
    return [s.to_dict() for s in _context(req).market.sectors]


@router.post("/market/sector/rotate")
async def rotate_sector(req: Request):
    """Force rotation to the next sector."""
    sector = _context(req).market.rotate_sector()
    return sector.to_dict()


@router.get("/market/events")
async def get_events(req: Request, limit: int = Query(default=10, ge=1, le=100)):
    return [e.to_dict() for e in _context(req).market.recent_events(limit)]


@router.post("/market/shock")
async def apply_shock(request: ShockRequest, req: Request):
    """
    Apply a market-wide crash or boom.

    Every tracked price moves by the shock factor and the event is recorded.
    """
    event = _context(req).market.apply_shock(request.kind)
    return event.to_dict()


@router.get("/market/summary")
async def get_market_summary(req: Request):
    return _context(req).market.market_summary()


# ============================================================================
# Odds
# ============================================================================

@router.post("/odds", response_model=OddsResponse)
async def get_odds(request: OddsRequest, req: Request):
    """Price a prospective bet without placing it."""
    context = _context(req)
    item = await context.get_item(request.item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Content item not found: {request.item_id}")

    quote = context.engine.quote_odds(
        item,
        context.market.get_quote(item.id),
        request.prediction_type,
        request.target_value,
        request.timeframe,
    )
    return OddsResponse(
        item_id=item.id,
        prediction_type=request.prediction_type,
        timeframe=request.timeframe,
        odds=quote.odds,
        volatility_factor=quote.volatility_factor,
        conditions=quote.conditions.to_dict() if quote.conditions else None,
    )


@router.get("/suggestions/{item_id}")
async def get_suggestions(item_id: str, req: Request):
    context = _context(req)
    item = await context.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Content item not found: {item_id}")
    return context.engine.generate_suggestions(item, context.market.get_quote(item_id))


# ============================================================================
# Portfolio and bets
# ============================================================================

@router.get("/portfolio/{user_id}")
async def get_portfolio(user_id: str, req: Request):
    portfolio = _context(req).portfolios.get_or_create(user_id)
    return portfolio.to_dict()


@router.get("/portfolio/{user_id}/summary")
async def get_portfolio_summary(user_id: str, req: Request):
    context = _context(req)
    portfolio = context.portfolios.get_or_create(user_id)
    summary = portfolio.to_summary()
    summary['portfolio_value'] = round(context.ledger.portfolio_value(portfolio), 2)
    return summary


@router.post("/portfolio/{user_id}/reset")
async def reset_portfolio(user_id: str, req: Request):
    portfolio = _context(req).portfolios.reset(user_id)
    return portfolio.to_dict()


@router.post("/portfolio/{user_id}/bets")
async def place_bet(user_id: str, request: BetRequest, req: Request):
    """
    Place a bet on a content item.

    Odds are locked at placement; the stake is debited immediately.
    """
    intent = PredictionIntent(
        item_id=request.item_id,
        prediction_type=request.prediction_type,
        target_value=request.target_value,
        timeframe=request.timeframe,
        bet_amount=request.bet_amount,
    )
    try:
        prediction = await _context(req).place_bet(user_id, intent)
    except MarketError as e:
        logger.warning(f"Bet rejected for {user_id}: {e}")
        raise _http_error(e)
    return prediction.to_dict()


@router.get("/portfolio/{user_id}/bets")
async def get_bets(user_id: str, req: Request, active_only: bool = False):
    portfolio = _context(req).portfolios.get_or_create(user_id)
    predictions = portfolio.active_predictions if active_only else portfolio.predictions
    return [p.to_dict() for p in predictions]


@router.post("/portfolio/{user_id}/resolve")
async def resolve_bets(user_id: str, req: Request):
    """Re-fetch the items behind open bets and settle whatever is decided."""
    portfolio = await _context(req).resolve_user(user_id)
    return portfolio.to_summary()


@router.post("/portfolio/{user_id}/daily-reward")
async def claim_daily_reward(user_id: str, req: Request):
    context = _context(req)
    portfolio = context.portfolios.get_or_create(user_id)
    try:
        reward = context.ledger.claim_daily_reward(portfolio)
    except MarketError as e:
        raise _http_error(e)
    context.portfolios.save(portfolio)
    return {'reward': round(reward, 2), 'balance': portfolio.balance}


@router.get("/portfolio/{user_id}/earnings")
async def get_earnings(user_id: str, req: Request):
    context = _context(req)
    return context.ledger.earnings_summary(context.portfolios.get_or_create(user_id))


@router.get("/portfolio/{user_id}/ledger")
async def get_ledger(user_id: str, req: Request, limit: int = Query(default=50, ge=1, le=1000)):
    portfolio = _context(req).portfolios.get_or_create(user_id)
    return [entry.to_dict() for entry in portfolio.ledger[-limit:]]


# ============================================================================
# Staking
# ============================================================================

@router.get("/staking/tiers")
async def get_staking_tiers(req: Request):
    return [tier.to_dict() for tier in _context(req).staking.tiers]


@router.get("/staking/{user_id}")
async def get_staking_stats(user_id: str, req: Request):
    context = _context(req)
    return context.staking.staking_stats(context.portfolios.get_or_create(user_id))


@router.post("/staking/{user_id}/stake")
async def stake(user_id: str, request: AmountRequest, req: Request):
    context = _context(req)
    portfolio = context.portfolios.get_or_create(user_id)
    try:
        context.staking.stake(portfolio, request.amount)
    except MarketError as e:
        raise _http_error(e)
    context.portfolios.save(portfolio)
    return context.staking.staking_stats(portfolio)


@router.post("/staking/{user_id}/unstake")
async def unstake(user_id: str, request: AmountRequest, req: Request):
    context = _context(req)
    portfolio = context.portfolios.get_or_create(user_id)
    try:
        context.staking.unstake(portfolio, request.amount)
    except MarketError as e:
        raise _http_error(e)
    context.portfolios.save(portfolio)
    return context.staking.staking_stats(portfolio)


@router.post("/staking/{user_id}/claim")
async def claim_staking_rewards(user_id: str, req: Request):
    context = _context(req)
    portfolio = context.portfolios.get_or_create(user_id)
    reward = context.staking.claim(portfolio)
    context.portfolios.save(portfolio)
    return {'reward': round(reward, 2), 'balance': portfolio.balance}


# ============================================================================
# Tournaments
# ============================================================================

@router.get("/tournaments")
async def list_tournaments(req: Request, status: Optional[str] = None):
    tournaments = _context(req).tournaments.list_tournaments()
    if status:
        tournaments = [t for t in tournaments if t.status.value == status]
    return [t.to_dict(include_leaderboard=False) for t in tournaments]


@router.post("/tournaments")
async def create_tournament(request: TournamentRequest, req: Request):
    tournament = _context(req).tournaments.create_tournament(
        request.name,
        request.description,
        request.start_date or datetime.utcnow(),
    )
    return tournament.to_dict()


@router.get("/tournaments/{tournament_id}")
async def get_tournament(tournament_id: str, req: Request):
    try:
        return _context(req).tournaments.get_tournament(tournament_id).to_dict()
    except MarketError as e:
        raise _http_error(e)


@router.post("/tournaments/{tournament_id}/join/{user_id}")
async def join_tournament(tournament_id: str, user_id: str, req: Request):
    context = _context(req)
    portfolio = context.portfolios.get_or_create(user_id)
    try:
        tournament = context.tournaments.join(tournament_id, portfolio)
    except MarketError as e:
        logger.warning(f"Join rejected for {user_id}: {e}")
        raise _http_error(e)
    context.portfolios.save(portfolio)
    return tournament.to_dict()


@router.post("/tournaments/{tournament_id}/start")
async def start_tournament(tournament_id: str, req: Request):
    try:
        return _context(req).tournaments.start(tournament_id).to_dict()
    except MarketError as e:
        raise _http_error(e)


@router.post("/tournaments/{tournament_id}/end")
async def end_tournament(tournament_id: str, req: Request):
    """End an active tournament and pay out the prize pool."""
    try:
        result = _context(req).end_tournament(tournament_id)
    except MarketError as e:
        raise _http_error(e)
    return result.to_dict()


@router.get("/tournaments/{tournament_id}/rank/{user_id}")
async def get_user_rank(tournament_id: str, user_id: str, req: Request):
    try:
        rank = _context(req).tournaments.user_rank(tournament_id, user_id)
    except MarketError as e:
        raise _http_error(e)
    return {'tournament_id': tournament_id, 'user_id': user_id, 'rank': rank}


# ============================================================================
# Analytics and alerts
# ============================================================================

@router.get("/analytics/{user_id}")
async def get_analytics(user_id: str, req: Request):
    """Streaks, subreddit breakdown, risk metrics and betting frequency."""
    context = _context(req)
    portfolio = context.portfolios.get_or_create(user_id)
    return context.analytics.dashboard(portfolio, context.items)


@router.get("/alerts/{user_id}")
async def get_alerts(user_id: str, req: Request, unread_only: bool = False):
    alerts = _context(req).alerts.get_alerts(user_id, unread_only)
    return [a.to_dict() for a in alerts]


@router.post("/alerts/{user_id}/read/{alert_id}")
async def mark_alert_read(user_id: str, alert_id: str, req: Request):
    if not _context(req).alerts.mark_read(user_id, alert_id):
        raise HTTPException(status_code=404, detail=f"Alert not found: {alert_id}")
    return {'alert_id': alert_id, 'read': True}


@router.post("/alerts/{user_id}/read-all")
async def mark_all_alerts_read(user_id: str, req: Request):
    return {'marked': _context(req).alerts.mark_all_read(user_id)}
