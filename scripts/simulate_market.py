#!/usr/bin/env python3
"""
Offline market simulation for the MemeMarket engine.

Usage:
    python scripts/simulate_market.py --items 20 --ticks 500 --seed 42 --shocks
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime, timedelta

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import numpy as np
import pandas as pd
from loguru import logger

from mememarket.core.randomness import create_random_source
from mememarket.models.content import ContentItem
from mememarket.models.market import ShockKind
from mememarket.services.content_provider import StaticContentProvider
from mememarket.services.market_engine import MarketEngine

SUBREDDITS = ['memes', 'dankmemes', 'wholesomememes', 'ProgrammerHumor', 'funny', 'me_irl']


def generate_synthetic_items(count: int, now: datetime, seed: int) -> list:
    """Generate synthetic trending posts with heavy-tailed scores."""
    logger.info(f"Generating {count} synthetic items...")
    rng = np.random.default_rng(seed)

    items = []
    for i in range(count):
        score = int(rng.lognormal(mean=7, sigma=1.2))
        items.append(ContentItem(
            id=f"sim{i:04d}",
            title=f"Synthetic meme #{i}",
            subreddit=SUBREDDITS[int(rng.integers(len(SUBREDDITS)))],
            score=score,
            comment_count=int(score * rng.uniform(0.02, 0.2)),
            created_at=now - timedelta(hours=float(rng.uniform(0.5, 48))),
            thumbnail="https://i.redd.it/sim.jpg" if rng.random() < 0.7 else None,
        ))
    return items


def simulate(items: int, ticks: int, interval_minutes: float, seed: int, shocks: bool,
             shock_probability: float) -> pd.DataFrame:
    """Run the market forward and return one row per (tick, item)."""
    start = datetime.utcnow()
    rng = create_random_source(seed)
    market = MarketEngine(rng=rng, now=start)

    provider = StaticContentProvider(generate_synthetic_items(items, start, seed))
    trending = asyncio.run(provider.fetch_trending(limit=items))
    market.track(trending, start)
    market.apply_rankings([item.id for item in trending])

    rows = []
    now = start
    for step in range(1, ticks + 1):
        now = start + timedelta(minutes=interval_minutes * step)
        market.rotate_sector_if_expired(now)
        if shocks and float(rng.random()) < shock_probability:
            kind = ShockKind.CRASH if float(rng.random()) < 0.5 else ShockKind.BOOM
            market.apply_shock(kind, now)
        market.tick(now)

        for quote in market.get_all_quotes().values():
            rows.append({
                'step': step,
                'item_id': quote.item_id,
                'price': quote.current_price,
                'volume': quote.volume,
                'sector': market.current_sector.name,
            })

    events = market.recent_events(limit=100)
    logger.info(f"Simulated {ticks} ticks, {len(events)} market events")
    return pd.DataFrame(rows)


def summarize(history: pd.DataFrame):
    if history.empty:
        logger.warning("Nothing simulated")
        return

    by_item = history.groupby('item_id')['price']
    summary = pd.DataFrame({
        'start': by_item.first(),
        'end': by_item.last(),
        'min': by_item.min(),
        'max': by_item.max(),
        'volatility': by_item.apply(lambda s: float(np.std(s.pct_change().dropna()))),
    })
    summary['return_pct'] = (summary['end'] / summary['start'] - 1) * 100

    print("\n" + "=" * 60)
    print("MARKET SIMULATION SUMMARY")
    print("=" * 60)
    print(summary.sort_values('return_pct', ascending=False).round(3).to_string())
    print("-" * 60)
    print(f"Mean return:    {summary['return_pct'].mean():+.2f}%")
    print(f"Lowest price:   {history['price'].min():.2f}")
    print(f"Sectors seen:   {', '.join(history['sector'].unique())}")
    print("=" * 60)


def main():
    parser = argparse.ArgumentParser(description="Simulate the meme market offline")
    parser.add_argument("--items", type=int, default=20, help="Number of synthetic items")
    parser.add_argument("--ticks", type=int, default=500, help="Number of market ticks")
    parser.add_argument("--interval", type=float, default=1.0, help="Minutes between ticks")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--shocks", action="store_true", help="Enable random crash/boom events")
    parser.add_argument("--shock-probability", type=float, default=0.01, help="Shock chance per tick")
    parser.add_argument("--output", type=str, default=None, help="Optional CSV path for the price history")

    args = parser.parse_args()

    history = simulate(args.items, args.ticks, args.interval, args.seed, args.shocks, args.shock_probability)
    summarize(history)

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        history.to_csv(output, index=False)
        logger.info(f"Price history saved to {output}")


if __name__ == "__main__":
    main()
