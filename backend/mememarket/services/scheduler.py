"""
Market Scheduler - Periodic market work as a set of asyncio tasks

Ticks, sector rotation, random shocks, content refresh and the alert sweep
each run in their own loop; stop() cancels all of them together.
"""
import asyncio
import inspect
from datetime import datetime
from typing import Awaitable, Callable, Dict, List

from loguru import logger

from ..models.market import ShockKind

Listener = Callable[[dict], Awaitable[None]]


class MarketScheduler:
    """Owns the background tasks that keep the market moving."""

    def __init__(self, context):
        self.context = context
        self.settings = context.settings
        self._tasks: Dict[str, asyncio.Task] = {}
        self._listeners: List[Listener] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def add_listener(self, listener: Listener):
        """Async callback receiving every published market message."""
        self._listeners.append(listener)

    async def publish(self, message: dict):
        for listener in list(self._listeners):
            try:
                await listener(message)
            except Exception as e:
                logger.warning(f"Market listener failed: {e}")

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def tick(self):
        now = datetime.utcnow()
        updated = self.context.market.tick(now)
        if updated:
            await self.publish({
                'type': 'quotes',
                'data': [q.to_dict() for q in self.context.market.get_all_quotes().values()],
                'timestamp': now.isoformat() + 'Z',
            })

    async def check_sector(self):
        sector = self.context.market.rotate_sector_if_expired(datetime.utcnow())
        if sector is not None:
            await self.publish({'type': 'sector', 'data': sector.to_dict()})

    async def maybe_shock(self):
        rng = self.context.rng
        if float(rng.random()) >= self.settings.shock_probability:
            return
        kind = ShockKind.CRASH if float(rng.random()) < 0.5 else ShockKind.BOOM
        event = self.context.market.apply_shock(kind, datetime.utcnow())
        await self.publish({'type': 'market_event', 'data': event.to_dict()})

    async def refresh_content(self):
        items = await self.context.refresh_content(datetime.utcnow())
        if items:
            logger.info(f"Content refresh: {len(items)} trending items")

    async def sweep_alerts(self):
        created = self.context.sweep_alerts(datetime.utcnow())
        if created:
            logger.debug(f"Alert sweep created {created} alerts")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _jobs(self) -> Dict[str, tuple]:
        s = self.settings
        jobs = {
            'market_tick': (self.tick, s.market_tick_seconds),
            'sector_check': (self.check_sector, s.sector_check_seconds),
            'content_refresh': (self.refresh_content, s.content_refresh_seconds),
            'alert_sweep': (self.sweep_alerts, s.alert_sweep_seconds),
        }
        if s.enable_random_shocks:
            jobs['random_shocks'] = (self.maybe_shock, s.shock_check_seconds)
        return jobs

    async def _loop(self, name: str, job: Callable, period: float):
        logger.info(f"Starting {name} loop every {period:.0f}s")
        while self._running:
            try:
                result = job()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{name} loop error: {e}")
            await asyncio.sleep(period)

    def start(self):
        if self._running:
            return
        self._running = True
        for name, (job, period) in self._jobs().items():
            self._tasks[name] = asyncio.create_task(self._loop(name, job, period), name=name)
        logger.info(f"📊 Market scheduler started ({len(self._tasks)} tasks)")

    async def stop(self):
        """Cancel every loop and wait for them to finish."""
        self._running = False
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Market scheduler stopped")
