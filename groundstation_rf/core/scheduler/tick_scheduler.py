# groundstation_rf/core/scheduler/tick_scheduler.py
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from groundstation_rf.core.bus.event_bus import Topic
from groundstation_rf.settings import settings

logger = logging.getLogger(__name__)


class TickScheduler:
    """
    Drives the front end from one clock.

    - UPDATE every 1/update_hz seconds: front_end.update(dt) plus any extra tick hooks
    - SYNC every sync_interval_s seconds on the front end's bus
    - step(dt) advances the same logic without asyncio, for tests and the CLI

    A failing update is logged and the loop keeps ticking.
    """

    def __init__(
        self,
        front_end,
        update_hz: Optional[float] = None,
        sync_interval_s: Optional[float] = None,
    ):
        self.front_end = front_end
        self.update_hz = float(update_hz if update_hz is not None else settings.UPDATE_HZ)
        self.sync_interval_s = float(sync_interval_s if sync_interval_s is not None else settings.SYNC_INTERVAL_S)

        # Extra per-tick consumers (receiver, IQ display). Called after the front end.
        self._hooks: List[Callable[[float], None]] = []

        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._since_sync_s = 0.0
        self.tick_count = 0
        self.error_count = 0

    @property
    def period_s(self) -> float:
        return 1.0 / max(0.1, self.update_hz)

    def add_hook(self, cb: Callable[[float], None]) -> None:
        self._hooks.append(cb)

    def is_running(self) -> bool:
        return bool(self._running and self._task and not self._task.done())

    async def start(self) -> None:
        if self.is_running():
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="rf_tick_task")
        logger.info("[TICK] started at %.1f Hz", self.update_hz)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[TICK] stopped after %d ticks", self.tick_count)

    # ----------------------------
    # Tick
    # ----------------------------

    def step(self, dt: Optional[float] = None) -> None:
        dt = self.period_s if dt is None else float(dt)
        try:
            self.front_end.update(dt)
            for hook in list(self._hooks):
                hook(dt)
        except Exception:
            self.error_count += 1
            logger.exception("[TICK] update failed")
        self.tick_count += 1

        self._since_sync_s += dt
        if self._since_sync_s >= self.sync_interval_s:
            self._since_sync_s = 0.0
            self.front_end.bus.publish_nowait(Topic.SYNC, self.front_end.to_dict())

    # ----------------------------
    # Main loop
    # ----------------------------

    async def _loop(self) -> None:
        period = self.period_s
        last = time.monotonic()
        while self._running:
            now = time.monotonic()
            dt = now - last
            last = now
            self.step(dt if dt > 0 else period)

            # Keep cadence: sleep whatever is left of this period
            elapsed = time.monotonic() - now
            await asyncio.sleep(max(0.0, period - elapsed))
