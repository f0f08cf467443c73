"""
Background Refresh Worker Service

Periodically reloads the playlist and EPG according to the configured
refresh mode, and whenever a setting change asked for a reload.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional

from iptv_pvr.config import RefreshMode, Settings, get_settings
from iptv_pvr.services.iptv_data import IptvData, get_iptv_data

logger = logging.getLogger(__name__)


class RefreshWorker:
    """Background worker that keeps the loaded playlist current."""

    # Configuration
    PROCESS_LOOP_WAIT_SECS = 2  # Seconds between ticks
    RELOAD_SETTLE_SECS = 1  # Lets a burst of setting changes land first

    def __init__(self, data: Optional[IptvData] = None, settings: Optional[Settings] = None):
        self._data = data
        self._settings = settings
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._refresh_timer = 0.0
        self._last_tick: Optional[float] = None
        self._last_refresh_hour: Optional[int] = None
        self._stats = {
            "reloads": 0,
            "failed_reloads": 0,
            "started_at": None,
            "last_reload": None,
        }

    @property
    def data(self) -> IptvData:
        if self._data is None:
            self._data = get_iptv_data()
        return self._data

    @property
    def settings(self) -> Settings:
        return self._settings or self.data.settings or get_settings()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        """Start the background worker."""
        if self.running:
            logger.warning("Refresh worker already running")
            return

        self._stop_event = asyncio.Event()
        self._refresh_timer = 0.0
        self._last_tick = time.time()
        # Starting during the refresh hour must not trigger a reload
        self._last_refresh_hour = self.settings.m3u_refresh_hour
        self._stats["started_at"] = self._last_tick
        self._task = asyncio.create_task(self._worker_loop())
        logger.info(f"Refresh worker started (mode: {self.settings.m3u_refresh_mode.value})")

    async def stop(self):
        """Signal the worker to stop and wait for it to exit."""
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        logger.info("Refresh worker stopped")

    def get_stats(self) -> dict:
        """Get worker statistics."""
        return {
            **self._stats,
            "running": self.running,
            "mode": self.settings.m3u_refresh_mode.value,
            "uptime": time.time() - self._stats["started_at"] if self._stats["started_at"] else 0
        }

    def check_reload_due(self, now: float) -> bool:
        """
        Advance the refresh timer to now and report whether a reload is due.

        The once-per-day mode fires when the local hour changes to the
        configured refresh hour.
        """
        if self._last_tick is None:
            self._last_tick = now
        self._refresh_timer += max(0.0, now - self._last_tick)
        self._last_tick = now

        current_hour = datetime.fromtimestamp(now).hour
        if self._last_refresh_hour is None:
            self._last_refresh_hour = current_hour

        settings = self.settings
        due = self.data.reload_requested

        if (settings.m3u_refresh_mode == RefreshMode.REPEATED_REFRESH
                and self._refresh_timer >= settings.m3u_refresh_interval_mins * 60):
            due = True

        if (settings.m3u_refresh_mode == RefreshMode.ONCE_PER_DAY
                and self._last_refresh_hour != current_hour
                and current_hour == settings.m3u_refresh_hour):
            due = True

        self._last_refresh_hour = current_hour
        return due

    async def _reload(self):
        await asyncio.sleep(self.RELOAD_SETTLE_SECS)
        loaded = await self.data.reload()
        self._refresh_timer = 0.0
        self._stats["reloads"] += 1
        self._stats["last_reload"] = datetime.now().isoformat()
        if not loaded:
            self._stats["failed_reloads"] += 1
            logger.warning("Scheduled playlist reload failed")
        else:
            logger.info("Scheduled playlist reload complete")

    async def _wait_tick(self) -> bool:
        """Sleep one tick; True when stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.PROCESS_LOOP_WAIT_SECS)
            return True
        except asyncio.TimeoutError:
            return False

    async def _worker_loop(self):
        """Main worker loop."""
        logger.info("Refresh worker loop starting...")

        while not self._stop_event.is_set():
            if await self._wait_tick():
                break

            if not self.check_reload_due(time.time()):
                continue

            try:
                await self._reload()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Refresh worker error: {e}", exc_info=True)


# Singleton
_refresh_worker: Optional[RefreshWorker] = None


def get_refresh_worker() -> RefreshWorker:
    """Get or create refresh worker singleton."""
    global _refresh_worker
    if _refresh_worker is None:
        _refresh_worker = RefreshWorker()
    return _refresh_worker
