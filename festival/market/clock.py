"""
Market clock - one repeating drift task per stock

Tasks run on the asyncio event loop. Until a loop is running (startup,
synchronous callers) requested intervals are only recorded; ``start()``
schedules them once the loop is up.
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class MarketClock:
    def __init__(self, on_tick: Callable[[str], None]):
        self._on_tick = on_tick
        self._intervals: Dict[str, int] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def restart(self, ticker: str, interval_ms: int):
        """Replace the ticker's drift task; the previous one is cancelled first"""
        self.stop(ticker)
        self._intervals[ticker] = interval_ms
        loop = _running_loop()
        if loop is not None:
            self._schedule(loop, ticker, interval_ms)

    def start(self):
        """Schedule every recorded ticker that has no live task"""
        loop = asyncio.get_running_loop()
        for ticker, interval_ms in self._intervals.items():
            if not self.is_running(ticker):
                self._schedule(loop, ticker, interval_ms)

    def stop(self, ticker: str):
        task = self._tasks.pop(ticker, None)
        if task is not None:
            task.cancel()
        self._intervals.pop(ticker, None)

    def stop_all(self):
        for ticker in list(self._intervals):
            self.stop(ticker)

    def interval_of(self, ticker: str) -> Optional[int]:
        return self._intervals.get(ticker)

    def is_running(self, ticker: str) -> bool:
        task = self._tasks.get(ticker)
        return task is not None and not task.done()

    def tickers(self) -> List[str]:
        return list(self._intervals)

    def _schedule(self, loop: asyncio.AbstractEventLoop, ticker: str, interval_ms: int):
        self._tasks[ticker] = loop.create_task(self._run(ticker, interval_ms), name=f"drift:{ticker}")

    async def _run(self, ticker: str, interval_ms: int):
        delay = interval_ms / 1000
        while True:
            await asyncio.sleep(delay)
            try:
                self._on_tick(ticker)
            except Exception:
                logger.exception("drift tick failed for %s", ticker)
