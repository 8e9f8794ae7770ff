"""
Snapshot writer - coalesces save requests into one write of the latest state

Each request restarts the debounce window; when it elapses the current
snapshot is taken and written once. A steady stream of requests can't hold
a write back longer than ``max_wait_ms``. Without a running event loop
requests only mark the writer dirty and ``flush()`` performs the write.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from ..common.data_manager import DataManager

logger = logging.getLogger(__name__)


class SnapshotWriter:
    def __init__(self, data_manager: DataManager, snapshot: Callable[[], Dict[str, Any]],
                 debounce_ms: int = 300, max_wait_ms: int = 2000):
        self.dm = data_manager
        self._snapshot = snapshot
        self.debounce = debounce_ms / 1000
        self.max_wait = max(debounce_ms, max_wait_ms) / 1000
        self._handle: Optional[asyncio.TimerHandle] = None
        self._first_request: Optional[float] = None
        self._write_task: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()
        self.pending = False
        self.writes = 0

    def request(self):
        """Fire-and-forget save request"""
        self.pending = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        now = loop.time()
        if self._handle is None:
            self._first_request = now
        else:
            self._handle.cancel()
        delay = min(self.debounce, self._first_request + self.max_wait - now)
        self._handle = loop.call_later(max(0.0, delay), self._fire, loop)

    def _fire(self, loop: asyncio.AbstractEventLoop):
        self._handle = None
        self._first_request = None
        if not self.pending:
            return
        self.pending = False
        # serialize now so later mutations can't leak into this write
        data = self._snapshot()
        self._write_task = loop.create_task(self._write(data))

    async def _write(self, data: Dict[str, Any]):
        async with self._write_lock:
            try:
                await self.dm.async_save_snapshot(data)
                self.writes += 1
            except Exception:
                logger.exception("snapshot save failed")

    def _cancel_timer(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._first_request = None

    def flush(self):
        """Synchronously write any pending snapshot"""
        self._cancel_timer()
        if not self.pending:
            return
        self.pending = False
        try:
            self.dm.save_snapshot(self._snapshot())
            self.writes += 1
        except Exception:
            logger.exception("snapshot save failed")

    async def aflush(self):
        """Write any pending snapshot and wait for an in-flight write"""
        self._cancel_timer()
        if self._write_task is not None:
            await self._write_task
            self._write_task = None
        if self.pending:
            self.pending = False
            await self._write(self._snapshot())
