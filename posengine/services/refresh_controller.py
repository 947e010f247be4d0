"""Refresh/sync controller.

Keeps one terminal's view of the shared store current. Polls on a fixed
interval, also refreshes right after local writes, and publishes each new
snapshot to its subscribers. A poll that fails leaves the previous
snapshot in place and surfaces the error through ``status()``.
"""

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from posengine.core.clock import utcnow
from posengine.core.config import settings
from posengine.schemas.reports import SyncStatus
from posengine.services.order_store import OrderStore, StoreEvent
from posengine.services.snapshot import StoreSnapshot

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[StoreSnapshot], Any]


class RefreshController:
    """Polls the order store and republishes snapshots."""

    def __init__(
        self,
        order_store: OrderStore,
        interval: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.order_store = order_store
        self.interval = settings.poll_interval_seconds if interval is None else interval
        self._clock = clock
        self._snapshot = StoreSnapshot()
        self._generation = 0
        self._applied_generation = 0
        self._in_flight = 0
        self._status = "idle"
        self._last_success_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._consecutive_failures = 0
        self._listeners: List[SnapshotListener] = []
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def snapshot(self) -> StoreSnapshot:
        """Most recently applied snapshot; empty until the first poll lands."""
        return self._snapshot

    @property
    def running(self) -> bool:
        return self._running

    def subscribe(self, listener: SnapshotListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, poll: bool = True) -> None:
        """Load an initial snapshot and follow store changes.

        With *poll* the store is also re-read every ``interval`` seconds,
        which is how changes made by other terminals arrive.
        """
        if self._running:
            return
        self._running = True
        self.order_store.subscribe(self._on_store_event)
        await self.refresh()
        if poll:
            self._task = asyncio.create_task(self._poll_loop())
            logger.info(f"Refresh controller polling every {self.interval}s")
        else:
            logger.info("Refresh controller started without polling")

    async def stop(self) -> None:
        self._running = False
        self.order_store.unsubscribe(self._on_store_event)
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Refresh controller stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            await self.tick()

    async def tick(self) -> Optional[StoreSnapshot]:
        """One scheduled poll. Skipped while an earlier poll is still running."""
        if self._in_flight:
            logger.debug("Previous poll still in flight; skipping tick")
            return None
        return await self.refresh()

    async def _on_store_event(self, event: StoreEvent) -> None:
        logger.debug(f"Store changed ({event.kind} order {event.order.id}); refreshing")
        await self.refresh()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def refresh(self) -> StoreSnapshot:
        """Poll the store now and return the snapshot in effect afterwards.

        Each poll takes a new generation number. A result is applied only
        if no newer poll was started while it was in flight; a failed poll
        keeps the current snapshot and records the error.
        """
        self._generation += 1
        generation = self._generation
        self._in_flight += 1
        try:
            snapshot = await self.order_store.snapshot(generation)
        except Exception as e:
            if generation == self._generation:
                self._record_failure(generation, e)
            return self._snapshot
        finally:
            self._in_flight -= 1

        if generation != self._generation:
            logger.debug(f"Discarding stale poll {generation} (newest is {self._generation})")
            return self._snapshot

        await self._apply(snapshot)
        return self._snapshot

    def _record_failure(self, generation: int, error: Exception) -> None:
        self._consecutive_failures += 1
        self._last_error = str(error) or error.__class__.__name__
        self._status = "error"
        logger.warning(
            f"Poll {generation} failed ({self._consecutive_failures} in a row), "
            f"keeping snapshot {self._applied_generation}: {self._last_error}"
        )

    async def _apply(self, snapshot: StoreSnapshot) -> None:
        if self._consecutive_failures:
            logger.info(f"Store reachable again after {self._consecutive_failures} failed polls")
        self._snapshot = snapshot
        self._applied_generation = snapshot.generation
        self._status = "ok"
        self._last_success_at = self._clock()
        self._last_error = None
        self._consecutive_failures = 0

        for listener in list(self._listeners):
            try:
                result = listener(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Snapshot listener failed on generation {snapshot.generation}")

    def status(self) -> SyncStatus:
        return SyncStatus(
            status=self._status,
            generation=self._generation,
            applied_generation=self._applied_generation,
            order_count=len(self._snapshot.orders),
            last_success_at=self._last_success_at,
            last_error=self._last_error,
            consecutive_failures=self._consecutive_failures,
            poll_interval_seconds=self.interval,
        )
