"""
Sync Scheduler

A single named execution slot for the sync worker.

Triggers are fire-and-forget and may come from any thread:
- no pass running: a pass starts on the bound event loop
- a pass running: the trigger is merged into one follow-up pass
- a pass requested a retry: the slot sleeps with linear backoff
  (step, 2*step, 3*step ... capped) and runs again

Usage:
    scheduler = SyncScheduler(worker, backoff_step_s=10.0)
    scheduler.attach()      # inside the event loop
    scheduler.trigger()     # from anywhere, as often as needed

    # Later:
    await scheduler.stop()
"""

import asyncio

from aura.common.logging_setup import get_service_logger
from .worker import SyncResult, SyncWorker

logger = get_service_logger("sync.scheduler")


class SyncScheduler:
    """
    Coalescing single-slot runner for SyncWorker passes.

    At most one pass runs at a time: the background slot and run_once()
    share an asyncio.Lock around worker.run().
    """

    def __init__(
        self,
        worker: SyncWorker,
        backoff_step_s: float = 10.0,
        max_backoff_s: float = 300.0,
        name: str = "sync",
    ):
        self.worker = worker
        self.backoff_step_s = backoff_step_s
        self.max_backoff_s = max_backoff_s
        self.name = name

        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._pass_lock = asyncio.Lock()
        self._rerun = False
        self._pending = False  # triggered before a loop was bound
        self._stopped = False

        self._attempt = 0
        self._pass_count = 0
        self.last_result: SyncResult | None = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def backoff_delay(self, attempt: int) -> float:
        """Linear backoff: attempt * step, capped at max_backoff_s."""
        return min(self.backoff_step_s * max(attempt, 1), self.max_backoff_s)

    # ============================================
    # TRIGGERING
    # ============================================

    def attach(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """
        Bind the event loop that runs sync passes.

        Without an argument this must be called from inside the running loop.
        A trigger that arrived before binding is started now.
        """
        self._loop = loop or asyncio.get_running_loop()
        if self._pending:
            self._pending = False
            self._loop.call_soon_threadsafe(self._request)

    def trigger(self) -> None:
        """Request a sync pass. Thread-safe, idempotent and non-blocking."""
        if self._stopped:
            return

        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                self._pending = True
                logger.debug("No event loop bound yet, sync deferred until attach()")
                return
            self._loop = loop

        if loop.is_closed():
            self._pending = True
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._request()
        else:
            loop.call_soon_threadsafe(self._request)

    def _request(self) -> None:
        """Start the slot or merge into its follow-up. Runs on the loop thread."""
        if self._stopped:
            return
        if self.is_active:
            self._rerun = True
            return
        self._task = self._loop.create_task(self._run_slot(), name=f"aura-{self.name}")

    # ============================================
    # SLOT
    # ============================================

    async def _run_slot(self) -> None:
        while True:
            self._rerun = False

            try:
                async with self._pass_lock:
                    result = await self.worker.run()
                self.last_result = result
                self._pass_count += 1
                retry = result.retry_needed
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Sync pass error: {e}", exc_info=True)
                retry = True

            if retry:
                self._attempt += 1
                delay = self.backoff_delay(self._attempt)
                logger.info(
                    f"Sync retry {self._attempt} scheduled in {delay:.0f}s",
                    extra={"attempt": self._attempt, "delay_s": delay},
                )
                await asyncio.sleep(delay)
                continue

            self._attempt = 0
            if not self._rerun:
                return

    async def run_once(self) -> SyncResult:
        """Run one pass now, waiting for any pass already in progress."""
        async with self._pass_lock:
            result = await self.worker.run()
        self.last_result = result
        self._pass_count += 1
        return result

    async def wait_idle(self) -> None:
        """Wait until no pass is running or scheduled for retry."""
        while self.is_active:
            await asyncio.wait({self._task})

    async def stop(self) -> None:
        """Cancel the slot. A partially uploaded file is retried next time."""
        self._stopped = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "active": self.is_active,
            "attempt": self._attempt,
            "pass_count": self._pass_count,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
