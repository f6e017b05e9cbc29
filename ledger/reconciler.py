"""
Periodic refresh of the projection from the store.

The Reconciler owns one asyncio task. Each tick fetches both collections
through OrderRepository and overwrites the ProjectionCache. A failed tick
keeps the previous cache and is only logged; the next scheduled tick is
the retry, with no backoff. Any other error ends the loop; it is logged
and kept in ``last_error``.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from ledger.exceptions import StoreUnavailableError
from ledger.order_repository import OrderRepository
from ledger.projection import ProjectionCache

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 5.0


class Reconciler:
    """Cancelable polling loop keeping a ProjectionCache current.

    Use ``async with reconciler:`` or pair start() with stop(). The first
    tick runs as soon as the loop starts.
    """

    def __init__(
        self,
        repository: OrderRepository,
        cache: ProjectionCache,
        interval: float = DEFAULT_REFRESH_INTERVAL,
    ) -> None:
        if interval <= 0:
            raise ValueError("Refresh interval must be positive")
        self.repository = repository
        self.cache = cache
        self.interval = interval
        self.last_error: Optional[BaseException] = None
        self.last_success_at: Optional[datetime] = None
        self.consecutive_failures = 0
        self.ticks = 0
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh_now(self) -> bool:
        """Run one tick immediately.

        Returns:
            True if the cache was refreshed, False if the store was
            unavailable and the previous state was kept
        """
        self.ticks += 1
        try:
            active = await self.repository.fetch_all()
            deleted = await self.repository.fetch_deleted()
        except StoreUnavailableError as e:
            self.last_error = e
            self.consecutive_failures += 1
            logger.warning(
                "Refresh failed, keeping cached orders",
                extra={
                    "error": str(e),
                    "consecutive_failures": self.consecutive_failures,
                    "cache_revision": self.cache.revision,
                },
            )
            return False

        self.cache.apply_remote(active, deleted)
        self.last_error = None
        self.consecutive_failures = 0
        self.last_success_at = datetime.now(timezone.utc)
        return True

    async def _run(self) -> None:
        logger.info(
            "Reconciler started", extra={"interval_seconds": self.interval}
        )
        try:
            while True:
                await self.refresh_now()
                await asyncio.sleep(self.interval)
        except Exception as e:
            self.last_error = e
            logger.error(
                "Reconciler loop crashed",
                extra={"error": str(e), "ticks": self.ticks},
                exc_info=True,
            )
        finally:
            logger.info("Reconciler stopped", extra={"ticks": self.ticks})

    def start(self) -> None:
        """Start polling. Calling start() on a running reconciler is a
        no-op."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="ledger-reconciler"
        )

    async def stop(self) -> None:
        """Cancel the polling task and wait for it to finish.

        Idempotent: stopping a reconciler that is not running does nothing,
        and a loop that already ended on an error stops without raising.
        A cancellation of the caller while it waits still propagates.
        """
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
            # asyncio.wait does not cancel ``task`` when the caller is
            # cancelled, and never raises the task's own outcome.
            await asyncio.wait([task])
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Reconciler task ended with an error",
                extra={"error": str(error)},
            )

    async def __aenter__(self) -> "Reconciler":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
