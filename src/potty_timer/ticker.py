"""Background expiry tick."""

import asyncio
import logging

from .controller import TimerController
from .models import Timer

logger = logging.getLogger(__name__)


class ExpiryTicker:
    """Periodically expires running timers that have reached zero.

    The tick is advisory: reads also expire due timers, and ``expire_check``
    only transitions a record once.
    """

    def __init__(self, controller: TimerController, interval: float):
        self.controller = controller
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> list[Timer]:
        """Run one expiry pass."""
        expired = await self.controller.expire_due()
        for timer in expired:
            logger.info("Timer %s entered notification mode", timer.id)
        return expired

    def start(self) -> None:
        if self.interval <= 0:
            logger.info("Expiry tick disabled")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self):
        """Main loop - one pass every ``interval`` seconds."""
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("Expiry tick failed")
