"""Graceful shutdown: stop admitting work, then drain in-flight jobs."""

import asyncio
import logging
import signal

from ticket_to_pr.core.scheduler import Scheduler

logger = logging.getLogger(__name__)


class ShutdownCoordinator:
    def __init__(self, scheduler: Scheduler, timeout: float = 300.0, check_interval: float = 5.0):
        self.scheduler = scheduler
        self.timeout = timeout
        self.check_interval = check_interval
        self._event = asyncio.Event()

    @property
    def requested(self) -> bool:
        return self._event.is_set()

    def request(self, reason: str = "shutdown requested") -> None:
        if self._event.is_set():
            return
        logger.info("%s, waiting for active jobs to finish...", reason)
        self._event.set()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request, f"Received {sig.name}")

    async def wait(self, timeout: float | None) -> bool:
        """Sleep up to ``timeout`` seconds; returns True early if shutdown is requested."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def drain(self) -> bool:
        """Wait for running jobs, up to the timeout. Returns True on a clean drain."""
        idle = await self.scheduler.wait_idle(self.check_interval, self.timeout)
        if idle:
            logger.info("All jobs finished. Exiting cleanly.")
            return True

        logger.error(
            "Force exiting with %d job(s) still running after %.0fs",
            self.scheduler.active_tasks, self.timeout,
        )
        await self.scheduler.cancel_all()
        return False
