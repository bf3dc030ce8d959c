"""Admission control: the in-flight job registry and the tasks running those jobs."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ticket_to_pr.models import Job, JobMode, Ticket

logger = logging.getLogger(__name__)


class InFlightRegistry:
    """Ticket ID -> Job. At most one job per ticket.

    Only touched from the event loop thread, so plain dict operations are
    atomic with respect to other jobs.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._jobs: dict[str, Job] = {}
        self._clock = clock

    def __contains__(self, ticket_id: str) -> bool:
        return ticket_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def get(self, ticket_id: str) -> Job | None:
        return self._jobs.get(ticket_id)

    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    def register(self, ticket_id: str, mode: JobMode) -> Job | None:
        """Lock a ticket. Returns None (and changes nothing) if it is already locked."""
        if ticket_id in self._jobs:
            return None
        job = Job(ticket_id=ticket_id, mode=mode, started_at=self._clock())
        self._jobs[ticket_id] = job
        return job

    def release(self, ticket_id: str, job: Job | None = None) -> bool:
        """Unlock a ticket.

        With ``job`` given, the entry is only removed if it is still that job;
        a job whose lock was reaped must not free a newer job for the same ticket.
        """
        current = self._jobs.get(ticket_id)
        if current is None or (job is not None and current is not job):
            return False
        del self._jobs[ticket_id]
        return True

    def reap_stale(self, threshold: float, now: float | None = None) -> list[Job]:
        """Drop entries older than ``threshold`` seconds.

        Only the lock is freed; the job itself may still be running.
        """
        if now is None:
            now = self._clock()
        stale = [job for job in self._jobs.values() if now - job.started_at > threshold]
        for job in stale:
            del self._jobs[job.ticket_id]
            logger.warning(
                "Releasing stale lock for %s (mode: %s, age %.0fs)",
                job.ticket_id, job.mode.value, now - job.started_at,
            )
        return stale


def available_slots(max_concurrent: int, in_flight: int) -> int:
    return max(0, max_concurrent - in_flight)


def select_admissions(
    review: list[Ticket],
    execute: list[Ticket],
    slots: int,
) -> list[tuple[JobMode, Ticket]]:
    """Review tickets first, then execute tickets, cut to ``slots`` entries."""
    candidates = [(JobMode.REVIEW, t) for t in review] + [(JobMode.EXECUTE, t) for t in execute]
    return candidates[: max(0, slots)]


class Scheduler:
    """Owns the registry and the asyncio tasks of admitted jobs."""

    def __init__(self, max_concurrent: int, registry: InFlightRegistry | None = None):
        self.max_concurrent = max_concurrent
        self.registry = registry or InFlightRegistry()
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self.registry)

    @property
    def active_tasks(self) -> int:
        """Running job tasks, including any whose lock was reaped."""
        return len(self._tasks)

    def available_slots(self) -> int:
        return available_slots(self.max_concurrent, len(self.registry))

    def admit(self, review: list[Ticket], execute: list[Ticket]) -> list[tuple[JobMode, Ticket]]:
        """Filter out locked tickets and take as many as there are free slots."""
        review = [t for t in review if t.id not in self.registry]
        execute = [t for t in execute if t.id not in self.registry]
        return select_admissions(review, execute, self.available_slots())

    def dispatch(
        self,
        ticket_id: str,
        mode: JobMode,
        job_fn: Callable[[], Awaitable[None]],
    ) -> asyncio.Task | None:
        """Lock the ticket and run ``job_fn`` in the background.

        Returns None if the ticket is already locked. The lock is released
        when the job finishes, however it finishes.
        """
        job = self.registry.register(ticket_id, mode)
        if job is None:
            logger.debug("Ticket %s already locked, not dispatching", ticket_id)
            return None

        async def run() -> None:
            try:
                await job_fn()
            finally:
                self.registry.release(ticket_id, job)

        task = asyncio.create_task(run(), name=f"{mode.value}-{ticket_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Job task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Job task %s raised", task.get_name(), exc_info=exc)

    async def wait_idle(self, check_interval: float = 5.0, timeout: float | None = None) -> bool:
        """Poll until no job task is running. Returns False if ``timeout`` ran out first."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._tasks:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            logger.info("%d job(s) still running...", len(self._tasks))
            delay = check_interval
            if deadline is not None:
                delay = min(delay, max(0.0, deadline - time.monotonic()))
            await asyncio.wait(set(self._tasks), timeout=delay)
        return True

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
