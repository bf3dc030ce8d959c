"""The poll loop: discover tickets, admit them, and hand them to job runners."""

import asyncio
import enum
import logging

from ticket_to_pr.config import Config
from ticket_to_pr.core import audit
from ticket_to_pr.core.execute import ExecuteRunner
from ticket_to_pr.core.projects import ProjectRegistry
from ticket_to_pr.core.review import ReviewRunner
from ticket_to_pr.core.scheduler import Scheduler
from ticket_to_pr.core.shutdown import ShutdownCoordinator
from ticket_to_pr.errors import InfrastructureFailure
from ticket_to_pr.models import JobMode, Project, TicketDetails

logger = logging.getLogger(__name__)


class LoopState(str, enum.Enum):
    IDLE = "idle"
    POLLING = "polling"
    SHUTTING_DOWN = "shutting_down"


class PollLoop:
    def __init__(
        self,
        config: Config,
        board,
        projects: ProjectRegistry,
        scheduler: Scheduler,
        review_runner: ReviewRunner,
        execute_runner: ExecuteRunner,
        shutdown: ShutdownCoordinator,
        notifier=None,
        dry_run: bool = False,
        once: bool = False,
    ):
        self.config = config
        self.board = board
        self.projects = projects
        self.scheduler = scheduler
        self.review_runner = review_runner
        self.execute_runner = execute_runner
        self.shutdown = shutdown
        self.notifier = notifier
        self.dry_run = dry_run
        self.once = once
        self.state = LoopState.IDLE

    async def poll_once(self) -> list[asyncio.Task]:
        """Run one poll cycle and return the tasks of the jobs it dispatched."""
        if self.shutdown.requested:
            return []

        self.state = LoopState.POLLING
        try:
            return await self._poll()
        except InfrastructureFailure as e:
            logger.error("Error during poll, skipping cycle: %s", e)
            return []
        finally:
            self.state = LoopState.SHUTTING_DOWN if self.shutdown.requested else LoopState.IDLE

    async def _poll(self) -> list[asyncio.Task]:
        logger.info("Checking board...%s", " (dry-run)" if self.dry_run else "")
        self.scheduler.registry.reap_stale(self.config.stale_lock_seconds)

        columns = self.config.columns
        try:
            review, execute = await asyncio.gather(
                self.board.fetch_tickets_by_status(columns.review),
                self.board.fetch_tickets_by_status(columns.execute),
            )
        except Exception as e:
            raise InfrastructureFailure(f"Could not fetch tickets: {e}") from e

        registry = self.scheduler.registry
        pending_review = [t for t in review if t.id not in registry]
        pending_execute = [t for t in execute if t.id not in registry]

        if pending_review:
            logger.info("Found %d ticket(s) to review", len(pending_review))
        if pending_execute:
            logger.info("Found %d ticket(s) to execute", len(pending_execute))
        if not pending_review and not pending_execute:
            logger.info("No tickets to process")

        if self.dry_run:
            return []

        admitted = self.scheduler.admit(pending_review, pending_execute)
        skipped = len(pending_review) + len(pending_execute) - len(admitted)
        if skipped:
            logger.info(
                "%d ticket(s) waiting for a free slot (%d/%d in flight)",
                skipped, self.scheduler.in_flight, self.scheduler.max_concurrent,
            )

        tasks = []
        for mode, ticket in admitted:
            if self.shutdown.requested:
                break
            try:
                details = await self.board.fetch_ticket_details(ticket.id)
            except Exception:
                logger.exception("Could not fetch details for %s, retrying next cycle", ticket.id)
                continue

            project = self.projects.get_project(details.project)
            if project is None:
                await self._reject_unknown_project(details)
                continue

            task = self.scheduler.dispatch(
                details.id, mode, lambda m=mode, d=details, p=project: self._run_job(m, d, p)
            )
            if task is not None:
                tasks.append(task)
        return tasks

    async def _reject_unknown_project(self, ticket: TicketDetails) -> None:
        known = ", ".join(self.projects.get_project_names()) or "(none)"
        message = f'Unknown project: "{ticket.project}". Known projects: {known}'
        logger.error("%s (ticket %r)", message, ticket.title)
        try:
            await self.board.write_failure(ticket.id, message)
        except Exception:
            logger.exception("Failed to write failure for %s", ticket.id)

    async def _run_job(self, mode: JobMode, ticket: TicketDetails, project: Project) -> None:
        """Run one job. Every error ends up on the ticket, never in the loop."""
        detail = None
        succeeded = False
        try:
            if mode is JobMode.REVIEW:
                results = await self.review_runner.run(ticket, project)
                detail = f"Ease {results.ease_score}/10, confidence {results.confidence_score}/10"
            else:
                result = await self.execute_runner.run(ticket, project)
                detail = result.pr_url or f"Branch {result.branch}"
            succeeded = True
        except Exception as e:
            detail = audit.truncate(str(e))
            logger.error("%s failed for %r: %s", mode.value, ticket.title, e)
            try:
                await self.board.write_failure(ticket.id, detail)
            except Exception:
                logger.exception("Failed to write failure for %s", ticket.id)

        if self.notifier is not None:
            await self.notifier.notify(ticket.title, mode.value, succeeded, detail)

    async def run(self) -> None:
        """Poll until shutdown; in one-shot mode, drain the first cycle and return."""
        logger.info(
            "Poll interval %.0fs, max %d concurrent job(s)",
            self.config.poll_interval, self.config.max_concurrent,
        )
        if self.dry_run:
            logger.info("Dry-run mode: polling only, no agents will run")

        await self.poll_once()

        if self.once:
            if await self._wait_first_cycle():
                logger.info("One-shot complete")
                return
            self.state = LoopState.SHUTTING_DOWN
            await self.shutdown.drain()
            return

        while not self.shutdown.requested:
            if await self.shutdown.wait(self.config.poll_interval):
                break
            await self.poll_once()

        self.state = LoopState.SHUTTING_DOWN
        await self.shutdown.drain()

    async def _wait_first_cycle(self) -> bool:
        """Wait for dispatched jobs to finish; returns False if shutdown came first."""
        idle = asyncio.create_task(self.scheduler.wait_idle(self.config.drain_check_interval))
        stop = asyncio.create_task(self.shutdown.wait(None))
        try:
            await asyncio.wait({idle, stop}, return_when=asyncio.FIRST_COMPLETED)
            return idle.done() and not self.shutdown.requested
        finally:
            for waiter in (idle, stop):
                waiter.cancel()
            await asyncio.gather(idle, stop, return_exceptions=True)
