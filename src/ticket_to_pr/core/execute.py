"""Execute jobs: write-capable agent runs in an isolated workspace, gated before push."""

import asyncio
import logging
import os
import re
import signal
import time
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath

from ticket_to_pr.config import Config
from ticket_to_pr.core import audit
from ticket_to_pr.core.projects import ProjectRegistry
from ticket_to_pr.core.prompts import build_execute_prompt
from ticket_to_pr.core.workspace import WorkspaceManager
from ticket_to_pr.errors import AgentFailure, IntegrationFailure, ValidationFailure
from ticket_to_pr.integrations import git
from ticket_to_pr.integrations.claude import AgentOptions, run_session
from ticket_to_pr.integrations.github import PullRequestError, create_pull_request
from ticket_to_pr.models import ExecutionResult, Project, TicketDetails

logger = logging.getLogger(__name__)

BUILD_OUTPUT_LIMIT = 500

EXECUTE_TOOLS = [
    "Read", "Glob", "Grep", "Edit", "Write", "Task",
    "Bash(git add:*)", "Bash(git commit:*)", "Bash(git status:*)",
    "Bash(git diff:*)", "Bash(git log:*)",
    "Bash(npm run build:*)", "Bash(npm test:*)", "Bash(npx tsc:*)",
    "Bash(make:*)", "Bash(pytest:*)", "Bash(cargo build:*)", "Bash(cargo test:*)",
    "Bash(go build:*)", "Bash(go test:*)",
]

# Only for projects that opt in with "devAccess": local servers and loopback HTTP.
DEV_ACCESS_TOOLS = [
    "Bash(npm run dev:*)", "Bash(npm start:*)", "Bash(node:*)",
    "Bash(python:*)", "Bash(python3:*)",
    "Bash(curl http://localhost:*)", "Bash(curl http://127.0.0.1:*)",
]

EXECUTE_BLOCKED_TOOLS = [
    "WebFetch", "WebSearch",
    "Bash(git push:*)", "Bash(git reset --hard:*)", "Bash(git checkout:*)",
    "Bash(git branch -D:*)", "Bash(rm -rf:*)", "Bash(sudo:*)",
]


def branch_name(ticket: TicketDetails, prefix: str = "notion") -> str:
    """``<prefix>/<short-id>/<title-slug>``."""
    short_id = ticket.id.replace("-", "")[:8]
    slug = re.sub(r"[^a-z0-9]+", "-", ticket.title.lower()).strip("-")[:40].strip("-")
    return f"{prefix}/{short_id}/{slug or 'ticket'}"


def matches_pattern(path: str, pattern: str) -> bool:
    pattern = pattern.removeprefix("./")
    if pattern.endswith("/"):
        return path.startswith(pattern)
    if "/" not in pattern:
        return fnmatch(PurePosixPath(path).name, pattern) or fnmatch(path, pattern)
    return fnmatch(path, pattern) or fnmatch(path, pattern.replace("**/", ""))


def find_blocked_changes(files: list[str], patterns: list[str]) -> list[str]:
    """Changed paths that match any blocked-file pattern."""
    return [f for f in files if any(matches_pattern(f, p) for p in patterns)]


async def run_build(command: str, cwd: str | Path, timeout: float) -> tuple[int, str]:
    """Run a shell build command; returns (exit code, combined output)."""
    proc = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        start_new_session=True,
    )
    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await proc.wait()
        raise ValidationFailure(
            f"Build validation timed out after {timeout:.0f}s: `{command}`"
        ) from None
    return proc.returncode, stdout.decode(errors="replace")


def build_pr_body(ticket: TicketDetails, cost: float) -> str:
    page_url = f"https://www.notion.so/{ticket.id.replace('-', '')}"
    return "\n".join([
        "## Summary",
        "",
        ticket.spec or ticket.description or "_No spec_",
        "",
        "## Impact",
        "",
        ticket.impact or "_No impact analysis_",
        "",
        "## Ticket",
        "",
        f"[View ticket]({page_url})",
        "",
        "---",
        f"Cost: {audit.format_cost(cost)} | Review: Ease {audit.extract_score(ticket.impact, 'ease')}/10, "
        f"Confidence {audit.extract_score(ticket.impact, 'confidence')}/10",
    ])


class ExecuteRunner:
    def __init__(
        self,
        config: Config,
        board,
        runtime,
        projects: ProjectRegistry,
        workspaces: WorkspaceManager | None = None,
    ):
        self.config = config
        self.board = board
        self.runtime = runtime
        self.projects = projects
        self.workspaces = workspaces or WorkspaceManager(config.worktree_dir)

    def agent_options(self, ticket: TicketDetails, project: Project, workspace: Path) -> AgentOptions:
        tools = list(EXECUTE_TOOLS)
        if project.build_command:
            tools.append(f"Bash({project.build_command}:*)")
        if project.dev_access:
            tools += DEV_ACCESS_TOOLS
        return AgentOptions(
            prompt=build_execute_prompt(ticket, project.blocked_files, project.build_command),
            model=self.config.execute_model,
            cwd=workspace,
            allowed_tools=tools,
            disallowed_tools=list(EXECUTE_BLOCKED_TOOLS),
            max_turns=self.config.execute_max_turns,
            max_budget_usd=self.config.execute_budget_usd,
            permission_mode="acceptEdits",
        )

    async def run(self, ticket: TicketDetails, project: Project) -> ExecutionResult:
        """Implement a ticket on a fresh branch and push it once every gate passes.

        The workspace is removed on every path out of this method. Nothing is
        pushed unless the agent succeeded, the build passed and no blocked file
        was touched.
        """
        started = time.monotonic()
        cost = 0.0
        branch = branch_name(ticket, self.config.branch_prefix)
        workspace = self.workspaces.workspace_path(project.directory, branch)
        logger.info("Starting execution for %r on branch %s", ticket.title, branch)

        try:
            await self.board.move_status(ticket.id, self.config.columns.in_progress)

            base = await self.projects.get_base_branch(project.name)
            start_point = await self._fresh_start_point(project.directory, base)
            await self.workspaces.create(project.directory, branch, workspace, start_point)

            outcome = await run_session(self.runtime, self.agent_options(ticket, project, workspace))
            cost = outcome.cost
            if not outcome.result.is_success:
                raise AgentFailure(f"Execute agent failed: {outcome.result.subtype}")

            files = await git.changed_files(workspace, start_point)
            commits = await git.commit_count(workspace, start_point)
            logger.info("Branch %s: %d commit(s), %d file(s) changed", branch, commits, len(files))
            if commits == 0:
                logger.warning("Agent made no commits on %s", branch)

            if project.build_command:
                await self._validate_build(project.build_command, workspace)
            self._validate_guardrails(files, project.blocked_files)

            logger.info("Pushing %s", branch)
            try:
                await git.push(workspace, branch)
            except git.GitError as e:
                raise IntegrationFailure(f"Push failed for {branch}: {e}") from e

            pr_url = None
            if project.skip_pr:
                logger.info("Skipping PR for %s (skipPR set)", project.name)
            else:
                pr_url = await self._open_pull_request(ticket, workspace, base, branch, cost)

            await self.board.write_execution_results(ticket.id, branch, cost, pr_url)
            await self.board.move_status(ticket.id, self.config.columns.done)
        except Exception as e:
            await self.board.add_comment(
                ticket.id,
                audit.failure_comment("execution", str(e), cost, time.monotonic() - started),
            )
            raise
        finally:
            await self.workspaces.remove(project.directory, workspace)

        duration = time.monotonic() - started
        await self.board.add_comment(
            ticket.id,
            audit.execute_comment(branch, commits, len(files), cost, duration, pr_url),
        )
        logger.info(
            "Execution done for %r: branch=%s cost=%s%s",
            ticket.title,
            branch,
            audit.format_cost(cost),
            f" pr={pr_url}" if pr_url else "",
        )
        return ExecutionResult(branch=branch, cost=cost, pr_url=pr_url)

    async def _fresh_start_point(self, project_dir: str, base: str) -> str:
        try:
            await git.fetch(project_dir, base)
            return f"origin/{base}"
        except git.GitError as e:
            logger.warning("Could not fetch %s from origin, using local branch: %s", base, e)
            return base

    async def _validate_build(self, command: str, workspace: Path) -> None:
        logger.info("Validating build: %s", command)
        returncode, output = await run_build(command, workspace, self.config.build_timeout)
        if returncode != 0:
            tail = output.strip()[-BUILD_OUTPUT_LIMIT:]
            raise ValidationFailure(
                f"Build validation failed: `{command}` exited with code {returncode}\n{tail}",
                output=tail,
            )
        logger.info("Build passed")

    def _validate_guardrails(self, files: list[str], patterns: list[str]) -> None:
        if not patterns:
            return
        blocked = find_blocked_changes(files, patterns)
        if blocked:
            raise ValidationFailure(
                f"Guardrail violation: agent modified blocked files: {', '.join(blocked)}",
                output="\n".join(blocked),
            )

    async def _open_pull_request(
        self, ticket: TicketDetails, workspace: Path, base: str, branch: str, cost: float
    ) -> str | None:
        """Open a PR; a failure here is logged and does not fail the job."""
        try:
            pr_url = await create_pull_request(
                workspace,
                title=ticket.title,
                body=build_pr_body(ticket, cost),
                base=base,
                head=branch,
                timeout=self.config.pr_timeout,
            )
        except PullRequestError as e:
            logger.warning("Failed to create PR for %s: %s", branch, e)
            return None
        logger.info("Created PR %s", pr_url)
        return pr_url or None
