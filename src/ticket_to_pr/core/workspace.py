"""Ephemeral git worktrees for execute jobs."""

import asyncio
import logging
import re
import shutil
from pathlib import Path

from ticket_to_pr.integrations.git import (
    GitError,
    worktree_add,
    worktree_prune,
    worktree_remove,
)

logger = logging.getLogger(__name__)


def sanitize_branch(branch: str) -> str:
    """Turn a branch name into a single path component."""
    name = re.sub(r"[^A-Za-z0-9._-]+", "-", branch)
    return name.strip("-.") or "workspace"


def ensure_ignored(project_dir: str | Path, entry: str = ".worktrees") -> None:
    """Add ``<entry>/`` to the project's .gitignore unless already listed."""
    gitignore = Path(project_dir) / ".gitignore"
    try:
        content = gitignore.read_text() if gitignore.exists() else ""
        lines = {line.strip() for line in content.splitlines()}
        if entry in lines or f"{entry}/" in lines:
            return
        separator = "\n" if content and not content.endswith("\n") else ""
        gitignore.write_text(f"{content}{separator}{entry}/\n")
    except OSError:
        logger.warning("Could not update %s", gitignore, exc_info=True)


class WorkspaceManager:
    """Creates and removes branch-scoped worktrees under ``<project>/<container>/``.

    The project's primary checkout is never switched or edited; every change
    an agent makes lands in the worktree.
    """

    def __init__(self, container: str = ".worktrees"):
        self.container = container

    def workspace_path(self, project_dir: str | Path, branch: str) -> Path:
        return Path(project_dir) / self.container / sanitize_branch(branch)

    async def create(
        self,
        project_dir: str | Path,
        branch: str,
        workspace_dir: str | Path,
        base_branch: str | None = None,
    ) -> Path:
        """Create ``workspace_dir`` checked out on a new ``branch`` from ``base_branch``.

        A leftover worktree at the same path (from a crashed run) is removed
        first. If the branch already exists, the worktree attaches to it.
        """
        project_dir = Path(project_dir)
        workspace_dir = Path(workspace_dir)
        (project_dir / self.container).mkdir(parents=True, exist_ok=True)
        ensure_ignored(project_dir, self.container)

        if workspace_dir.exists():
            logger.warning("Removing stale workspace %s", workspace_dir)
            await self.remove(project_dir, workspace_dir)

        try:
            await worktree_add(project_dir, workspace_dir, branch, start_point=base_branch)
        except GitError as first_error:
            logger.info("Branch %s may already exist, attaching: %s", branch, first_error)
            try:
                await worktree_add(project_dir, workspace_dir, branch, create_branch=False)
            except GitError as e:
                raise GitError(f"Failed to create workspace for branch {branch}: {e}") from e

        logger.info("Created workspace %s on %s", workspace_dir, branch)
        return workspace_dir

    async def remove(self, project_dir: str | Path, workspace_dir: str | Path) -> None:
        """Remove a workspace. Never raises; safe to call on a missing path."""
        try:
            await worktree_remove(project_dir, workspace_dir, force=True)
            return
        except (GitError, OSError) as e:
            logger.debug("git worktree remove failed for %s: %s", workspace_dir, e)

        try:
            await asyncio.to_thread(shutil.rmtree, workspace_dir, ignore_errors=True)
        except Exception:
            logger.warning("Could not delete %s", workspace_dir, exc_info=True)
        try:
            await worktree_prune(project_dir)
        except (GitError, OSError) as e:
            logger.debug("git worktree prune failed in %s: %s", project_dir, e)
