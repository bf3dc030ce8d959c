"""Async git subprocess wrappers for workspace and branch operations."""

import asyncio
from pathlib import Path


class GitError(Exception):
    """Raised when a git command fails."""


async def run_git(args: list[str], cwd: str | Path | None = None, strip: bool = True) -> str:
    """Run a git command and return stdout. Raises GitError on failure."""
    cmd = ["git"] + args
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise GitError(f"git {' '.join(args)} failed: {stderr.decode(errors='replace').strip()}")
    output = stdout.decode(errors="replace")
    return output.strip() if strip else output.rstrip("\n\0")


async def worktree_add(
    repo_path: str | Path,
    worktree_path: str | Path,
    branch: str,
    start_point: str | None = None,
    create_branch: bool = True,
) -> str:
    """Create a new git worktree, optionally on a new branch."""
    args = ["worktree", "add"]
    if create_branch:
        args += ["-b", branch, str(worktree_path)]
        if start_point:
            args.append(start_point)
    else:
        args += [str(worktree_path), branch]
    return await run_git(args, cwd=repo_path)


async def worktree_remove(repo_path: str | Path, worktree_path: str | Path, force: bool = False) -> str:
    """Remove a git worktree."""
    args = ["worktree", "remove", str(worktree_path)]
    if force:
        args.append("--force")
    return await run_git(args, cwd=repo_path)


async def worktree_prune(repo_path: str | Path) -> str:
    return await run_git(["worktree", "prune"], cwd=repo_path)


async def branch_exists(repo_path: str | Path, branch: str) -> bool:
    """Check if a local branch exists."""
    try:
        await run_git(["rev-parse", "--verify", f"refs/heads/{branch}"], cwd=repo_path)
        return True
    except GitError:
        return False


async def fetch(repo_path: str | Path, branch: str, remote: str = "origin") -> str:
    return await run_git(["fetch", remote, branch], cwd=repo_path)


async def push(cwd: str | Path, branch: str, remote: str = "origin") -> str:
    """Push a branch and set its upstream."""
    return await run_git(["push", "-u", remote, branch], cwd=cwd)


async def detect_default_branch(repo_path: str | Path) -> str:
    """Resolve the repository's default branch.

    Prefers the remote HEAD symbolic ref, then a local ``main`` or ``master``,
    and falls back to ``main``.
    """
    try:
        ref = await run_git(["symbolic-ref", "refs/remotes/origin/HEAD"], cwd=repo_path)
        branch = ref.replace("refs/remotes/origin/", "")
        if branch:
            return branch
    except GitError:
        pass

    for candidate in ("main", "master"):
        if await branch_exists(repo_path, candidate):
            return candidate
    return "main"


async def changed_files(cwd: str | Path, base: str) -> list[str]:
    """Files changed on HEAD relative to ``base``, plus uncommitted and untracked ones.

    Renames are reported as a deletion of the old path and an addition of the
    new one, so both sides reach the blocked-file check.
    """
    committed = await run_git(
        ["diff", "--name-only", "--no-renames", "-z", f"{base}...HEAD"], cwd=cwd, strip=False
    )
    uncommitted = await run_git(
        ["status", "--porcelain", "-z", "--no-renames", "--untracked-files=all"],
        cwd=cwd,
        strip=False,
    )

    files = [path for path in committed.split("\0") if path]
    # Porcelain -z entries are "XY <path>", unquoted.
    for entry in uncommitted.split("\0"):
        if len(entry) >= 4:
            files.append(entry[3:])

    return list(dict.fromkeys(files))


async def commit_count(cwd: str | Path, base: str) -> int:
    output = await run_git(["rev-list", "--count", f"{base}..HEAD"], cwd=cwd)
    return int(output or 0)

