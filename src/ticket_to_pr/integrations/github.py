"""Pull request creation through the GitHub CLI."""

import asyncio
from pathlib import Path


class PullRequestError(Exception):
    """Raised when `gh pr create` fails or times out."""


async def create_pull_request(
    cwd: str | Path,
    title: str,
    body: str,
    base: str,
    head: str,
    timeout: float = 30.0,
) -> str:
    """Open a pull request and return its URL."""
    cmd = ["gh", "pr", "create", "--title", title, "--body", body, "--base", base, "--head", head]
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise PullRequestError("gh CLI not found on PATH") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise PullRequestError(f"gh pr create timed out after {timeout:.0f}s") from e

    if proc.returncode != 0:
        raise PullRequestError(f"gh pr create failed: {stderr.decode(errors='replace').strip()}")

    lines = stdout.decode(errors="replace").strip().splitlines()
    return lines[-1] if lines else ""
