"""CLI entry point for ticket-to-pr."""

import asyncio
import json
import logging
import os
import sys

import click

from ticket_to_pr.config import Config, get_config
from ticket_to_pr.core.execute import ExecuteRunner
from ticket_to_pr.core.poller import PollLoop
from ticket_to_pr.core.projects import ProjectRegistry, add_project
from ticket_to_pr.core.review import ReviewRunner
from ticket_to_pr.core.scheduler import Scheduler
from ticket_to_pr.core.shutdown import ShutdownCoordinator
from ticket_to_pr.core.workspace import WorkspaceManager
from ticket_to_pr.errors import ConfigurationError
from ticket_to_pr.integrations.claude import ClaudeRuntime
from ticket_to_pr.integrations.notion import NotionBoard
from ticket_to_pr.integrations.slack import SlackNotifier


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def build_poll_loop(
    config: Config,
    board=None,
    runtime=None,
    dry_run: bool = False,
    once: bool = False,
) -> PollLoop:
    """Wire the orchestrator from a config. ``board``/``runtime`` override the real clients."""
    if board is None:
        board = NotionBoard(config.notion_token, config.notion_database_id, config.columns)
    if runtime is None:
        runtime = ClaudeRuntime(config.claude_bin)

    projects = ProjectRegistry(config.projects_path)
    scheduler = Scheduler(config.max_concurrent)
    shutdown = ShutdownCoordinator(
        scheduler, timeout=config.shutdown_timeout, check_interval=config.drain_check_interval
    )
    notifier = SlackNotifier(config.slack_bot_token, config.slack_channel)
    return PollLoop(
        config,
        board,
        projects,
        scheduler,
        review_runner=ReviewRunner(config, board, runtime),
        execute_runner=ExecuteRunner(
            config, board, runtime, projects, WorkspaceManager(config.worktree_dir)
        ),
        shutdown=shutdown,
        notifier=notifier if notifier.enabled else None,
        dry_run=dry_run,
        once=once,
    )


async def _serve(loop: PollLoop) -> None:
    loop.shutdown.install_signal_handlers()
    await loop.run()


@click.group()
def main():
    """ticket-to-pr - turn board tickets into reviewed specs and pull requests"""
    pass


@main.command("run")
@click.option("--once", is_flag=True, help="Run one poll cycle, wait for its jobs, then exit")
@click.option("--dry-run", is_flag=True, help="Poll and log what would run, without running agents")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def run_command(once, dry_run, verbose):
    """Poll the board and dispatch review/execute jobs."""
    _configure_logging(verbose)
    try:
        config = get_config()
        config.validate()
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    loop = build_poll_loop(config, dry_run=dry_run, once=once)
    names = loop.projects.get_project_names()
    logging.getLogger(__name__).info(
        "Projects: %s | review budget $%.2f, execute budget $%.2f",
        ", ".join(names) or "(none)", config.review_budget_usd, config.execute_budget_usd,
    )
    asyncio.run(_serve(loop))


# ── Project Commands ──────────────────────────────────────────────────────────


@main.group("projects")
def projects_group():
    """Manage the project registry (projects.json)."""
    pass


@projects_group.command("list")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def projects_list(json_output):
    """List registered projects."""
    config = get_config()
    registry = ProjectRegistry(config.projects_path)
    names = registry.get_project_names()

    if json_output:
        click.echo(json.dumps([_project_dict(registry.get_project(n)) for n in names], indent=2))
        return

    if not names:
        click.echo(f"No projects configured in {config.projects_path}")
        return

    for name in names:
        project = registry.get_project(name)
        click.echo(f"  {name}: {project.directory}")
        if project.build_command:
            click.echo(f"    Build: {project.build_command}")
        if project.base_branch:
            click.echo(f"    Base branch: {project.base_branch}")
        if project.blocked_files:
            click.echo(f"    Blocked: {', '.join(project.blocked_files)}")
        if project.skip_pr:
            click.echo("    PRs: skipped")
        if project.dev_access:
            click.echo("    Dev access: enabled")


@projects_group.command("add")
@click.argument("name")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--build-cmd", default=None, help="Command that must pass before a push")
def projects_add(name, directory, build_cmd):
    """Register a project NAME at DIRECTORY."""
    config = get_config()
    directory = os.path.abspath(directory)
    add_project(config.projects_path, name, directory, build_cmd)
    click.echo(f"Project registered: {name}")
    click.echo(f"  Directory: {directory}")
    if build_cmd:
        click.echo(f"  Build: {build_cmd}")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _project_dict(project) -> dict:
    return {
        "name": project.name,
        "directory": project.directory,
        "build_command": project.build_command,
        "base_branch": project.base_branch,
        "blocked_files": project.blocked_files,
        "skip_pr": project.skip_pr,
        "dev_access": project.dev_access,
    }


if __name__ == "__main__":
    main()
