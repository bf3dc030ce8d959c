"""Shared fixtures: temporary git repositories and in-memory collaborators."""

import json
import os
import subprocess
import tempfile
from collections import defaultdict
from pathlib import Path

import pytest

from ticket_to_pr.config import Config
from ticket_to_pr.integrations.claude import AgentMessage
from ticket_to_pr.models import Ticket, TicketDetails

GIT_ENV = {
    **os.environ,
    "GIT_AUTHOR_NAME": "Test",
    "GIT_AUTHOR_EMAIL": "test@test.com",
    "GIT_COMMITTER_NAME": "Test",
    "GIT_COMMITTER_EMAIL": "test@test.com",
}


def git(*args, cwd):
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True, env=GIT_ENV
    )
    return result.stdout.strip()


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def git_repo(tmp_dir):
    """A repository on `main` with one commit and no remote."""
    repo = tmp_dir / "repo"
    repo.mkdir()
    git("init", cwd=repo)
    git("checkout", "-b", "main", cwd=repo)
    (repo / "README.md").write_text("# Test\n")
    git("add", ".", cwd=repo)
    git("commit", "-m", "init", cwd=repo)
    return repo


@pytest.fixture
def origin_repo(tmp_dir, git_repo):
    """A bare repository wired up as `origin` of git_repo, with `main` pushed."""
    origin = tmp_dir / "origin.git"
    git("init", "--bare", str(origin), cwd=tmp_dir)
    git("remote", "add", "origin", str(origin), cwd=git_repo)
    git("push", "-u", "origin", "main", cwd=git_repo)
    return origin


@pytest.fixture
def config(tmp_dir):
    return Config(
        notion_token="secret",
        notion_database_id="db",
        projects_path=tmp_dir / "projects.json",
        max_concurrent=3,
        poll_interval=0.01,
        drain_check_interval=0.01,
        build_timeout=30,
    )


def write_projects(path: Path, projects: dict) -> None:
    path.write_text(json.dumps({"projects": projects}))


def make_ticket(ticket_id="1111-2222-3333", title="Fix login bug", project="Alpha", **kwargs):
    return TicketDetails(id=ticket_id, title=title, project=project, **kwargs)


def result_message(subtype="success", cost=0.25, result=None, structured=None):
    return AgentMessage(
        type="result",
        subtype=subtype,
        total_cost_usd=cost,
        result=result,
        structured_output=structured,
    )


def assistant_message(text):
    return AgentMessage(type="assistant", text=text)


REVIEW_PAYLOAD = {
    "easeScore": 7,
    "confidenceScore": 8,
    "spec": "Validate the session token before redirecting.",
    "impactReport": "Touches the login handler only.",
    "affectedFiles": ["src/login.py"],
}


class FakeBoard:
    """In-memory board; a ticket's column is its entry in ``statuses``."""

    def __init__(self):
        self.tickets: dict[str, TicketDetails] = {}
        self.statuses: dict[str, str] = {}
        self.status_history = defaultdict(list)
        self.failures: dict[str, str] = {}
        self.comments = defaultdict(list)
        self.review_results = {}
        self.execution_results = {}
        self.fetch_error: Exception | None = None

    def add(self, ticket: TicketDetails, status: str) -> TicketDetails:
        self.tickets[ticket.id] = ticket
        self.statuses[ticket.id] = status
        return ticket

    async def fetch_tickets_by_status(self, status):
        if self.fetch_error:
            raise self.fetch_error
        return [
            Ticket(id=t.id, title=t.title, project=t.project, status=status)
            for t in self.tickets.values()
            if self.statuses.get(t.id) == status
        ]

    async def fetch_ticket_details(self, ticket_id):
        return self.tickets[ticket_id]

    async def write_review_results(self, ticket_id, results):
        self.review_results[ticket_id] = results

    async def write_execution_results(self, ticket_id, branch, cost, pr_url=None):
        self.execution_results[ticket_id] = {"branch": branch, "cost": cost, "pr_url": pr_url}

    async def move_status(self, ticket_id, status):
        self.statuses[ticket_id] = status
        self.status_history[ticket_id].append(status)

    async def write_failure(self, ticket_id, error):
        self.failures[ticket_id] = error
        await self.move_status(ticket_id, "Failed")

    async def add_comment(self, ticket_id, text):
        self.comments[ticket_id].append(text)


class FakeRuntime:
    """Replays canned messages; ``on_run`` can edit the workspace like an agent would."""

    def __init__(self, messages=None, on_run=None):
        self.messages = messages if messages is not None else [result_message()]
        self.on_run = on_run
        self.calls = []

    async def query(self, options):
        self.calls.append(options)
        if self.on_run:
            self.on_run(options)
        for message in self.messages:
            yield message


@pytest.fixture
def board():
    return FakeBoard()
