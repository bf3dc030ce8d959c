"""Data models for ticket orchestration."""

import enum
import time
from dataclasses import dataclass, field


class JobMode(str, enum.Enum):
    REVIEW = "review"
    EXECUTE = "execute"


@dataclass
class Ticket:
    id: str
    title: str
    project: str = ""
    status: str = ""


@dataclass
class TicketDetails(Ticket):
    description: str = ""
    body: str = ""
    spec: str | None = None
    impact: str | None = None


@dataclass
class Project:
    name: str
    directory: str
    build_command: str | None = None
    base_branch: str | None = None
    blocked_files: list[str] = field(default_factory=list)
    skip_pr: bool = False
    dev_access: bool = False


@dataclass
class Job:
    ticket_id: str
    mode: JobMode
    started_at: float = field(default_factory=time.monotonic)


@dataclass
class ReviewOutput:
    ease_score: int
    confidence_score: int
    spec: str
    impact_report: str
    affected_files: list[str] = field(default_factory=list)
    risks: str | None = None


@dataclass
class ExecutionResult:
    branch: str
    cost: float
    pr_url: str | None = None
