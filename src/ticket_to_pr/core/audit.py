"""Audit comment text for the ticket trail."""

import re

from ticket_to_pr.models import ReviewOutput

ERROR_TEXT_LIMIT = 500


def truncate(text: str, limit: int = ERROR_TEXT_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes}m {seconds}s"


def format_cost(cost: float) -> str:
    return f"${cost:.2f}"


def review_comment(results: ReviewOutput, cost: float, duration: float) -> str:
    return (
        f"Review complete: ease {results.ease_score}/10, "
        f"confidence {results.confidence_score}/10, "
        f"{len(results.affected_files)} file(s) affected. "
        f"Cost {format_cost(cost)}, took {format_duration(duration)}."
    )


def execute_comment(
    branch: str,
    commits: int,
    files_changed: int,
    cost: float,
    duration: float,
    pr_url: str | None,
) -> str:
    pr = f"PR: {pr_url}" if pr_url else "No PR opened"
    return (
        f"Execution complete on branch {branch}: {commits} commit(s), "
        f"{files_changed} file(s) changed. {pr}. "
        f"Cost {format_cost(cost)}, took {format_duration(duration)}."
    )


def failure_comment(phase: str, error: str, cost: float, duration: float) -> str:
    return (
        f"Failed during {phase}: {truncate(error, 300)}\n"
        f"Cost so far {format_cost(cost)}, after {format_duration(duration)}."
    )


def extract_score(impact: str | None, name: str) -> str:
    """Pull a score such as ``Ease: 7`` out of free text; ``?`` when absent."""
    match = re.search(rf"{name}[:\s]*(\d+)", impact or "", re.IGNORECASE)
    return match.group(1) if match else "?"
