"""Prompt construction for review and execute agents."""

from ticket_to_pr.models import TicketDetails

REVIEW_INSTRUCTIONS = """\
# Ticket Review

You are reviewing a ticket before any code is written. Explore the repository
in your working directory with read-only tools and assess the work.

Produce:
- easeScore: 1 (very hard) to 10 (trivial)
- confidenceScore: 1 (guesswork) to 10 (certain the spec is right)
- spec: a concrete implementation plan a developer could follow
- impactReport: what the change touches and what could break
- affectedFiles: repository-relative paths you expect to change
- risks: anything that could go wrong (optional)

Do not modify any files. End your reply with a single fenced ```json block
holding exactly these fields."""

EXECUTE_INSTRUCTIONS = """\
# Ticket Execution

You are implementing a ticket in an isolated git worktree that is already
checked out on a fresh branch. Make the change described below.

- Keep the change focused on the ticket; do not refactor unrelated code.
- Follow the conventions of the surrounding code.
- Run the project's build and tests if you can.
- Commit your work with clear messages using `git add` and `git commit`.
- Do not push, switch branches, or rewrite history; that is handled for you."""


def build_review_prompt(ticket: TicketDetails) -> str:
    parts = [REVIEW_INSTRUCTIONS, ""]
    parts.append("## Ticket")
    parts.append(f"**Title**: {ticket.title}")
    parts.append("")
    parts.append("**Description**:")
    parts.append(ticket.description or "(no description)")
    parts.append("")
    parts.append("**Page Content**:")
    parts.append(ticket.body or "(empty)")
    return "\n".join(parts)


def build_execute_prompt(
    ticket: TicketDetails,
    blocked_files: list[str] | None = None,
    build_command: str | None = None,
) -> str:
    parts = [EXECUTE_INSTRUCTIONS]

    if build_command:
        parts.append(
            f"\nThe build is validated after you finish with `{build_command}`. "
            "Changes that fail it are discarded."
        )

    if blocked_files:
        parts.append("\n## Protected Files")
        parts.append(
            "You must NOT create, modify, or delete any file matching these patterns. "
            "The job is rejected if you do:"
        )
        parts.extend(f"- `{pattern}`" for pattern in blocked_files)

    parts.append("\n## Ticket")
    parts.append(f"**Title**: {ticket.title}")
    parts.append("")
    parts.append("**Description**:")
    parts.append(ticket.description or "(no description)")
    parts.append("")
    parts.append("**Spec**:")
    parts.append(ticket.spec or "(no spec provided)")
    parts.append("")
    parts.append("**Impact Analysis**:")
    parts.append(ticket.impact or "(no impact analysis provided)")
    parts.append("")
    parts.append("**Page Content**:")
    parts.append(ticket.body or "(empty)")
    return "\n".join(parts)
