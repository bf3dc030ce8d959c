"""Review jobs: read-only agent runs that score and spec a ticket."""

import logging
import time

from ticket_to_pr.config import Config
from ticket_to_pr.core import audit
from ticket_to_pr.core.parsing import (
    REVIEW_OUTPUT_SCHEMA,
    extract_review_result,
    normalize_review_output,
    scrape_json_from_text,
)
from ticket_to_pr.core.prompts import build_review_prompt
from ticket_to_pr.errors import AgentFailure
from ticket_to_pr.integrations.claude import AgentOptions, run_session
from ticket_to_pr.models import Project, ReviewOutput, TicketDetails

logger = logging.getLogger(__name__)

REVIEW_TOOLS = ["Read", "Glob", "Grep", "Task"]
REVIEW_BLOCKED_TOOLS = ["Write", "Edit", "NotebookEdit", "Bash", "WebFetch", "WebSearch"]


class ReviewRunner:
    def __init__(self, config: Config, board, runtime):
        self.config = config
        self.board = board
        self.runtime = runtime

    def agent_options(self, ticket: TicketDetails, project: Project) -> AgentOptions:
        return AgentOptions(
            prompt=build_review_prompt(ticket),
            model=self.config.review_model,
            cwd=project.directory,
            allowed_tools=list(REVIEW_TOOLS),
            disallowed_tools=list(REVIEW_BLOCKED_TOOLS),
            max_turns=self.config.review_max_turns,
            max_budget_usd=self.config.review_budget_usd,
            output_schema=REVIEW_OUTPUT_SCHEMA,
        )

    async def run(self, ticket: TicketDetails, project: Project) -> ReviewOutput:
        """Review a ticket and write scores and spec back to the board."""
        started = time.monotonic()
        cost = 0.0
        logger.info("Starting review for %r in %s", ticket.title, project.name)

        try:
            outcome = await run_session(self.runtime, self.agent_options(ticket, project))
            cost = outcome.cost
            result = outcome.result
            remediation = (
                "Try simplifying the ticket or raising TTPR_REVIEW_MAX_TURNS "
                f"(currently {self.config.review_max_turns})"
            )

            if result.subtype == "error_max_turns":
                raise AgentFailure(
                    "Review agent ran out of turns before producing a result", remediation
                )
            if not result.is_success:
                raise AgentFailure(f"Review agent failed: {result.subtype}")

            extracted = extract_review_result(result.structured_output, result.result)
            if extracted is None and outcome.last_text:
                extracted = scrape_json_from_text(outcome.last_text)
            if extracted is None:
                raise AgentFailure("Review agent did not produce a parseable result", remediation)
            if not extracted.trusted:
                logger.warning(
                    "Review for %r parsed from free text (%s)", ticket.title, extracted.source.value
                )

            results = normalize_review_output(extracted.data)
            await self.board.write_review_results(ticket.id, results)
            await self.board.move_status(ticket.id, self.config.columns.scored)
        except Exception as e:
            await self.board.add_comment(
                ticket.id,
                audit.failure_comment("review", str(e), cost, time.monotonic() - started),
            )
            raise

        duration = time.monotonic() - started
        await self.board.add_comment(ticket.id, audit.review_comment(results, cost, duration))
        logger.info(
            "Review done for %r: ease=%d confidence=%d cost=%s",
            ticket.title,
            results.ease_score,
            results.confidence_score,
            audit.format_cost(cost),
        )
        return results
