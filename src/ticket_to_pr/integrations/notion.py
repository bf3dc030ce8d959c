"""Notion database as the ticket board."""

import logging

from notion_client import APIResponseError, AsyncClient
from notion_client.helpers import async_collect_paginated_api

from ticket_to_pr.config import Columns
from ticket_to_pr.models import ReviewOutput, Ticket, TicketDetails

logger = logging.getLogger(__name__)

RICH_TEXT_LIMIT = 2000


class NotionError(Exception):
    """Raised when a Notion request fails."""


# ── Property helpers ─────────────────────────────────────────────────────────


def plain_text(rich_text: list[dict] | None) -> str:
    return "".join(part.get("plain_text", "") for part in rich_text or [])


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _rich_text_value(text: str) -> dict:
    return {"rich_text": [{"text": {"content": truncate(text, RICH_TEXT_LIMIT)}}]}


def extract_title(page: dict) -> str:
    props = page.get("properties", {})
    prop = props.get("Name") or props.get("Title") or {}
    return plain_text(prop.get("title"))


def extract_rich_text(page: dict, name: str) -> str:
    prop = page.get("properties", {}).get(name) or {}
    return plain_text(prop.get("rich_text"))


def extract_status(page: dict) -> str:
    prop = page.get("properties", {}).get("Status") or {}
    return (prop.get("status") or {}).get("name", "")


def extract_project(page: dict) -> str:
    """Project may be a select or a rich-text property."""
    prop = page.get("properties", {}).get("Project") or {}
    if prop.get("type") == "select":
        return (prop.get("select") or {}).get("name", "")
    if prop.get("type") == "rich_text":
        return plain_text(prop.get("rich_text"))
    return ""


def page_to_ticket(page: dict) -> Ticket:
    return Ticket(
        id=page["id"],
        title=extract_title(page),
        project=extract_project(page),
        status=extract_status(page),
    )


def block_to_markdown(block: dict) -> str:
    kind = block.get("type", "")
    data = block.get(kind) or {}
    text = plain_text(data.get("rich_text"))

    if kind == "heading_1":
        return f"# {text}"
    if kind == "heading_2":
        return f"## {text}"
    if kind == "heading_3":
        return f"### {text}"
    if kind == "bulleted_list_item":
        return f"- {text}"
    if kind == "numbered_list_item":
        return f"1. {text}"
    if kind == "to_do":
        mark = "x" if data.get("checked") else " "
        return f"- [{mark}] {text}"
    if kind == "code":
        return f"```{data.get('language', '')}\n{text}\n```"
    if kind == "quote":
        return f"> {text}"
    if kind == "divider":
        return "---"
    return text


def format_impact(results: ReviewOutput) -> str:
    impact = f"{results.impact_report}\n\nFiles: {', '.join(results.affected_files)}"
    if results.risks:
        impact += f"\n\nRisks: {results.risks}"
    return impact


# ── Board ────────────────────────────────────────────────────────────────────


class NotionBoard:
    """Reads and updates tickets stored as pages of one Notion database."""

    def __init__(
        self,
        token: str,
        database_id: str,
        columns: Columns | None = None,
        client: AsyncClient | None = None,
    ):
        self.database_id = database_id
        self.columns = columns or Columns()
        self.client = client or AsyncClient(auth=token)

    async def fetch_tickets_by_status(self, status: str) -> list[Ticket]:
        """Fetch all tickets in a board column, in the API's order."""
        try:
            pages = await async_collect_paginated_api(
                self.client.databases.query,
                database_id=self.database_id,
                filter={"property": "Status", "status": {"equals": status}},
            )
        except APIResponseError as e:
            raise NotionError(f"Query for status {status!r} failed: {e}") from e
        return [page_to_ticket(p) for p in pages if "properties" in p]

    async def fetch_ticket_details(self, page_id: str) -> TicketDetails:
        """Read a ticket's properties and render its body blocks as markdown."""
        try:
            page = await self.client.pages.retrieve(page_id=page_id)
            blocks = await async_collect_paginated_api(
                self.client.blocks.children.list, block_id=page_id
            )
        except APIResponseError as e:
            raise NotionError(f"Fetching ticket {page_id} failed: {e}") from e

        body = "\n\n".join(
            text for text in (block_to_markdown(b) for b in blocks if "type" in b) if text
        )
        ticket = page_to_ticket(page)
        return TicketDetails(
            id=ticket.id,
            title=ticket.title,
            project=ticket.project,
            status=ticket.status,
            description=extract_rich_text(page, "Description"),
            body=body,
            spec=extract_rich_text(page, "Spec") or None,
            impact=extract_rich_text(page, "Impact") or None,
        )

    async def write_review_results(self, page_id: str, results: ReviewOutput) -> None:
        properties = {
            "Ease": {"number": results.ease_score},
            "Confidence": {"number": results.confidence_score},
            "Spec": _rich_text_value(results.spec),
            "Impact": _rich_text_value(format_impact(results)),
        }
        try:
            await self.client.pages.update(page_id=page_id, properties=properties)
        except APIResponseError as e:
            # Older boards predate the Confidence column.
            if "Confidence" not in str(e):
                raise NotionError(f"Writing review results failed: {e}") from e
            logger.warning("Board has no Confidence property; writing review without it")
            del properties["Confidence"]
            await self._update(page_id, properties)

    async def write_execution_results(
        self, page_id: str, branch: str, cost: float, pr_url: str | None = None
    ) -> None:
        properties = {
            "Branch": _rich_text_value(branch),
            "Cost": _rich_text_value(f"${cost:.2f}"),
        }
        if pr_url:
            properties["PR URL"] = {"url": pr_url}
        await self._update(page_id, properties)

    async def move_status(self, page_id: str, status: str) -> None:
        await self._update(page_id, {"Status": {"status": {"name": status}}})

    async def write_failure(self, page_id: str, error: str) -> None:
        """Move the ticket to Failed and record the error text."""
        await self._update(
            page_id,
            {
                "Status": {"status": {"name": self.columns.failed}},
                "Impact": _rich_text_value(f"ERROR: {error}"),
            },
        )

    async def add_comment(self, page_id: str, text: str) -> None:
        """Add an audit comment. Never raises."""
        try:
            await self.client.comments.create(
                parent={"page_id": page_id},
                rich_text=[{"text": {"content": truncate(text, RICH_TEXT_LIMIT)}}],
            )
        except Exception:
            logger.warning("Failed to add comment to %s", page_id, exc_info=True)

    async def _update(self, page_id: str, properties: dict) -> None:
        try:
            await self.client.pages.update(page_id=page_id, properties=properties)
        except APIResponseError as e:
            raise NotionError(f"Updating ticket {page_id} failed: {e}") from e
