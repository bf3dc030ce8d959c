"""Claude CLI agent sessions, streamed as JSON messages."""

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path

from ticket_to_pr.errors import AgentFailure

logger = logging.getLogger(__name__)

# Lines in stream-json output can carry whole file contents.
_STREAM_LIMIT = 16 * 1024 * 1024


@dataclass
class AgentOptions:
    prompt: str
    model: str
    cwd: str | Path
    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)
    max_turns: int | None = None
    max_budget_usd: float | None = None
    permission_mode: str | None = None
    output_schema: dict | None = None


@dataclass
class AgentMessage:
    type: str
    text: str | None = None
    subtype: str | None = None
    total_cost_usd: float = 0.0
    result: str | None = None
    structured_output: dict | None = None
    raw: dict = field(default_factory=dict)

    @property
    def is_result(self) -> bool:
        return self.type == "result"

    @property
    def is_success(self) -> bool:
        return self.subtype == "success"


def build_command(options: AgentOptions, claude_bin: str = "claude") -> list[str]:
    cmd = [claude_bin, "-p", "--output-format", "stream-json", "--verbose"]
    if options.model:
        cmd += ["--model", options.model]
    if options.max_turns:
        cmd += ["--max-turns", str(options.max_turns)]
    if options.max_budget_usd:
        cmd += ["--max-budget-usd", str(options.max_budget_usd)]
    if options.permission_mode:
        cmd += ["--permission-mode", options.permission_mode]
    if options.allowed_tools:
        cmd += ["--allowedTools", ",".join(options.allowed_tools)]
    if options.disallowed_tools:
        cmd += ["--disallowedTools", ",".join(options.disallowed_tools)]
    if options.output_schema:
        cmd += ["--json-schema", json.dumps(options.output_schema)]
    return cmd


def parse_message(line: str) -> AgentMessage | None:
    """Turn one stream-json line into an AgentMessage. Non-JSON lines are ignored."""
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Skipping non-JSON agent output: %s", line[:200])
        return None
    if not isinstance(data, dict):
        return None

    msg_type = data.get("type", "")
    if msg_type == "assistant":
        content = (data.get("message") or {}).get("content")
        text = None
        if isinstance(content, list):
            texts = [b.get("text", "") for b in content if isinstance(b, dict) and b.get("type") == "text"]
            if texts:
                text = texts[-1]
        elif isinstance(content, str):
            text = content
        return AgentMessage(type=msg_type, text=text, raw=data)

    if msg_type == "result":
        structured = data.get("structured_output")
        return AgentMessage(
            type=msg_type,
            subtype=data.get("subtype"),
            total_cost_usd=float(data.get("total_cost_usd") or 0.0),
            result=data.get("result"),
            structured_output=structured if isinstance(structured, dict) else None,
            raw=data,
        )

    return AgentMessage(type=msg_type, subtype=data.get("subtype"), raw=data)


class ClaudeRuntime:
    """Runs agent sessions through the `claude` CLI in print mode."""

    def __init__(self, claude_bin: str = "claude"):
        self.claude_bin = claude_bin

    async def query(self, options: AgentOptions) -> AsyncIterator[AgentMessage]:
        cmd = build_command(options, self.claude_bin)
        env = {k: v for k, v in os.environ.items() if k != "CLAUDECODE"}

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(options.cwd),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                limit=_STREAM_LIMIT,
            )
        except FileNotFoundError as e:
            raise AgentFailure(f"Agent CLI not found: {self.claude_bin}") from e

        stdin_task = asyncio.create_task(_feed_prompt(proc.stdin, options.prompt))
        stderr_tail: list[str] = []
        stderr_task = asyncio.create_task(_drain_stderr(proc.stderr, stderr_tail))
        saw_result = False
        try:
            async for raw_line in proc.stdout:
                message = parse_message(raw_line.decode(errors="replace"))
                if message is None:
                    continue
                if message.is_result:
                    saw_result = True
                yield message
            await proc.wait()
            await stdin_task
            await stderr_task
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            for task in (stdin_task, stderr_task):
                if not task.done():
                    task.cancel()

        if not saw_result:
            detail = " | ".join(stderr_tail[-5:]) or "no output"
            raise AgentFailure(
                f"Agent exited with code {proc.returncode} without a result: {detail}"
            )


async def _feed_prompt(stream: asyncio.StreamWriter, prompt: str) -> None:
    """Send the prompt on stdin; ticket bodies can exceed the per-argument size limit."""
    try:
        stream.write(prompt.encode())
        await stream.drain()
    except (BrokenPipeError, ConnectionResetError):
        logger.debug("Agent closed stdin before reading the whole prompt")
    finally:
        stream.close()


async def _drain_stderr(stream: asyncio.StreamReader, tail: list[str]) -> None:
    async for raw_line in stream:
        line = raw_line.decode(errors="replace").strip()
        if line:
            logger.debug("agent stderr: %s", line)
            tail.append(line)
            del tail[:-20]


@dataclass
class SessionOutcome:
    result: AgentMessage
    last_text: str | None = None

    @property
    def cost(self) -> float:
        return self.result.total_cost_usd


async def run_session(runtime, options: AgentOptions) -> SessionOutcome:
    """Consume a whole agent session, keeping the result and the last assistant text."""
    last_text = None
    result = None
    async with contextlib.aclosing(runtime.query(options)) as messages:
        async for message in messages:
            if message.type == "assistant" and message.text:
                last_text = message.text
            elif message.is_result:
                result = message
    if result is None:
        raise AgentFailure("Agent session ended without a result message")
    return SessionOutcome(result=result, last_text=last_text)
