"""Tool-calling loop between the LLM and the tool registry.

The LLM may answer with prose, or ask for more data first by embedding tool
requests as fenced JSON blocks:

    ```json
    {"tool": "get_commit_diff", "arguments": {"sha": "a1b2c3d"}}
    ```

The orchestrator runs this state machine until the LLM stops asking:

    AWAITING_RESPONSE -> PARSING -> DISPATCHING_TOOLS -> AWAITING_RESPONSE
                                 -> DONE

The LLM cannot be trusted to end the exchange on its own, so the loop is
capped at ``max_iterations`` round-trips. Hitting the cap still ends in
DONE, with the last reply as the text and ``truncated=True``.

Failure handling:
- LLM and tool calls are retried on TransientCallError; if every attempt
  fails, the error propagates and the run is aborted
- UnknownToolError / ToolExecutionError are reported back to the LLM as a
  "tool X failed: ..." result, and the loop carries on
- Blocks that don't decode as tool requests are skipped
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from changelog_agent.errors import (
    ToolExecutionError,
    TransientCallError,
    UnknownToolError,
)
from changelog_agent.llm import TextGenerationService
from changelog_agent.logging_config import get_logger
from changelog_agent.retry import RetryPolicy, Sleep, with_retry
from changelog_agent.schemas import (
    ChangelogResult,
    ChatMessage,
    OrchestratorState,
    ToolCallRecord,
    ToolRequest,
)
from changelog_agent.tools import ToolRegistryProtocol

logger = get_logger(__name__)

T = TypeVar("T")

# The body may not contain a fence and the closing fence must end its line,
# so an unclosed block never runs into the block that follows it.
_JSON_BLOCK_RE = re.compile(
    r"```json[ \t]*\r?\n((?:(?!```).)*)```(?=[ \t]*(?:\r?\n|$))",
    re.IGNORECASE | re.DOTALL,
)


class OrchestratorConfig(BaseModel):
    """Configuration for the tool-calling loop.

    Attributes:
        max_iterations: Maximum number of LLM round-trips per run
        retry: Retry policy applied to every LLM and tool call
    """

    max_iterations: int = Field(5, ge=1)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


# ---------------------------------------------------------------------------
# Tool request extraction
# ---------------------------------------------------------------------------


def _decode_tool_request(raw: str) -> ToolRequest | None:
    try:
        return ToolRequest.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError):
        return None


def extract_tool_requests(text: str) -> Iterator[ToolRequest]:
    """Yield every well-formed tool request in ``text``, in order.

    Each ```json block is decoded on its own; blocks that are not valid JSON
    or not a ``{"tool": ..., "arguments": {...}}`` object are skipped.
    """
    for match in _JSON_BLOCK_RE.finditer(text):
        request = _decode_tool_request(match.group(1))
        if request is not None:
            yield request


def _encode_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, default=str)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ToolCallOrchestrator:
    """Drives one changelog conversation to completion.

    Usage:
        orchestrator = ToolCallOrchestrator(llm, registry)
        result = await orchestrator.run(system_prompt, user_prompt)
        print(result.text, result.truncated)
    """

    def __init__(
        self,
        service: TextGenerationService,
        registry: ToolRegistryProtocol,
        config: OrchestratorConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.service = service
        self.registry = registry
        self.config = config or OrchestratorConfig()
        self._sleep = sleep

    async def run(self, system_prompt: str, user_prompt: str) -> ChangelogResult:
        """Run the loop and return the final text.

        Raises:
            TransientCallError: If an LLM or tool call keeps failing after
                every retry attempt
        """
        history = [ChatMessage(role="user", content=user_prompt)]
        transitions: list[OrchestratorState] = []
        tool_calls: list[ToolCallRecord] = []

        def enter(state: OrchestratorState, iteration: int) -> None:
            transitions.append(state)
            logger.debug("orchestrator_state", state=state.value, iteration=iteration)

        iteration = 0
        while True:
            iteration += 1
            enter(OrchestratorState.AWAITING_RESPONSE, iteration)
            snapshot = tuple(history)
            text = await self._call(
                lambda: self.service.generate(system_prompt, snapshot)
            )
            history.append(ChatMessage(role="assistant", content=text))

            enter(OrchestratorState.PARSING, iteration)
            requests = list(extract_tool_requests(text))
            if not requests or iteration >= self.config.max_iterations:
                truncated = bool(requests)
                enter(OrchestratorState.DONE, iteration)
                if truncated:
                    logger.warning(
                        "orchestrator_truncated",
                        iterations=iteration,
                        pending_tools=[r.tool for r in requests],
                    )
                logger.info(
                    "orchestrator_done",
                    iterations=iteration,
                    tool_calls=len(tool_calls),
                    truncated=truncated,
                )
                return ChangelogResult(
                    text=text,
                    truncated=truncated,
                    iterations=iteration,
                    tool_calls=tool_calls,
                    transitions=transitions,
                )

            enter(OrchestratorState.DISPATCHING_TOOLS, iteration)
            entries = []
            for request in requests:
                record = await self._dispatch(request, iteration)
                tool_calls.append(record)
                entries.append(f"### {record.tool}\n{record.output}")
            history.append(
                ChatMessage(role="user", content="Tool results:\n\n" + "\n\n".join(entries))
            )

    async def _call(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(
            operation,
            self.config.retry,
            retry_on=(TransientCallError,),
            sleep=self._sleep,
        )

    async def _dispatch(self, request: ToolRequest, iteration: int) -> ToolCallRecord:
        logger.info("tool_dispatched", tool=request.tool, iteration=iteration)
        try:
            result = await self._call(
                lambda: self.registry.execute(request.tool, request.arguments)
            )
        except (UnknownToolError, ToolExecutionError) as e:
            logger.warning("tool_call_failed", tool=request.tool, error=str(e))
            return ToolCallRecord(
                iteration=iteration,
                tool=request.tool,
                arguments=request.arguments,
                ok=False,
                output=f"tool {request.tool} failed: {e}",
            )
        return ToolCallRecord(
            iteration=iteration,
            tool=request.tool,
            arguments=request.arguments,
            ok=True,
            output=_encode_result(result),
        )
