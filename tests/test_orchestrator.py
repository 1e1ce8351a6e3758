"""Tests for the tool-calling orchestrator.

These tests verify that the loop:
- Finishes on the first reply without tool requests
- Dispatches requested tools and sends their results back to the LLM
- Feeds tool failures back instead of aborting
- Stops after max_iterations round-trips with truncated=True
- Skips malformed tool-request blocks
- Retries transient failures and escalates them once retries run out

The LLM is replaced by a scripted fake, and the registry by a small real
ToolRegistry, so the loop logic is tested without network calls.

Run with: pytest tests/test_orchestrator.py -v
"""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from changelog_agent.errors import TransientCallError
from changelog_agent.orchestrator import (
    OrchestratorConfig,
    ToolCallOrchestrator,
    extract_tool_requests,
)
from changelog_agent.retry import RetryPolicy
from changelog_agent.schemas import ChatMessage, OrchestratorState, ToolRequest
from changelog_agent.tools import ToolRegistry

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

DIFF_REQUEST = """I need the diff first.

```json
{"tool": "get_commit_diff", "arguments": {"sha": "a1b2c3d"}}
```
"""

FINAL_TEXT = "## Features\n\n### Caching\n\nAdded a cache."


class ScriptedLLM:
    """Fake TextGenerationService that replays canned replies.

    Each entry is either a reply string or an exception to raise. Every call
    records a copy of the messages it was sent.
    """

    def __init__(self, replies: list[str | Exception]) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[str, list[ChatMessage]]] = []

    async def generate(self, system_prompt: str, messages: Sequence[ChatMessage]) -> str:
        self.calls.append((system_prompt, list(messages)))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry()

    async def get_commit_diff(sha: str) -> dict:
        return {"sha": sha, "files": [{"path": "src/cache.py", "additions": 40}]}

    async def explode(**kwargs) -> None:
        raise RuntimeError("disk on fire")

    registry.register("get_commit_diff", get_commit_diff, "Get a commit diff")
    registry.register("explode", explode, "Always fails")
    return registry


def make_orchestrator(
    llm: ScriptedLLM,
    registry: ToolRegistry,
    max_iterations: int = 5,
    attempts: int = 1,
) -> ToolCallOrchestrator:
    config = OrchestratorConfig(
        max_iterations=max_iterations,
        retry=RetryPolicy(attempts=attempts, initial_delay=0.0),
    )
    return ToolCallOrchestrator(llm, registry, config, sleep=_no_sleep)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtractToolRequests:
    """Tests for extract_tool_requests."""

    def test_no_blocks(self) -> None:
        assert list(extract_tool_requests("Just prose.")) == []

    def test_single_block(self) -> None:
        assert list(extract_tool_requests(DIFF_REQUEST)) == [
            ToolRequest(tool="get_commit_diff", arguments={"sha": "a1b2c3d"})
        ]

    def test_order_of_appearance(self) -> None:
        text = (
            '```json\n{"tool": "b"}\n```\n'
            'text\n'
            '```JSON\n{"tool": "a", "arguments": {"x": 1}}\n```\n'
        )
        assert [r.tool for r in extract_tool_requests(text)] == ["b", "a"]

    def test_arguments_default_to_empty(self) -> None:
        text = '```json\n{"tool": "list"}\n```\n```json\n{"tool": "x", "arguments": null}\n```'
        assert [r.arguments for r in extract_tool_requests(text)] == [{}, {}]

    def test_malformed_blocks_are_skipped(self) -> None:
        """Invalid JSON, wrong shapes and non-json fences are all ignored."""
        text = (
            '```json\n{"tool": "get_commit_diff", "arguments": {"sha": \n```\n'
            '```json\n["not", "an", "object"]\n```\n'
            '```json\n{"arguments": {"sha": "abc"}}\n```\n'
            '```json\n{"tool": "", "arguments": {}}\n```\n'
            '```json\n{"tool": "x", "arguments": "sha=abc"}\n```\n'
            '```python\n{"tool": "x"}\n```\n'
            '```json\n{"tool": "valid"}\n```\n'
        )
        assert [r.tool for r in extract_tool_requests(text)] == ["valid"]

    def test_unclosed_block_does_not_swallow_the_next(self) -> None:
        text = (
            '```json\n{"tool": "get_commit_diff", "arguments": {"sha": \n\n'
            "Let me look at the impact instead.\n"
            '```json\n{"tool": "analyze_commit_impact", "arguments": {"sha": "a1b2c3d"}}\n```'
        )
        assert list(extract_tool_requests(text)) == [
            ToolRequest(tool="analyze_commit_impact", arguments={"sha": "a1b2c3d"})
        ]

    def test_is_lazy(self) -> None:
        requests = extract_tool_requests(DIFF_REQUEST)
        assert next(requests).tool == "get_commit_diff"
        with pytest.raises(StopIteration):
            next(requests)


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


class TestOrchestratorLoop:
    """Tests for ToolCallOrchestrator.run()."""

    @pytest.mark.asyncio
    async def test_reply_without_tools_is_final(self, registry: ToolRegistry) -> None:
        """No tool requests: DONE after one round-trip with that reply."""
        llm = ScriptedLLM([FINAL_TEXT])
        result = await make_orchestrator(llm, registry).run("system", "user prompt")

        assert result.text == FINAL_TEXT
        assert result.truncated is False
        assert result.iterations == 1
        assert result.tool_calls == []
        assert result.transitions == [
            OrchestratorState.AWAITING_RESPONSE,
            OrchestratorState.PARSING,
            OrchestratorState.DONE,
        ]
        assert llm.calls == [
            ("system", [ChatMessage(role="user", content="user prompt")])
        ]

    @pytest.mark.asyncio
    async def test_tool_result_is_sent_back(self, registry: ToolRegistry) -> None:
        """A tool request is dispatched and its result reaches the next call."""
        llm = ScriptedLLM([DIFF_REQUEST, FINAL_TEXT])
        result = await make_orchestrator(llm, registry).run("system", "user prompt")

        assert result.text == FINAL_TEXT
        assert result.iterations == 2
        assert OrchestratorState.DISPATCHING_TOOLS in result.transitions
        assert result.transitions[-1] == OrchestratorState.DONE

        assert len(result.tool_calls) == 1
        call = result.tool_calls[0]
        assert (call.tool, call.ok, call.iteration) == ("get_commit_diff", True, 1)
        assert call.arguments == {"sha": "a1b2c3d"}

        _, second_messages = llm.calls[1]
        assert [m.role for m in second_messages] == ["user", "assistant", "user"]
        assert second_messages[1].content == DIFF_REQUEST
        assert "src/cache.py" in second_messages[2].content
        assert "a1b2c3d" in second_messages[2].content

    @pytest.mark.asyncio
    async def test_tools_run_in_order_of_appearance(self) -> None:
        seen: list[str] = []
        registry = ToolRegistry()

        async def record(name: str) -> str:
            seen.append(name)
            return name

        registry.register("record", record)
        reply = (
            '```json\n{"tool": "record", "arguments": {"name": "first"}}\n```\n'
            '```json\n{"tool": "record", "arguments": {"name": "second"}}\n```\n'
        )
        llm = ScriptedLLM([reply, FINAL_TEXT])
        result = await make_orchestrator(llm, registry).run("system", "user")

        assert seen == ["first", "second"]
        assert [c.output for c in result.tool_calls] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_valid_and_malformed_blocks(self, registry: ToolRegistry) -> None:
        """Only the well-formed block is dispatched."""
        reply = (
            '```json\n{"tool": "get_commit_diff", "arguments": {"sha": "a1b2c3d"}}\n```\n'
            '```json\n{"tool": "get_commit_diff", "arguments": {\n```\n'
        )
        llm = ScriptedLLM([reply, FINAL_TEXT])
        result = await make_orchestrator(llm, registry).run("system", "user")

        assert [c.tool for c in result.tool_calls] == ["get_commit_diff"]
        assert result.text == FINAL_TEXT

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_back(self, registry: ToolRegistry) -> None:
        """An unknown tool doesn't abort the run; the LLM sees the failure."""
        reply = '```json\n{"tool": "get_weather", "arguments": {}}\n```'
        llm = ScriptedLLM([reply, FINAL_TEXT])
        result = await make_orchestrator(llm, registry).run("system", "user")

        assert result.text == FINAL_TEXT
        assert result.tool_calls[0].ok is False
        _, second_messages = llm.calls[1]
        assert "tool get_weather failed: Unknown tool: get_weather" in second_messages[-1].content

    @pytest.mark.asyncio
    async def test_tool_error_is_reported_back(self, registry: ToolRegistry) -> None:
        reply = '```json\n{"tool": "explode"}\n```'
        llm = ScriptedLLM([reply, FINAL_TEXT])
        result = await make_orchestrator(llm, registry).run("system", "user")

        assert result.tool_calls[0].ok is False
        assert "tool explode failed" in result.tool_calls[0].output
        assert "disk on fire" in result.tool_calls[0].output
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_iteration_cap_truncates(self, registry: ToolRegistry) -> None:
        """An LLM that never stops asking is cut off after max_iterations."""
        llm = ScriptedLLM([DIFF_REQUEST])
        result = await make_orchestrator(llm, registry, max_iterations=3).run(
            "system", "user"
        )

        assert result.truncated is True
        assert result.iterations == 3
        assert len(llm.calls) == 3
        assert result.text == DIFF_REQUEST
        # The requests in the last reply are never dispatched.
        assert len(result.tool_calls) == 2
        assert result.transitions[-1] == OrchestratorState.DONE

    @pytest.mark.asyncio
    async def test_iteration_cap_of_one(self, registry: ToolRegistry) -> None:
        llm = ScriptedLLM([DIFF_REQUEST])
        result = await make_orchestrator(llm, registry, max_iterations=1).run(
            "system", "user"
        )
        assert result.truncated is True
        assert len(llm.calls) == 1
        assert result.tool_calls == []

    @pytest.mark.asyncio
    async def test_final_reply_on_last_iteration_is_not_truncated(
        self, registry: ToolRegistry
    ) -> None:
        llm = ScriptedLLM([DIFF_REQUEST, FINAL_TEXT])
        result = await make_orchestrator(llm, registry, max_iterations=2).run(
            "system", "user"
        )
        assert result.truncated is False
        assert result.text == FINAL_TEXT


# ---------------------------------------------------------------------------
# Retry integration
# ---------------------------------------------------------------------------


class TestOrchestratorRetry:
    """Transient failures are retried; exhausted retries abort the run."""

    @pytest.mark.asyncio
    async def test_transient_llm_failure_is_retried(self, registry: ToolRegistry) -> None:
        llm = ScriptedLLM([TransientCallError("timeout"), FINAL_TEXT])
        result = await make_orchestrator(llm, registry, attempts=3).run("system", "user")

        assert result.text == FINAL_TEXT
        assert result.iterations == 1
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_exhausted_llm_retries_escalate(self, registry: ToolRegistry) -> None:
        error = TransientCallError("service down")
        llm = ScriptedLLM([error])

        with pytest.raises(TransientCallError) as exc_info:
            await make_orchestrator(llm, registry, attempts=2).run("system", "user")

        assert exc_info.value is error
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_transient_tool_failure_is_retried(self) -> None:
        attempts = []
        registry = ToolRegistry()

        async def flaky() -> str:
            attempts.append(1)
            if len(attempts) < 2:
                raise TransientCallError("github 502")
            return "diff"

        registry.register("flaky", flaky)
        llm = ScriptedLLM(['```json\n{"tool": "flaky"}\n```', FINAL_TEXT])
        result = await make_orchestrator(llm, registry, attempts=2).run("system", "user")

        assert len(attempts) == 2
        assert result.tool_calls[0].ok is True
        assert result.tool_calls[0].output == "diff"

    @pytest.mark.asyncio
    async def test_tool_errors_are_not_retried(self) -> None:
        calls = []
        registry = ToolRegistry()

        async def broken() -> None:
            calls.append(1)
            raise ValueError("bad")

        registry.register("broken", broken)
        llm = ScriptedLLM(['```json\n{"tool": "broken"}\n```', FINAL_TEXT])
        result = await make_orchestrator(llm, registry, attempts=3).run("system", "user")

        assert calls == [1]
        assert result.tool_calls[0].ok is False
