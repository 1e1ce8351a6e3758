"""Tool registry for the changelog conversation.

The LLM asks for supplementary data by embedding tool requests in its
reply; the orchestrator hands each one to a registry. The registry is the
only place where tool arguments are checked: each tool may declare a
pydantic model for its arguments, and the registry validates against it
before calling the handler.

Failure contract of ToolRegistry.execute():
- Unknown tool name                 -> UnknownToolError
- Arguments fail validation         -> ToolExecutionError
- Handler raises TransientCallError -> propagated, for the retry policy
- Handler raises anything else      -> ToolExecutionError
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

from changelog_agent.context.github import GitHubClientProtocol
from changelog_agent.errors import (
    ToolExecutionError,
    TransientCallError,
    UnknownToolError,
)
from changelog_agent.logging_config import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[..., Awaitable[Any]]


class ToolRegistryProtocol(Protocol):
    """What the orchestrator needs from a tool registry."""

    async def execute(self, name: str, arguments: dict[str, Any]) -> Any:
        ...


@dataclass(frozen=True)
class ToolSpec:
    """A registered tool.

    Attributes:
        name: Name the LLM uses to call the tool
        description: One-line summary shown to the LLM
        handler: Coroutine function called with the validated arguments
        args_model: Optional pydantic model for the arguments
    """

    name: str
    description: str
    handler: ToolHandler
    args_model: type[BaseModel] | None = None


class ToolRegistry:
    """Name -> handler table with argument validation.

    Usage:
        registry = ToolRegistry()

        @registry.tool("echo", "Return the text unchanged", args_model=EchoArgs)
        async def echo(text: str) -> str:
            return text

        await registry.execute("echo", {"text": "hi"})
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def register(
        self,
        name: str,
        handler: ToolHandler,
        description: str = "",
        args_model: type[BaseModel] | None = None,
    ) -> None:
        if name in self._tools:
            raise ValueError(f"Tool {name!r} is already registered")
        self._tools[name] = ToolSpec(name, description, handler, args_model)

    def tool(
        self,
        name: str,
        description: str = "",
        args_model: type[BaseModel] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of register()."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(name, handler, description, args_model)
            return handler

        return decorator

    def describe(self) -> str:
        """Render the tool list for the system prompt."""
        lines = []
        for spec in self._tools.values():
            lines.append(f"### {spec.name}\n{spec.description}")
            if spec.args_model is not None:
                schema = spec.args_model.model_json_schema()
                lines.append(f"Arguments schema: {json.dumps(schema)}")
            lines.append("")
        return "\n".join(lines).strip()

    async def execute(self, name: str, arguments: dict[str, Any]) -> Any:
        """Run tool ``name`` with ``arguments`` and return its result."""
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(name)

        kwargs = arguments
        if spec.args_model is not None:
            try:
                kwargs = spec.args_model.model_validate(arguments).model_dump()
            except ValidationError as e:
                problems = "; ".join(
                    f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()
                )
                raise ToolExecutionError(name, f"invalid arguments ({problems})") from e

        try:
            return await spec.handler(**kwargs)
        except (TransientCallError, ToolExecutionError):
            raise
        except Exception as e:
            logger.warning("tool_failed", tool=name, error=str(e), error_type=type(e).__name__)
            raise ToolExecutionError(name, f"{type(e).__name__}: {e}") from e


# ---------------------------------------------------------------------------
# Commit tools
# ---------------------------------------------------------------------------


class CommitArgs(BaseModel):
    """Arguments shared by the commit tools."""

    sha: str = Field(..., min_length=4, description="Commit SHA (full or abbreviated)")


_TEST_MARKERS = ("test", "spec")
_DOC_SUFFIXES = (".md", ".rst", ".txt", ".adoc")
_MANIFESTS = {
    "package.json",
    "package-lock.json",
    "pyproject.toml",
    "requirements.txt",
    "poetry.lock",
    "uv.lock",
    "go.mod",
    "go.sum",
    "Cargo.toml",
    "Cargo.lock",
    "pom.xml",
    "build.gradle",
}


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3] + "..."


def _size_label(lines_changed: int) -> str:
    if lines_changed < 50:
        return "small"
    if lines_changed < 500:
        return "medium"
    return "large"


def build_commit_tools(
    github: GitHubClientProtocol,
    repo: str,
    max_patch_chars: int = 4000,
) -> ToolRegistry:
    """Build the registry offered to the LLM while writing a changelog.

    Args:
        github: Source of commit details
        repo: Repository the commits belong to ("owner/name")
        max_patch_chars: Per-file cap on the patch text returned

    Returns:
        A registry with get_commit_diff and analyze_commit_impact
    """
    registry = ToolRegistry()

    @registry.tool(
        "get_commit_diff",
        "Get the full diff of a commit: changed files with status, "
        "line counts and patch text.",
        args_model=CommitArgs,
    )
    async def get_commit_diff(sha: str) -> dict[str, Any]:
        commit = await github.get_commit(repo, sha)
        return {
            "sha": commit.sha,
            "message": commit.message,
            "author": commit.author,
            "files": [
                {
                    "path": f.path,
                    "status": f.status,
                    "additions": f.additions,
                    "deletions": f.deletions,
                    "patch": _truncate(f.patch, max_patch_chars),
                }
                for f in commit.files
            ],
        }

    @registry.tool(
        "analyze_commit_impact",
        "Summarize the impact of a commit: size, touched areas, and whether "
        "tests, docs or dependencies changed.",
        args_model=CommitArgs,
    )
    async def analyze_commit_impact(sha: str) -> dict[str, Any]:
        commit = await github.get_commit(repo, sha)
        paths = [PurePosixPath(f.path) for f in commit.files]
        areas = sorted({p.parts[0] if len(p.parts) > 1 else "." for p in paths})
        lines_changed = commit.additions + commit.deletions
        return {
            "sha": commit.sha,
            "files_changed": len(commit.files),
            "additions": commit.additions,
            "deletions": commit.deletions,
            "size": _size_label(lines_changed),
            "areas": areas,
            "touches_tests": any(
                marker in str(p).lower() for p in paths for marker in _TEST_MARKERS
            ),
            "touches_docs": any(
                p.suffix.lower() in _DOC_SUFFIXES or "docs" in p.parts for p in paths
            ),
            "touches_dependencies": any(p.name in _MANIFESTS for p in paths),
        }

    return registry
