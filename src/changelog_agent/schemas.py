"""Pydantic models defining the data that flows through the changelog agent.

These schemas are the single source of truth for:
- The CLI/API input (ChangelogInput) and output (ChangelogOutput)
- The resolved release version (VersionInfo)
- The tool-calling conversation (ChatMessage, ToolRequest, ToolCallRecord)
- Commit data fetched for the tools (CommitDetails, FileChange)

Key design decisions:
- VersionInfo is frozen and validates its own ordering invariant, so a
  VersionInfo that exists is always a valid forward step
- ToolRequest arguments stay an opaque mapping; each tool validates its own
  arguments inside the registry
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from changelog_agent.semver import SemVer

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ReleaseType(str, Enum):
    """Which semantic version component a release bumps.

    PATCH: Fixes only, 1.4.7 -> 1.4.8
    MINOR: New functionality, 1.4.7 -> 1.5.0
    MAJOR: Breaking changes, 1.4.7 -> 2.0.0
    """

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {ReleaseType.PATCH: 1, ReleaseType.MINOR: 2, ReleaseType.MAJOR: 3}


class OrchestratorState(str, Enum):
    """States of the tool-calling loop."""

    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    PARSING = "PARSING"
    DISPATCHING_TOOLS = "DISPATCHING_TOOLS"
    DONE = "DONE"


# ---------------------------------------------------------------------------
# Version
# ---------------------------------------------------------------------------


class VersionInfo(BaseModel):
    """The version decision for one release.

    Attributes:
        previous: Last released version, or None for a first release
        current: The version being released
        release_type: The bump that produced ``current`` from ``previous``
    """

    model_config = ConfigDict(frozen=True)

    previous: str | None = Field(None, description="Previously released version")
    current: str = Field(..., description="Version being released")
    release_type: ReleaseType = Field(..., description="Bump applied to previous")

    @model_validator(mode="after")
    def check_version_increases(self) -> "VersionInfo":
        """Ensure ``current`` is valid and strictly newer than ``previous``."""
        current = SemVer.parse(self.current)
        if self.previous is not None and current.compare(SemVer.parse(self.previous)) <= 0:
            raise ValueError(
                f"Version {self.current} is not greater than previous version "
                f"{self.previous}."
            )
        return self


# ---------------------------------------------------------------------------
# Commit data
# ---------------------------------------------------------------------------


class CommitRecord(BaseModel):
    """A classified commit from the release window.

    Produced by the commit classifier; ``type`` is the conventional-commit
    type (feat, fix, ci, ...) and ``breaking`` its breaking-change flag.
    """

    hash: str = Field(..., min_length=1, description="Commit SHA")
    subject: str = Field(..., description="First line of the commit message")
    body: str = Field("", description="Rest of the commit message")
    author: str = Field(..., description="Commit author login or name")
    type: str = Field("other", description="Conventional commit type")
    breaking: bool = Field(False, description="Whether the commit breaks compatibility")

    @property
    def message(self) -> str:
        return f"{self.subject}\n\n{self.body}" if self.body else self.subject

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class FileChange(BaseModel):
    """A single file changed by a commit.

    Attributes:
        path: File path relative to repo root (e.g., "src/auth/login.py")
        status: added, modified, removed, renamed, ...
        additions: Number of lines added
        deletions: Number of lines deleted
        patch: The diff for this file (absent for binary files)
    """

    path: str = Field(..., description="File path relative to repo root")
    status: str = Field("modified", description="Change status")
    additions: int = Field(0, ge=0, description="Lines added")
    deletions: int = Field(0, ge=0, description="Lines deleted")
    patch: str = Field("", description="Diff content for this file")


class CommitDetails(BaseModel):
    """Full detail for one commit, as served to the tools."""

    sha: str
    message: str = ""
    author: str = ""
    files: list[FileChange] = Field(default_factory=list)

    @property
    def additions(self) -> int:
        return sum(f.additions for f in self.files)

    @property
    def deletions(self) -> int:
        return sum(f.deletions for f in self.files)


# ---------------------------------------------------------------------------
# Tool-calling conversation
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """One turn of the conversation sent to the LLM."""

    role: Literal["user", "assistant"]
    content: str


class ToolRequest(BaseModel):
    """A tool call the LLM embedded in its response.

    Attributes:
        tool: Registered tool name
        arguments: Tool arguments; validated by the tool itself, not here
    """

    tool: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def default_missing_arguments(cls, value: Any) -> Any:
        return {} if value is None else value


class ToolCallRecord(BaseModel):
    """What happened when one ToolRequest was dispatched."""

    iteration: int = Field(..., ge=1)
    tool: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    ok: bool
    output: str = Field("", description="Encoded result or failure message")


class ChangelogResult(BaseModel):
    """Outcome of one tool-calling run.

    Attributes:
        text: Final response text (the changelog)
        truncated: True when the iteration cap ended the run while the LLM
                   was still asking for tools
        iterations: Number of LLM round-trips made
        tool_calls: Every tool dispatched during the run
        transitions: States visited, in order
    """

    text: str
    truncated: bool = False
    iterations: int = Field(..., ge=1)
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    transitions: list[OrchestratorState] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Input / Output
# ---------------------------------------------------------------------------


class ChangelogInput(BaseModel):
    """Input for one changelog generation run.

    Attributes:
        repo: Repository in "owner/name" format
        previous_version: Last released version (None for a first release)
        release_type: Forces the bump; derived from commit messages when None
        commits: Classified commits since the previous release
        language: Target language of the changelog (ISO code)
    """

    repo: str = Field(..., pattern=r"^[\w.-]+/[\w.-]+$", description="owner/name")
    previous_version: str | None = Field(None, description="Last released version")
    release_type: ReleaseType | None = Field(None, description="Explicit bump")
    commits: list[CommitRecord] = Field(..., min_length=1)
    language: str = Field("en", min_length=2, description="Changelog language")


class ChangelogOutput(BaseModel):
    """Result of a changelog generation run."""

    version: VersionInfo
    changelog: str
    truncated: bool = False
    iterations: int = 0
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
