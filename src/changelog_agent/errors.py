"""Exception hierarchy for the changelog agent.

Every error raised on purpose by this package derives from
ChangelogAgentError, so the CLI and the API can tell them apart from
unexpected failures. Errors that describe bad input derive from
InputError (also a ValueError), which the API layer maps to 422.
"""

from __future__ import annotations


class ChangelogAgentError(Exception):
    """Base class for all changelog agent errors."""


class InputError(ChangelogAgentError, ValueError):
    """The caller supplied data the agent cannot work with.

    The API maps this (and only this) family to 422.
    """


class InvalidVersionError(InputError):
    """A string is not a valid semantic version.

    Never retried: a release cannot proceed with a version it can't parse.
    """

    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(f"Invalid semantic version: {version!r}")


class NoReleaseDirectiveError(InputError):
    """None of the commits in the release window selects a version bump."""


class TransientCallError(ChangelogAgentError):
    """A call to the LLM or to a tool backend failed in a retryable way.

    Raised for network failures, timeouts, rate limits and 5xx responses.
    """


class UnknownToolError(ChangelogAgentError):
    """The LLM asked for a tool the registry does not know."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"Unknown tool: {tool}")


class ToolExecutionError(ChangelogAgentError):
    """A registered tool rejected its arguments or failed while running."""

    def __init__(self, tool: str, message: str) -> None:
        self.tool = tool
        super().__init__(message)
