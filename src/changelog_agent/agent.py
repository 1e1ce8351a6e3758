"""Release pipeline for changelog generation.

This module ties together all the components:
- Version resolution (version.py)
- Commit tools (tools.py, backed by context/github.py)
- Prompt building (prompts/changelog.py)
- The tool-calling loop (orchestrator.py, on top of llm.py)

The agent follows this flow:
1. Receive the release data (ChangelogInput)
2. Pick the release type from the commit messages (or the explicit override)
3. Resolve the next version (VersionInfo)
4. Run the tool-calling conversation with the LLM
5. Return the changelog with its version (ChangelogOutput)

This is the main entry point, whether called from the API or the CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from changelog_agent.config import AgentConfig, load_config
from changelog_agent.context.github import GitHubClient, GitHubClientProtocol
from changelog_agent.errors import ChangelogAgentError, NoReleaseDirectiveError
from changelog_agent.llm import LLMClient, TextGenerationService
from changelog_agent.logging_config import get_logger, setup_logging
from changelog_agent.orchestrator import ToolCallOrchestrator
from changelog_agent.prompts.changelog import build_system_prompt, build_user_prompt
from changelog_agent.retry import Sleep
from changelog_agent.schemas import (
    ChangelogInput,
    ChangelogOutput,
    CommitRecord,
    ReleaseType,
    VersionInfo,
)
from changelog_agent.tools import build_commit_tools
from changelog_agent.version import (
    create_version_info,
    derive_release_kind,
    max_release_type,
)

logger = get_logger(__name__)


def _commit_release_kind(commit: CommitRecord) -> ReleaseType | None:
    kind = derive_release_kind(commit.message)
    if kind is None and commit.breaking:
        return ReleaseType.MAJOR
    return kind


def resolve_release_type(release: ChangelogInput) -> ReleaseType:
    """Pick the release type for a release window.

    The explicit ``release_type`` wins; otherwise the most severe kind across
    the commits is used. A commit flagged ``breaking`` counts as major unless
    its message carries an explicit directive.

    Raises:
        NoReleaseDirectiveError: If no commit asks for a release
    """
    if release.release_type is not None:
        return release.release_type
    kind = max_release_type(_commit_release_kind(c) for c in release.commits)
    if kind is None:
        raise NoReleaseDirectiveError(
            f"None of the {len(release.commits)} commits contains a release "
            "directive (!release: major|minor|patch) or a breaking-change marker."
        )
    return kind


class ChangelogAgent:
    """Orchestrates version resolution and changelog generation.

    Stateless between calls: each generate() builds its own tools and
    conversation.

    Usage:
        agent = ChangelogAgent()
        output = await agent.generate(changelog_input)
    """

    def __init__(
        self,
        config: AgentConfig | None = None,
        llm: TextGenerationService | None = None,
        github: GitHubClientProtocol | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the agent with its dependencies.

        Args:
            config: Agent configuration. Uses defaults if None.
            llm: Text generation service. An OpenAI client if None.
            github: Commit data source for the tools. GitHub API if None.
            sleep: Awaitable used for retry backoff.
        """
        self.config = config or AgentConfig()
        self.llm = llm or LLMClient(config=self.config.llm)
        self.github = github or GitHubClient()
        self._sleep = sleep

    def plan_release(self, release: ChangelogInput) -> VersionInfo:
        """Resolve the version for a release without calling the LLM.

        Raises:
            NoReleaseDirectiveError: If no commit asks for a release
            InvalidVersionError: If the previous version is malformed
        """
        release_type = resolve_release_type(release)
        return create_version_info(release.previous_version, release_type)

    async def generate(self, release: ChangelogInput) -> ChangelogOutput:
        """Resolve the version and write the changelog.

        Args:
            release: The release data

        Returns:
            The changelog and the version it belongs to

        Raises:
            NoReleaseDirectiveError: If no commit asks for a release
            InvalidVersionError: If the previous version is malformed
            TransientCallError: If the LLM or a tool stays unreachable
        """
        logger.info(
            "changelog_started",
            repo=release.repo,
            previous_version=release.previous_version,
            commits=len(release.commits),
        )
        try:
            version_info = self.plan_release(release)
            registry = build_commit_tools(
                self.github, release.repo, self.config.max_patch_chars
            )
            orchestrator = ToolCallOrchestrator(
                self.llm, registry, self.config.orchestrator, sleep=self._sleep
            )
            result = await orchestrator.run(
                build_system_prompt(registry.describe()),
                build_user_prompt(release, version_info),
            )
        except Exception as e:
            logger.error(
                "changelog_failed",
                repo=release.repo,
                error=str(e),
                exc_info=True,
            )
            raise

        logger.info(
            "changelog_complete",
            repo=release.repo,
            version=version_info.current,
            release_type=version_info.release_type.value,
            iterations=result.iterations,
            tool_calls=len(result.tool_calls),
            truncated=result.truncated,
        )
        return ChangelogOutput(
            version=version_info,
            changelog=result.text,
            truncated=result.truncated,
            iterations=result.iterations,
            tool_calls=result.tool_calls,
        )


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Usage:
        changelog-agent --input release.json
        cat release.json | changelog-agent --plan-only

    Prints the result as JSON on stdout; logs go to stderr.
    """
    parser = argparse.ArgumentParser(description="Changelog Generation Agent")
    parser.add_argument(
        "--input", "-i",
        type=str,
        help="Path to JSON file with release data (reads stdin if omitted)",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to YAML config file (default: ./changelog-agent.yaml)",
    )
    parser.add_argument(
        "--plan-only",
        action="store_true",
        help="Only resolve the next version; don't call the LLM",
    )
    args = parser.parse_args(argv)

    if not args.input and sys.stdin.isatty():
        parser.print_usage()
        print("Provide --input FILE or pipe JSON via stdin.")
        return 2

    setup_logging()

    if args.input:
        with open(args.input) as f:
            data = json.load(f)
    else:
        data = json.load(sys.stdin)

    try:
        release = ChangelogInput.model_validate(data)
        agent = ChangelogAgent(config=load_config(args.config))
        if args.plan_only:
            result = agent.plan_release(release)
        else:
            result = asyncio.run(agent.generate(release))
    except (ChangelogAgentError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(result.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
