"""Prompt templates for the changelog agent.

The system prompt explains the job and the tool-request format; the user
prompt carries the release data. The wording is free to change: the only
hard contract with the orchestrator is the fenced ```json tool-request
block described in the system prompt.
"""

from __future__ import annotations

from collections import defaultdict

from changelog_agent.schemas import ChangelogInput, CommitRecord, VersionInfo

# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """You are an expert technical writer who turns Git history into
clear, informative release notes.

## Workflow
1. Use the tools to look at the diffs and impact of the important commits.
   The commit subjects alone are not enough.
2. Group related commits into semantic blocks: what was achieved, not just
   which commit type it was.
3. Write the changelog.

## Requesting Tools
To call a tool, include one fenced json block per call in your reply:

```json
{{"tool": "get_commit_diff", "arguments": {{"sha": "a1b2c3d"}}}}
```

You may request several tools in one reply. Their results come back in the
next message. When you have what you need, reply with the final changelog
and no json blocks.

## Available Tools
{tools}

## Changelog Format
- One `##` section per category (Features, Bug Fixes, ...)
- Inside each, one `###` block per logical change: 2-4 sentences on what
  changed and why it matters, then a "Related commits" list
- List commits exactly as "subject [hash] by @author"
- Call out breaking changes first
"""

# ---------------------------------------------------------------------------
# User Prompt Template
# ---------------------------------------------------------------------------

USER_PROMPT_TEMPLATE = """# Release Context

## Version
{version_section}

## Repository
- **Repo**: {repo}
{compare_line}
## Breaking Changes
{breaking_section}

## Commits ({num_commits})
{commits_section}
---

Generate the changelog for this release. Request tools first for any commit
whose subject does not explain the change.
{language_section}"""

TYPE_LABELS = {
    "feat": "Features",
    "fix": "Bug Fixes",
    "perf": "Performance",
    "refactor": "Refactoring",
    "docs": "Documentation",
    "test": "Tests",
    "build": "Build",
    "ci": "CI",
    "chore": "Chores",
}


def format_commit(commit: CommitRecord) -> str:
    """Format a commit as "subject [hash] by @author"."""
    return f"{commit.subject} [{commit.short_hash}] by @{commit.author}"


def build_system_prompt(tools_description: str) -> str:
    """Build the system prompt with the given tool listing."""
    return SYSTEM_PROMPT.format(tools=tools_description or "(no tools available)")


def build_user_prompt(release: ChangelogInput, version_info: VersionInfo) -> str:
    """Build the user prompt from the release data.

    Args:
        release: The release input (repo, commits, language)
        version_info: The resolved version for this release

    Returns:
        The formatted user prompt string
    """
    if version_info.previous:
        version_section = f"- **Previous version**: {version_info.previous}\n"
        # Tag the new version the way the previous one was tagged.
        prefix = "v" if version_info.previous.startswith("v") else ""
        compare_line = (
            f"- **Full changes**: https://github.com/{release.repo}/compare/"
            f"{version_info.previous}...{prefix}{version_info.current}\n"
        )
    else:
        version_section = "- **First release**\n"
        compare_line = ""
    version_section += (
        f"- **New version**: {version_info.current}\n"
        f"- **Release type**: {version_info.release_type.value.upper()}"
    )

    breaking = [c for c in release.commits if c.breaking]
    breaking_section = (
        "\n".join(f"- {format_commit(c)}" for c in breaking) if breaking else "None."
    )

    grouped: dict[str, list[CommitRecord]] = defaultdict(list)
    for commit in release.commits:
        grouped[commit.type].append(commit)
    commits_section = ""
    for commit_type, commits in grouped.items():
        label = TYPE_LABELS.get(commit_type, commit_type)
        lines = "\n".join(f"- {format_commit(c)}" for c in commits)
        commits_section += f"### {label}\n{lines}\n\n"

    language_section = ""
    if release.language != "en":
        language_section = (
            f"\nWrite the final changelog in **{release.language}**. Keep commit "
            "hashes, @usernames, URLs and code identifiers untranslated.\n"
        )

    return USER_PROMPT_TEMPLATE.format(
        version_section=version_section,
        repo=release.repo,
        compare_line=compare_line,
        breaking_section=breaking_section,
        num_commits=len(release.commits),
        commits_section=commits_section,
        language_section=language_section,
    )
