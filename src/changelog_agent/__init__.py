"""Changelog Generation Agent.

Resolves the next semantic version of a release from its commit messages and
drives a tool-calling conversation with an LLM that gathers commit diffs and
impact data before writing the release notes.
"""

__version__ = "0.1.0"
