"""YAML configuration for the changelog agent.

Example ``changelog-agent.yaml``:

    llm:
      model: gpt-4o-mini
      temperature: 0.1
    orchestrator:
      max_iterations: 4
      retry:
        attempts: 3
        initial_delay: 1.0
        backoff_factor: 2.0
    max_patch_chars: 4000

Every key is optional; missing keys keep their defaults. Secrets are never
read from this file: the OpenAI key comes from OPENAI_API_KEY and the GitHub
token from GITHUB_TOKEN.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from changelog_agent.llm import LLMConfig
from changelog_agent.orchestrator import OrchestratorConfig

DEFAULT_CONFIG_PATH = Path("changelog-agent.yaml")


class AgentConfig(BaseModel):
    """Top-level configuration loaded from YAML."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    max_patch_chars: int = Field(4000, ge=100)


def load_config(path: str | Path | None = None) -> AgentConfig:
    """Load and validate a YAML config file.

    Args:
        path: Path to the YAML configuration file. Defaults to
              ./changelog-agent.yaml.

    Returns:
        A validated AgentConfig. Returns defaults if the file doesn't exist.

    Raises:
        ValueError: If the YAML content is invalid or fails validation.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return AgentConfig()

    try:
        raw = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    try:
        return AgentConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid config in {config_path}: {exc}") from exc
