"""Agent registry: loads config from YAML, creates and caches Pydantic AI agents."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic_ai import Agent

from src.config import PROJECT_ROOT
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.agents.registry")

_CONFIG_PATH = PROJECT_ROOT / "config" / "agents.yaml"
_config: dict[str, Any] | None = None
_agent_cache: dict[str, Agent] = {}

REQUIRED_AGENTS = (
    "label_classifier",
    "knowledge_extractor",
    "attachment_summarizer",
    "attachment_knowledge",
    "contact_enricher",
)


def _get_config_path() -> Path:
    raw = os.environ.get("AGENTS_CONFIG_PATH", "").strip()
    if raw:
        return Path(raw)
    return _CONFIG_PATH


def _load_config() -> dict[str, Any]:
    global _config
    if _config is not None:
        return _config
    path = _get_config_path()
    if not path.exists():
        raise FileNotFoundError(
            f"Agents config not found: {path}. Set AGENTS_CONFIG_PATH or create config/agents.yaml."
        )
    try:
        raw = path.read_text(encoding="utf-8")
        config = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in agents config {path}: {e}") from e
    if not isinstance(config, dict):
        raise ValueError(f"Agents config must be a YAML object (dict), got {type(config)}")
    validate_config(config)
    _config = config
    logger.info(
        "agent_registry.config_loaded",
        path=str(path),
        agent_count=len(config.get("agents", {})),
    )
    return _config


def validate_config(config: dict[str, Any]) -> None:
    """Every required agent must exist with a system_prompt and a user_prompt_template."""
    agents = config.get("agents") or {}
    if not isinstance(agents, dict):
        raise ValueError("'agents' must be a mapping of agent id to settings")
    for agent_id in REQUIRED_AGENTS:
        agent_cfg = agents.get(agent_id)
        if not isinstance(agent_cfg, dict):
            raise ValueError(f"Agent {agent_id!r} missing from config. Known agents: {list(agents)}")
        for key in ("system_prompt", "user_prompt_template"):
            value = agent_cfg.get(key)
            if not value or not isinstance(value, str):
                raise ValueError(f"Agent {agent_id!r} must have a non-empty {key} string")


def reload_config() -> dict[str, Any]:
    """Force-reload config from disk and clear agent cache."""
    global _config
    _config = None
    _agent_cache.clear()
    return _load_config()


def get_agent_config(agent_id: str) -> dict[str, Any]:
    """Return merged config (defaults + per-agent overrides) for an agent."""
    config = _load_config()
    defaults = config.get("defaults") or {}
    agent_cfg = (config.get("agents") or {}).get(agent_id)
    if agent_cfg is None:
        raise ValueError(f"Unknown agent {agent_id!r}. Known: {list((config.get('agents') or {}))}")
    return {**defaults, **agent_cfg}


def get_agent(agent_id: str, output_type: type = str) -> Agent:
    """Get or create a Pydantic AI Agent for the given agent_id. Cached by agent_id.

    The model is resolved lazily so importing and testing with agent.override()
    does not need provider credentials.
    """
    if agent_id in _agent_cache:
        return _agent_cache[agent_id]
    cfg = get_agent_config(agent_id)
    model = cfg.get("model", "openai:gpt-4o-mini")
    retries = cfg.get("retries", 1)
    model_settings = {}
    if cfg.get("temperature") is not None:
        model_settings["temperature"] = cfg["temperature"]
    if cfg.get("max_tokens") is not None:
        model_settings["max_tokens"] = cfg["max_tokens"]
    agent = Agent(
        model=model,
        output_type=output_type,
        system_prompt=cfg["system_prompt"],
        retries=retries,
        defer_model_check=True,
        **({"model_settings": model_settings} if model_settings else {}),
    )
    _agent_cache[agent_id] = agent
    return agent


def render_user_prompt(agent_id: str, **values: Any) -> str:
    """Fill the agent's user_prompt_template with values."""
    template = get_agent_config(agent_id)["user_prompt_template"]
    return template.format(**values)


def get_all_config() -> dict[str, Any]:
    """Return the full parsed config."""
    return dict(_load_config())
