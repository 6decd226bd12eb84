"""Validate agents config: load YAML, check required agents, print summary table."""

from rich.table import Table

from src.agents.registry import REQUIRED_AGENTS, get_agent_config, get_all_config
from .shared import console, logger


def validate_config() -> None:
    """Load config/agents.yaml, check every required agent, print summary table."""
    log = logger.bind(command="validate-config")
    log.info("validate_config.start")

    try:
        config = get_all_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Config error: {e}[/red]")
        log.error("validate_config.fail", error=str(e))
        raise SystemExit(1) from e

    agents = config.get("agents") or {}

    table = Table(title="Agents config")
    table.add_column("Agent ID", style="cyan")
    table.add_column("Model", style="green")
    table.add_column("Prompt length", justify="right")
    table.add_column("Required", justify="center")

    for agent_id in sorted(agents):
        merged = get_agent_config(agent_id)
        model = merged.get("model", "(default)")
        prompt_len = len(merged.get("system_prompt") or "")
        table.add_row(agent_id, str(model), str(prompt_len), "yes" if agent_id in REQUIRED_AGENTS else "")

    console.print(table)
    console.print(f"[green]Config valid. {len(agents)} agents.[/green]")
    log.info("validate_config.ok", agents=len(agents))
