"""Shared helpers for agents that answer with free text containing JSON."""

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic_ai import BinaryContent

from src.agents.registry import get_agent, render_user_prompt
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.agents")

T = TypeVar("T", bound=BaseModel)

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def extract_json_array(text: str) -> list[Any]:
    """First [...] span of text parsed as JSON. Anything unparseable gives []."""
    match = _JSON_ARRAY_RE.search(text or "")
    if not match:
        return []
    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []


def extract_json_object(text: str) -> dict[str, Any] | None:
    """First {...} span of text parsed as JSON; None for 'null', no match or bad JSON."""
    stripped = (text or "").strip()
    if not stripped or stripped.lower() == "null":
        return None
    match = _JSON_OBJECT_RE.search(stripped)
    if not match:
        return None
    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def validate_items(items: list[Any], model: type[T], agent_id: str) -> list[T]:
    """Validate each item; invalid items are dropped and logged."""
    result: list[T] = []
    for item in items:
        try:
            result.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug("agent.item_invalid", agent=agent_id, error_count=e.error_count())
    return result


async def run_text_agent(agent_id: str, **prompt_values: Any) -> str:
    """Render the agent's user prompt, run it and return the raw text output."""
    agent = get_agent(agent_id, str)
    prompt = render_user_prompt(agent_id, **prompt_values)
    result = await agent.run(prompt)
    return result.output or ""


async def run_binary_agent(agent_id: str, data: bytes, media_type: str, **prompt_values: Any) -> str:
    """Like run_text_agent, with the raw file (PDF, image) sent alongside the prompt."""
    agent = get_agent(agent_id, str)
    prompt = render_user_prompt(agent_id, **prompt_values)
    result = await agent.run([prompt, BinaryContent(data=data, media_type=media_type)])
    return result.output or ""
