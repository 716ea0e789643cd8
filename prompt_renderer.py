# prompt_renderer.py
"""Utilities for rendering LLM prompts using Jinja2 templates."""

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader
from pydantic import BaseModel

PROMPTS_PATH = Path(__file__).parent / "prompts"
_env = Environment(
    loader=FileSystemLoader(PROMPTS_PATH),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
)


def excerpt(value: str, limit: int = 2000) -> str:
    """Leading slice of ``value`` with a marker when it was cut."""
    if len(value) <= limit:
        return value
    return value[:limit] + "...[truncated]"


def render_prompt(template_name: str, context: dict[str, Any]) -> str:
    """Render a Jinja2 template from the prompts directory."""
    template = _env.get_template(template_name)
    values = {
        key: value.model_dump() if isinstance(value, BaseModel) else value
        for key, value in context.items()
    }
    return template.render(**values).strip()
