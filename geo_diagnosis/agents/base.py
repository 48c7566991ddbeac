"""Helpers shared by the stage agents and their graph nodes."""

from __future__ import annotations

from typing import Any

from langchain_core.runnables import RunnableConfig

from geo_diagnosis.errors import InvalidInput
from geo_diagnosis.schemas.phases import Stage


def require_brand_name(brand_name: Any, stage: str) -> str:
    """Return the trimmed brand name or raise InvalidInput."""
    if not isinstance(brand_name, str) or not brand_name.strip():
        raise InvalidInput("Brand name is required", stage=stage)
    return brand_name.strip()


def _configurable(config: RunnableConfig | None) -> dict:
    return (config or {}).get("configurable") or {}


def stage_llm(config: RunnableConfig | None, agent_name: str) -> Any | None:
    """Resolve the chat model for a node from the optional llm_factory hook.

    None means the stage builds its own model from agents.toml.
    """
    factory = _configurable(config).get("llm_factory")
    return factory(agent_name) if factory is not None else None


def notify_stage(config: RunnableConfig | None, stage: Stage) -> None:
    """Call the optional on_stage hook (interim status labels in the CLI)."""
    hook = _configurable(config).get("on_stage")
    if hook is not None:
        hook(stage)
