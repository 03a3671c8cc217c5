"""Agent contract, registry, dispatch, and the template-backed agent."""

from codegen_orchestrator.synthesis_plane.dispatch import AgentDispatcher, normalize_result
from codegen_orchestrator.synthesis_plane.registry import Agent, AgentOutput, AgentRegistry
from codegen_orchestrator.synthesis_plane.template_agent import (
    TemplateAgent,
    TemplateNotFoundError,
    load_template_dir,
)

__all__ = [
    "Agent",
    "AgentDispatcher",
    "AgentOutput",
    "AgentRegistry",
    "TemplateAgent",
    "TemplateNotFoundError",
    "load_template_dir",
    "normalize_result",
]
