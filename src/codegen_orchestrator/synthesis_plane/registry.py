"""Agent protocol and the ``agent_type -> agent`` registry."""

from __future__ import annotations

from collections.abc import Awaitable, Mapping
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, runtime_checkable

import structlog

from codegen_orchestrator.constants import AGENT_ENTRY_POINT_GROUP

if TYPE_CHECKING:
    from collections.abc import Iterator

    from structlog.typing import FilteringBoundLogger

    from codegen_orchestrator.domain.models import AgentContext, GenerationResult

AgentOutput: TypeAlias = "GenerationResult | Mapping[str, Any] | None"


@runtime_checkable
class Agent(Protocol):
    """A producer for one kind of artifact.

    ``generate`` may be a plain or an ``async`` method. It reads only the
    context it is given and returns a ``GenerationResult`` or an equivalent
    mapping (``files``, ``lines_of_code``/``linesOfCode``, ``dependencies``,
    ``warnings``). Raising is the only way to report failure.
    """

    def generate(self, context: AgentContext) -> AgentOutput | Awaitable[AgentOutput]: ...


class AgentRegistry:
    """Mapping of agent types to agent instances."""

    __slots__ = ("_agents", "_logger")

    def __init__(
        self,
        agents: Mapping[str, Agent] | None = None,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._agents: dict[str, Agent] = {}
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        for agent_type, agent in (agents or {}).items():
            self.register(agent_type, agent)

    def register(self, agent_type: str, agent: Agent, *, replace: bool = False) -> None:
        normalized = _normalize_agent_type(agent_type)
        if not callable(getattr(agent, "generate", None)):
            raise TypeError(f"agent for {normalized!r} has no callable 'generate'")
        if normalized in self._agents and not replace:
            raise ValueError(f"agent type {normalized!r} is already registered")
        self._agents[normalized] = agent
        self._logger.debug("agent_registered", agent_type=normalized, agent=type(agent).__name__)

    def unregister(self, agent_type: str) -> bool:
        return self._agents.pop(_normalize_agent_type(agent_type), None) is not None

    def get(self, agent_type: str) -> Agent:
        normalized = _normalize_agent_type(agent_type)
        try:
            return self._agents[normalized]
        except KeyError:
            available = ", ".join(self.agent_types) or "<none>"
            raise KeyError(
                f"no agent registered for type {normalized!r}; available: {available}"
            ) from None

    def has(self, agent_type: str) -> bool:
        return _normalize_agent_type(agent_type) in self._agents

    @property
    def agent_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._agents))

    def load_entry_points(self, group: str = AGENT_ENTRY_POINT_GROUP) -> tuple[str, ...]:
        """Register agents advertised by installed distributions.

        Each entry point name is the agent type; the loaded object is either an
        agent instance or a zero-argument factory returning one. Types that are
        already registered are left alone.
        """

        loaded: list[str] = []
        for entry_point in sorted(entry_points(group=group), key=lambda item: item.name):
            agent_type = _normalize_agent_type(entry_point.name)
            if agent_type in self._agents:
                self._logger.debug("agent_entry_point_shadowed", agent_type=agent_type)
                continue
            target = entry_point.load()
            if isinstance(target, type) or not callable(getattr(target, "generate", None)):
                agent = target()
            else:
                agent = target
            self.register(agent_type, agent)
            loaded.append(agent_type)
        if loaded:
            self._logger.info("agent_entry_points_loaded", group=group, agent_types=loaded)
        return tuple(loaded)

    def __contains__(self, agent_type: object) -> bool:
        return isinstance(agent_type, str) and self.has(agent_type)

    def __iter__(self) -> Iterator[str]:
        return iter(self.agent_types)

    def __len__(self) -> int:
        return len(self._agents)


def _normalize_agent_type(agent_type: str) -> str:
    if not isinstance(agent_type, str) or not agent_type.strip():
        raise ValueError("agent_type must be a non-empty string")
    return agent_type.strip().lower()


__all__ = ["Agent", "AgentOutput", "AgentRegistry"]
