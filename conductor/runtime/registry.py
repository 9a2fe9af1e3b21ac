"""Descriptor registry for agents, models, tools and hooks.

All writes go through one asyncio.Lock so concurrent registrations never
interleave. Lookups are plain dict reads and never suspend.
"""

import asyncio
from collections.abc import Iterable

from conductor.domain import (
    Agent,
    Hook,
    PostHookFunc,
    PreHookFunc,
    RegisteredPostHook,
    RegisteredPreHook,
    RegisteredSummaryHook,
    SummaryHookFunc,
)
from conductor.errors import AgentNotFoundError, ModelNotFoundError
from conductor.observability.logging import get_logger
from conductor.providers.model import Model
from conductor.tools.base import Tool

logger = get_logger(__name__)


class DescriptorRegistry:
    """Read-mostly lookup table of everything an agent can reference.

    Registration is idempotent per key: registering the same name again
    replaces the previous entry.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._agents: dict[str, Agent] = {}
        self._models: dict[str, Model] = {}
        self._tools: dict[str, Tool] = {}
        self._tool_groups: dict[str, dict[str, Tool]] = {}
        self._pre_hooks: dict[str, RegisteredPreHook] = {}
        self._post_hooks: dict[str, RegisteredPostHook] = {}
        self._summary_hooks: dict[str, RegisteredSummaryHook] = {}

    # Registration

    async def register_agent(self, agent: Agent) -> None:
        async with self._lock:
            if agent.id in self._agents:
                logger.info("agent_replaced", agent_id=agent.id)
            self._agents[agent.id] = agent

    async def register_agents(self, agents: Iterable[Agent]) -> None:
        async with self._lock:
            for agent in agents:
                self._agents[agent.id] = agent

    async def unregister_agent(self, agent_id: str) -> bool:
        async with self._lock:
            return self._agents.pop(agent_id, None) is not None

    async def register_model(self, model: Model, name: str) -> None:
        async with self._lock:
            self._models[name] = model

    async def register_tool(self, tool: Tool, name: str | None = None) -> None:
        async with self._lock:
            self._tools[name or tool.name] = tool

    async def register_tools(self, tools: Iterable[Tool]) -> None:
        async with self._lock:
            for tool in tools:
                self._tools[tool.name] = tool

    async def register_tool_group(self, name: str, tools: Iterable[Tool]) -> None:
        """Publish tools under a group name that agents list in mcp_server_names."""
        async with self._lock:
            self._tool_groups[name] = {tool.name: tool for tool in tools}

    async def register_pre_hook(
        self, func: PreHookFunc, name: str, *, blocking: bool = True
    ) -> None:
        async with self._lock:
            self._pre_hooks[name] = RegisteredPreHook(
                config=Hook(name=name, blocking=blocking), func=func
            )

    async def register_post_hook(
        self, func: PostHookFunc, name: str, *, blocking: bool = True
    ) -> None:
        async with self._lock:
            self._post_hooks[name] = RegisteredPostHook(
                config=Hook(name=name, blocking=blocking), func=func
            )

    async def register_summary_hook(self, func: SummaryHookFunc, name: str) -> None:
        async with self._lock:
            self._summary_hooks[name] = RegisteredSummaryHook(name=name, func=func)

    # Lookups

    def get_agent(self, agent_id: str) -> Agent:
        """Look up an agent.

        Raises:
            AgentNotFoundError: If no agent has this ID
        """
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def has_agent(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def list_agents(self) -> list[Agent]:
        return list(self._agents.values())

    def get_model(self, name: str) -> Model:
        """Look up a model.

        Raises:
            ModelNotFoundError: If no model has this name
        """
        model = self._models.get(name)
        if model is None:
            raise ModelNotFoundError(name)
        return model

    def has_model(self, name: str) -> bool:
        return name in self._models

    def find_tool(self, name: str) -> Tool | None:
        """Look up a tool by name, in standalone tools and then tool groups."""
        tool = self._tools.get(name)
        if tool is not None:
            return tool
        for group in self._tool_groups.values():
            if name in group:
                return group[name]
        return None

    def has_tool_group(self, name: str) -> bool:
        return name in self._tool_groups

    def tools_for_agent(self, agent: Agent) -> dict[str, Tool]:
        """Resolve an agent's tools, in declaration order.

        Declared names that are not registered are skipped; so are tool
        groups that are not registered.
        """
        resolved: dict[str, Tool] = {}
        for name in agent.tool_names:
            tool = self.find_tool(name)
            if tool is None:
                logger.warning("tool_not_found", agent_id=agent.id, tool_name=name)
                continue
            resolved[name] = tool
        for group_name in agent.mcp_server_names:
            group = self._tool_groups.get(group_name)
            if group is None:
                logger.warning("tool_group_not_found", agent_id=agent.id, group=group_name)
                continue
            for name, tool in group.items():
                resolved.setdefault(name, tool)
        return resolved

    def get_pre_hook(self, name: str) -> RegisteredPreHook | None:
        return self._pre_hooks.get(name)

    def get_post_hook(self, name: str) -> RegisteredPostHook | None:
        return self._post_hooks.get(name)

    def get_summary_hook(self, name: str) -> RegisteredSummaryHook | None:
        return self._summary_hooks.get(name)
