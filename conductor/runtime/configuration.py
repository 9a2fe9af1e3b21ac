"""Declarative agent configuration.

A configuration lists agents and the tool groups they use. Models, tools and
hooks are code and are registered programmatically; the configuration only
refers to them by name. Validation is all-or-nothing: every problem is
collected and reported before anything is registered.
"""

from collections import Counter
from pathlib import Path

from pydantic import BaseModel, Field

from conductor.config.loader import load_toml
from conductor.domain import Agent
from conductor.errors import InvalidConfigurationError
from conductor.runtime.registry import DescriptorRegistry


class ToolGroupConfig(BaseModel):
    """Named group of registered tools, referenced from mcp_server_names."""

    name: str = Field(..., description="Group name")
    tool_names: list[str] = Field(default_factory=list, description="Tools in the group")


class AgentConfiguration(BaseModel):
    """Agents and tool groups to register together."""

    agents: list[Agent] = Field(default_factory=list, description="Agent descriptors")
    tool_groups: list[ToolGroupConfig] = Field(
        default_factory=list, description="Tool groups to publish"
    )

    @classmethod
    def from_toml(cls, path: str | Path) -> "AgentConfiguration":
        """Read a configuration from a TOML file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            pydantic.ValidationError: If the file has the wrong shape
        """
        return cls.model_validate(load_toml(Path(path)))


def _duplicates(names: list[str]) -> list[str]:
    return sorted(name for name, count in Counter(names).items() if count > 1)


def validate_configuration(config: AgentConfiguration, registry: DescriptorRegistry) -> None:
    """Check a configuration against itself and the registry.

    Raises:
        InvalidConfigurationError: Listing every problem found
    """
    problems: list[str] = []

    for agent_id in _duplicates([agent.id for agent in config.agents]):
        problems.append(f"duplicate agent id '{agent_id}'")
    for group in _duplicates([group.name for group in config.tool_groups]):
        problems.append(f"duplicate tool group '{group}'")

    for group in config.tool_groups:
        for tool_name in group.tool_names:
            if registry.find_tool(tool_name) is None:
                problems.append(f"tool group '{group.name}' references unknown tool '{tool_name}'")

    group_names = {group.name for group in config.tool_groups}
    for agent in config.agents:
        if not registry.has_model(agent.model_name):
            problems.append(f"agent '{agent.id}' references unknown model '{agent.model_name}'")
        for tool_name in agent.tool_names:
            if registry.find_tool(tool_name) is None:
                problems.append(f"agent '{agent.id}' references unknown tool '{tool_name}'")
        for group_name in agent.mcp_server_names:
            if group_name not in group_names and not registry.has_tool_group(group_name):
                problems.append(
                    f"agent '{agent.id}' references unknown tool group '{group_name}'"
                )
        for hook_name in agent.pre_hook_names:
            if registry.get_pre_hook(hook_name) is None:
                problems.append(f"agent '{agent.id}' references unknown pre-hook '{hook_name}'")
        for hook_name in agent.post_hook_names:
            if registry.get_post_hook(hook_name) is None:
                problems.append(f"agent '{agent.id}' references unknown post-hook '{hook_name}'")
        if agent.summary_hook_name and registry.get_summary_hook(agent.summary_hook_name) is None:
            problems.append(
                f"agent '{agent.id}' references unknown summary hook '{agent.summary_hook_name}'"
            )

    if problems:
        raise InvalidConfigurationError("; ".join(problems))
