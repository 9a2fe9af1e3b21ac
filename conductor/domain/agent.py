"""Agent descriptor models."""

from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class Agent(BaseModel):
    """Immutable agent descriptor.

    Agents reference models, tools, tool groups and hooks by name. The
    names are resolved against the registry at run time, so an agent may be
    registered before the things it refers to.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique identifier")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="What the agent does")
    model_name: str = Field(..., description="Registered model to call")
    instructions: str = Field(default="", description="System instruction text")
    tool_names: tuple[str, ...] = Field(default=(), description="Tools the agent may use")
    mcp_server_names: tuple[str, ...] = Field(
        default=(), description="Tool groups whose tools the agent may use"
    )
    pre_hook_names: tuple[str, ...] = Field(
        default=(), description="Pre-hooks in execution order"
    )
    post_hook_names: tuple[str, ...] = Field(
        default=(), description="Post-hooks in execution order"
    )
    summary_hook_name: str | None = Field(
        default=None, description="Summary hook used when history is trimmed"
    )


class AgentSessionContext(BaseModel):
    """Addresses one logical conversation."""

    model_config = ConfigDict(frozen=True)

    agent_id: str = Field(..., description="Agent serving the conversation")
    user_id: str = Field(..., description="User taking part in the conversation")
    session_id: UUID = Field(..., description="Session holding the conversation")
