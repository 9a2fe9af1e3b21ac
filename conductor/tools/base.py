"""Tool capability interface."""

import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from conductor.domain.opaque import OpaqueValue
from conductor.providers.model import ToolSpec


class Tool(ABC):
    """A named capability the model can call.

    Implementations raise any exception to report a tool-specific failure,
    which is handed back to the model. Raise ToolInfrastructureError to abort
    the run instead.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the tool name."""
        pass

    @property
    def description(self) -> str:
        return ""

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON schema of the arguments."""
        return {"type": "object", "properties": {}}

    @abstractmethod
    async def call(self, arguments: OpaqueValue) -> Any:
        """Execute the tool and return a JSON-compatible result."""
        pass

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, parameters=self.parameters)


class FunctionTool(Tool):
    """Tool backed by a plain function.

    Object arguments are passed as keyword arguments; anything else is
    passed positionally. Both sync and async functions are accepted.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> None:
        self._func = func
        self._name = name or func.__name__
        self._description = description if description is not None else (
            inspect.getdoc(func) or ""
        )
        self._parameters = parameters

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters(self) -> dict[str, Any]:
        if self._parameters is not None:
            return self._parameters
        return super().parameters

    async def call(self, arguments: OpaqueValue) -> Any:
        args = arguments.decode()
        if isinstance(args, dict):
            result = self._func(**args)
        elif args is None:
            result = self._func()
        else:
            result = self._func(args)
        if inspect.isawaitable(result):
            result = await result
        return result


def tool(
    name: str | None = None,
    *,
    description: str | None = None,
    parameters: dict[str, Any] | None = None,
) -> Callable[[Callable[..., Any]], FunctionTool]:
    """Decorator turning a function into a FunctionTool."""

    def decorator(func: Callable[..., Any]) -> FunctionTool:
        return FunctionTool(func, name=name, description=description, parameters=parameters)

    return decorator
