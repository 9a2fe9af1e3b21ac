"""Tool capability interface and function-backed tools."""

from conductor.tools.base import FunctionTool, Tool, tool

__all__ = ["FunctionTool", "Tool", "tool"]
