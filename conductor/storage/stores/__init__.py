"""AgentStorage implementations."""

from conductor.storage.stores.file import FileAgentStorage
from conductor.storage.stores.inmemory import InMemoryAgentStorage

__all__ = ["FileAgentStorage", "InMemoryAgentStorage"]
