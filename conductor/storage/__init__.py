"""Session and run persistence."""

from conductor.config.models.storage import StorageConfig
from conductor.storage.store import AgentStorage, compute_stats
from conductor.storage.stores import FileAgentStorage, InMemoryAgentStorage


def create_storage(config: StorageConfig) -> AgentStorage:
    """Build the storage backend named in the configuration."""
    if config.backend == "file":
        return FileAgentStorage(config.file_root)
    return InMemoryAgentStorage()


__all__ = [
    "AgentStorage",
    "FileAgentStorage",
    "InMemoryAgentStorage",
    "compute_stats",
    "create_storage",
]
