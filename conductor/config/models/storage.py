"""Storage backend configuration."""

from typing import Literal

from pydantic import BaseModel, Field


class StorageConfig(BaseModel):
    """Which storage backend to use for sessions and runs."""

    backend: Literal["inmemory", "file"] = Field(
        default="inmemory", description="Storage backend"
    )
    file_root: str = Field(
        default=".conductor", description="Root directory for the file backend"
    )
