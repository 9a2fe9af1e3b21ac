"""Shared test fixtures for the Conductor test suite."""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
import structlog

from conductor.domain import Agent
from conductor.providers import MockModel
from conductor.runtime import AgentCenter
from conductor.storage import InMemoryAgentStorage


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory for testing."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def mock_toml_files(test_config_dir: Path) -> Callable[[dict[str, str]], None]:
    """Factory fixture to create TOML files in the test config directory.

    Usage:
        def test_something(mock_toml_files):
            mock_toml_files({
                "default.toml": "app_name = 'test'",
                "development.toml": "debug = true",
            })
    """

    def _create_toml_files(files: dict[str, str]) -> None:
        for filename, content in files.items():
            (test_config_dir / filename).write_text(content)

    return _create_toml_files


class EnvOverrideContext:
    """Context manager for temporarily setting environment variables."""

    def __init__(self, overrides: dict[str, str]) -> None:
        self.overrides = overrides
        self.original_env: dict[str, str | None] = {}

    def __enter__(self) -> None:
        for key, value in self.overrides.items():
            self.original_env[key] = os.environ.get(key)
            os.environ[key] = value

    def __exit__(self, *args: Any) -> None:
        for key in self.overrides:
            original = self.original_env[key]
            if original is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = original


@pytest.fixture
def env_override() -> Callable[[dict[str, str]], EnvOverrideContext]:
    """Temporarily set environment variables.

    Usage:
        def test_something(env_override):
            with env_override({"CONDUCTOR_DEBUG": "true"}):
                ...
    """

    def _env_override(overrides: dict[str, str]) -> EnvOverrideContext:
        return EnvOverrideContext(overrides)

    return _env_override


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Clear the settings cache before and after each test."""
    from conductor.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Drop logging configuration made by a test, including captured streams."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def storage() -> InMemoryAgentStorage:
    """Fresh in-memory storage."""
    return InMemoryAgentStorage()


@pytest.fixture
def model() -> MockModel:
    """Mock model that answers "ok" once its script runs out."""
    return MockModel(default_response="ok")


@pytest.fixture
def agent() -> Agent:
    return Agent(
        id="assistant",
        name="Assistant",
        model_name="mock",
        instructions="You are a helpful assistant.",
    )


@pytest_asyncio.fixture
async def center(storage: InMemoryAgentStorage, model: MockModel, agent: Agent) -> AgentCenter:
    """AgentCenter with the mock model and the default agent registered."""
    center = AgentCenter(storage)
    await center.register_model(model, "mock")
    await center.register_agent(agent)
    return center
