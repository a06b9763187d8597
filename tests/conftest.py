"""Shared fixtures for the test suite."""

import io

import pytest
from rich.console import Console

from autobrowser.config import AgentConfig


@pytest.fixture
def console() -> Console:
    """Console writing to memory."""
    return Console(file=io.StringIO(), width=200)


@pytest.fixture
def fast_config() -> AgentConfig:
    """Agent configuration without delays."""
    return AgentConfig(iteration_delay=0, replay_delay=0, retry_backoff=2.0)
