"""Pytest configuration and fixtures."""

import pytest
import os

# Set test environment before any aikit import reads config
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.pop("AIKIT_STORE_PATH", None)

from aikit.infra.storage import InMemoryKeyValueStore
from aikit.models.tool import ToolDescriptor


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def nav_click():
    return ToolDescriptor(
        name="nav.click",
        label="Click",
        description="Click an element on the current page",
        parameters={"type": "object", "properties": {"selector": {"type": "string"}}},
    )


@pytest.fixture
def clock_now():
    return ToolDescriptor(
        name="clock.now",
        label="Now",
        description="Current time",
        parameters={"type": "object", "properties": {}},
    )
