"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from structcall.tools import ToolRegistry, ToolSpec
from tests.fixtures.services import weather_definition


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def weather_registry() -> ToolRegistry:
    """Registry with a single synchronous get_weather tool."""
    return ToolRegistry(
        [ToolSpec(weather_definition(), handler=lambda args: f"Sunny in {args['city']}")]
    )


@pytest.fixture(autouse=True)
def clean_structcall_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment overrides out of tests."""
    for name in ("STRUCTCALL_BASE_URL", "STRUCTCALL_MODEL", "STRUCTCALL_MAX_TURNS"):
        monkeypatch.delenv(name, raising=False)
