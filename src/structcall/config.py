"""Configuration loading.

Settings come from a YAML file (``structcall.yaml`` by default) and can be
overridden by environment variables:

- ``STRUCTCALL_BASE_URL``: completion endpoint base URL
- ``STRUCTCALL_MODEL``: default model
- ``STRUCTCALL_MAX_TURNS``: maximum service calls per resolution
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from structcall.providers.openai_compat import DEFAULT_BASE_URL, DEFAULT_MODEL, DEFAULT_TIMEOUT
from structcall.providers.retry import RetryPolicy
from structcall.schema.builder import DEFAULT_MAX_DEPTH, DEFAULT_MAX_OBJECTS

DEFAULT_CONFIG_FILE = Path("structcall.yaml")
DEFAULT_MAX_TURNS = 10
DEFAULT_MAX_CONCURRENCY = 4


class ConfigError(Exception):
    """Raised when configuration cannot be loaded."""

    def __init__(self, path: Path | None, reason: str) -> None:
        self.path = path
        self.reason = reason
        where = f" at {path}" if path is not None else ""
        super().__init__(f"Failed to load config{where}: {reason}")


@dataclass
class RetryConfig:
    """Backoff settings for transient service failures.

    Attributes:
        max_attempts: Total attempts per service call (1 disables retry).
        base_delay: Seconds before the first retry.
        max_delay: Upper bound for a single delay.
    """

    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 30.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryConfig:
        return cls(
            max_attempts=int(data.get("max_attempts", 4)),
            base_delay=float(data.get("base_delay", 0.5)),
            max_delay=float(data.get("max_delay", 30.0)),
        )

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
        )


@dataclass
class SchemaLimits:
    """Host ceilings applied when validating schemas."""

    max_depth: int = DEFAULT_MAX_DEPTH
    max_objects: int = DEFAULT_MAX_OBJECTS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaLimits:
        return cls(
            max_depth=int(data.get("max_depth", DEFAULT_MAX_DEPTH)),
            max_objects=int(data.get("max_objects", DEFAULT_MAX_OBJECTS)),
        )


@dataclass
class StructcallConfig:
    """Complete configuration.

    Attributes:
        base_url: Completion endpoint base URL.
        model: Default model.
        api_key_env: Environment variable that holds the API key.
        timeout: Request timeout in seconds.
        max_turns: Maximum service calls per resolution (None for unbounded).
        max_concurrency: Maximum concurrently running tool handlers.
        parallel_tool_calls: Whether a turn's tool calls run concurrently.
        retry: Backoff settings.
        schema_limits: Schema validation ceilings.
    """

    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    api_key_env: str = "OPENAI_API_KEY"
    timeout: float = DEFAULT_TIMEOUT
    max_turns: int | None = DEFAULT_MAX_TURNS
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    parallel_tool_calls: bool = True
    retry: RetryConfig = field(default_factory=RetryConfig)
    schema_limits: SchemaLimits = field(default_factory=SchemaLimits)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StructcallConfig:
        """Create config from dictionary.

        Args:
            data: Parsed YAML content. Unknown keys are ignored.

        Returns:
            StructcallConfig instance.
        """
        service = data.get("service", {}) or {}
        resolution = data.get("resolution", {}) or {}
        max_turns = resolution.get("max_turns", DEFAULT_MAX_TURNS)
        return cls(
            base_url=service.get("base_url", DEFAULT_BASE_URL),
            model=service.get("model", DEFAULT_MODEL),
            api_key_env=service.get("api_key_env", "OPENAI_API_KEY"),
            timeout=float(service.get("timeout", DEFAULT_TIMEOUT)),
            max_turns=int(max_turns) if max_turns is not None else None,
            max_concurrency=int(resolution.get("max_concurrency", DEFAULT_MAX_CONCURRENCY)),
            parallel_tool_calls=bool(resolution.get("parallel_tool_calls", True)),
            retry=RetryConfig.from_dict(dict(data.get("retry", {}) or {})),
            schema_limits=SchemaLimits.from_dict(dict(data.get("schema_limits", {}) or {})),
        )

    def apply_env(self) -> StructcallConfig:
        """Apply environment overrides in place and return self."""
        if base_url := os.getenv("STRUCTCALL_BASE_URL"):
            self.base_url = base_url
        if model := os.getenv("STRUCTCALL_MODEL"):
            self.model = model
        if max_turns := os.getenv("STRUCTCALL_MAX_TURNS"):
            try:
                self.max_turns = int(max_turns)
            except ValueError as e:
                raise ConfigError(
                    None, f"STRUCTCALL_MAX_TURNS must be an integer, got {max_turns!r}"
                ) from e
        return self


def load_config(path: Path | None = None) -> StructcallConfig:
    """Load configuration and apply environment overrides.

    Args:
        path: Config file. If None, ``structcall.yaml`` in the current directory
            is used when it exists, otherwise defaults apply.

    Returns:
        StructcallConfig instance.

    Raises:
        ConfigError: If the file is missing (explicit path), unreadable or invalid.
    """
    if path is None:
        if not DEFAULT_CONFIG_FILE.exists():
            return StructcallConfig().apply_env()
        path = DEFAULT_CONFIG_FILE

    if not path.exists():
        raise ConfigError(path, "File not found")

    yaml = YAML()
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(path, "Top level must be a mapping")

        config = StructcallConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(path, str(e)) from e

    return config.apply_env()
