"""Configuration loading and management."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from turnwright.constants import (
    DEFAULT_CONTINUATION_TAIL_CHARS,
    DEFAULT_ENVIRONMENT,
    DEFAULT_KNOWLEDGE_CACHE_ENABLED,
    DEFAULT_KNOWLEDGE_CACHE_THRESHOLD,
    DEFAULT_MAX_CONTINUES,
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_MAX_READ_MB,
    DEFAULT_MAX_TOOL_CALLS,
    DEFAULT_MAX_WRITE_MB,
    DEFAULT_MODEL,
    DEFAULT_ROUTER_MODEL,
    DEFAULT_TEST_TIMEOUT,
    ENVIRONMENTS,
    STATE_DIR,
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """turnwright configuration.

    Loads from .env and optionally .turnwright/config.json
    """

    # API Keys
    anthropic_api_key: Optional[str] = None

    # Model settings
    default_model: str = DEFAULT_MODEL
    router_model: str = DEFAULT_ROUTER_MODEL
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS

    # Executor loop
    max_tool_calls: int = DEFAULT_MAX_TOOL_CALLS
    max_continues: int = DEFAULT_MAX_CONTINUES
    continuation_tail_chars: int = DEFAULT_CONTINUATION_TAIL_CHARS

    # Knowledge cache
    knowledge_cache_enabled: bool = DEFAULT_KNOWLEDGE_CACHE_ENABLED
    knowledge_cache_threshold: int = DEFAULT_KNOWLEDGE_CACHE_THRESHOLD

    # Test runner
    test_timeout: int = DEFAULT_TEST_TIMEOUT

    # File limits
    max_read_mb: int = DEFAULT_MAX_READ_MB
    max_write_mb: int = DEFAULT_MAX_WRITE_MB

    # Project settings (from .turnwright/config.json)
    environment: str = DEFAULT_ENVIRONMENT
    custom_system_prompt: str = ""
    pinned_files: list[str] = field(default_factory=list)

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> "Config":
        """Load configuration from environment and project-specific config.

        Args:
            project_root: Project root directory (for .turnwright/config.json)

        Returns:
            Config instance
        """
        # Load .env file
        load_dotenv()

        config = cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            default_model=os.getenv("TURNWRIGHT_MODEL", DEFAULT_MODEL),
            router_model=os.getenv("TURNWRIGHT_ROUTER_MODEL", DEFAULT_ROUTER_MODEL),
            max_tool_calls=int(os.getenv("TURNWRIGHT_MAX_TOOL_CALLS", DEFAULT_MAX_TOOL_CALLS)),
            max_continues=int(os.getenv("TURNWRIGHT_MAX_CONTINUES", DEFAULT_MAX_CONTINUES)),
            knowledge_cache_enabled=_env_bool(
                "TURNWRIGHT_KNOWLEDGE_CACHE", DEFAULT_KNOWLEDGE_CACHE_ENABLED
            ),
            knowledge_cache_threshold=int(
                os.getenv("TURNWRIGHT_KNOWLEDGE_THRESHOLD", DEFAULT_KNOWLEDGE_CACHE_THRESHOLD)
            ),
            test_timeout=int(os.getenv("TURNWRIGHT_TEST_TIMEOUT", DEFAULT_TEST_TIMEOUT)),
            max_read_mb=int(os.getenv("TURNWRIGHT_MAX_READ_MB", DEFAULT_MAX_READ_MB)),
            max_write_mb=int(os.getenv("TURNWRIGHT_MAX_WRITE_MB", DEFAULT_MAX_WRITE_MB)),
        )

        # Load project-specific config if available
        if project_root:
            project_config_path = project_root / STATE_DIR / "config.json"
            if project_config_path.exists():
                try:
                    with open(project_config_path) as f:
                        project_config = json.load(f)
                except (json.JSONDecodeError, IOError):
                    project_config = {}  # Ignore invalid config
                config.apply_project_settings(project_config)

        return config

    def apply_project_settings(self, settings: dict) -> None:
        """Override fields with values from a project config file.

        Args:
            settings: Parsed contents of .turnwright/config.json
        """
        if "environment" in settings:
            self.environment = str(settings["environment"])
        if "custom_system_prompt" in settings:
            self.custom_system_prompt = str(settings["custom_system_prompt"] or "")
        if "knowledge_cache_enabled" in settings:
            self.knowledge_cache_enabled = bool(settings["knowledge_cache_enabled"])
        if "knowledge_cache_threshold" in settings:
            self.knowledge_cache_threshold = int(settings["knowledge_cache_threshold"])
        if "max_tool_calls" in settings:
            self.max_tool_calls = int(settings["max_tool_calls"])
        if isinstance(settings.get("pinned_files"), list):
            self.pinned_files = [str(p) for p in settings["pinned_files"]]

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if not self.anthropic_api_key:
            errors.append("No API key found. Set ANTHROPIC_API_KEY")

        if self.max_tool_calls <= 0:
            errors.append("max_tool_calls must be positive")

        if self.max_continues < 0:
            errors.append("max_continues must not be negative")

        if self.knowledge_cache_threshold <= 0:
            errors.append("knowledge_cache_threshold must be positive")

        if self.test_timeout <= 0:
            errors.append("test_timeout must be positive")

        if self.max_read_mb <= 0:
            errors.append("max_read_mb must be positive")

        if self.max_write_mb <= 0:
            errors.append("max_write_mb must be positive")

        if self.environment not in ENVIRONMENTS:
            errors.append(
                f"Unknown environment: {self.environment}. "
                f"Available: {', '.join(ENVIRONMENTS)}"
            )

        return errors

    def to_dict(self) -> dict:
        """Convert config to dictionary (for logging/display)."""
        return {
            "default_model": self.default_model,
            "router_model": self.router_model,
            "max_tool_calls": self.max_tool_calls,
            "max_continues": self.max_continues,
            "knowledge_cache_enabled": self.knowledge_cache_enabled,
            "knowledge_cache_threshold": self.knowledge_cache_threshold,
            "test_timeout": self.test_timeout,
            "max_read_mb": self.max_read_mb,
            "max_write_mb": self.max_write_mb,
            "environment": self.environment,
            "has_custom_prompt": bool(self.custom_system_prompt.strip()),
            "pinned_files": self.pinned_files,
            "has_anthropic_key": bool(self.anthropic_api_key),
        }
