"""
StorageForge configuration management.

Provides centralized configuration with validation using Pydantic.
The install plan itself lives in storageforge.core.plan; this module holds
the settings that stay the same across provisioning runs.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".storageforge" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class ExecutionConfig(BaseModel):
    """Configuration for how provisioning commands are executed."""

    dry_run_default: bool = False
    require_confirmation: bool = True
    host_checks_enabled: bool = True
    check_required_tools: bool = True
    settle_after_partitioning: bool = True
    raid_config_path: str = "etc/mdadm.conf"
    crypttab_path: str = "etc/crypttab"
    write_crypttab: bool = True

    @field_validator("raid_config_path", "crypttab_path")
    @classmethod
    def relative_to_target(cls, v: str) -> str:
        # Joined onto the target root, so a leading slash would escape it
        return v.lstrip("/")


class StorageForgeConfig(BaseModel):
    """Main StorageForge configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    session_directory: Path = Field(
        default_factory=lambda: Path.home() / ".storageforge" / "sessions"
    )

    @field_validator("session_directory", mode="before")
    @classmethod
    def expand_session_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> StorageForgeConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = Path.home() / ".storageforge" / "config.json"

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = Path.home() / ".storageforge" / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        self.session_directory.mkdir(parents=True, exist_ok=True)

    def get_session_file(self) -> Path:
        """Get path for a new session report file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        return self.session_directory / f"session_{timestamp}.json"


def get_default_config() -> StorageForgeConfig:
    """Get the default configuration."""
    return StorageForgeConfig()


def load_config(config_path: Path | None = None) -> StorageForgeConfig:
    """Load or create configuration."""
    config = StorageForgeConfig.load(config_path)
    config.ensure_directories()
    return config
