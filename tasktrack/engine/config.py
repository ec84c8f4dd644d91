"""
TaskTrack Configuration — Load and validate tasktrack.yaml at startup.

Usage:
    from tasktrack.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from tasktrack.engine.errors import ConfigError

CONFIG_FILENAME = "tasktrack.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for tasktrack.yaml
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    url: str = "sqlite:///tasktrack.db"
    pool_size: int = 5
    max_overflow: int = 10
    pool_pre_ping: bool = True
    echo: bool = False


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".tasktrack/logs"
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level '{v}'")
        return v


class SecurityConfig(BaseModel):
    password_min_length: int = 8
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    policy: str = "allow_all"

    @field_validator("policy")
    @classmethod
    def validate_policy(cls, v: str) -> str:
        if v not in ("allow_all", "role"):
            raise ValueError(f"policy must be allow_all/role, got '{v}'")
        return v


class RollupConfig(BaseModel):
    max_depth: int = Field(default=100, ge=1)
    enforce_leaf_on_complete: bool = True


class TaskTrackConfig(BaseModel):
    """Root model for tasktrack.yaml."""
    name: str = "TaskTrack"
    environment: str = "dev"

    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    security: SecurityConfig = SecurityConfig()
    rollup: RollupConfig = RollupConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[TaskTrackConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for tasktrack.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def load_config(config_path: Optional[str] = None) -> TaskTrackConfig:
    """
    Load and validate tasktrack.yaml.

    Args:
        config_path: Explicit path to tasktrack.yaml. If None, auto-discovers.

    Returns:
        Validated TaskTrackConfig instance. Defaults when no file exists.

    Raises:
        ConfigError: the file exists but is not valid YAML or fails validation.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        _config = TaskTrackConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}", path=str(path)) from e

    # The "platform" block carries name/environment; everything else is top-level
    platform_data = raw.get("platform", {}) or {}
    config_data = {
        "name": platform_data.get("name", raw.get("name", "TaskTrack")),
        "environment": platform_data.get("environment", raw.get("environment", "dev")),
        "database": raw.get("database", {}) or {},
        "logging": raw.get("logging", {}) or {},
        "security": raw.get("security", {}) or {},
        "rollup": raw.get("rollup", {}) or {},
    }

    try:
        _config = TaskTrackConfig(**config_data)
    except PydanticValidationError as e:
        raise ConfigError(
            f"Invalid configuration in {path}",
            path=str(path),
            errors=e.errors(),
        ) from e
    return _config


def get_config() -> TaskTrackConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: TaskTrackConfig) -> None:
    """Install an already-built config (used by the CLI and tests)."""
    global _config
    _config = config
