"""
Configuration management for the wallpapy server.

The configuration is stored as a TOML file in the data directory. It is
loaded once at process start into a ServerConfig, which is then passed to
every component that needs it.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w

CONFIG_FILENAME = "wallpapy.toml"
CONFIG_VERSION = 1
DATABASE_FILENAME = "wallpapy.db"

DEFAULT_DATA_DIR = Path.home() / ".wallpapy"


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ServerConfig:
    """Complete server configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    summarization: ProviderConfig = field(default_factory=lambda: ProviderConfig("none"))

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        """Path to the SQLite key-value store."""
        return self.path / DATABASE_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_data_dir(override: Optional[Path] = None) -> Path:
    """
    Resolve the data directory.

    Priority: explicit override, WALLPAPY_DATA_PATH, ~/.wallpapy
    """
    if override is not None:
        return Path(override).expanduser()
    env = os.environ.get("WALLPAPY_DATA_PATH")
    if env:
        return Path(env).expanduser()
    return DEFAULT_DATA_DIR


def detect_default_summarization() -> ProviderConfig:
    """OpenAI when an API key is available, otherwise no summarization."""
    has_openai_key = bool(
        os.environ.get("WALLPAPY_OPENAI_API_KEY") or
        os.environ.get("OPENAI_API_KEY")
    )
    if has_openai_key:
        return ProviderConfig("openai", {"model": "gpt-4o-mini", "timeout": 30.0})
    return ProviderConfig("none")


def create_default_config(data_path: Path) -> ServerConfig:
    """Create a new config with auto-detected defaults."""
    return ServerConfig(path=data_path, summarization=detect_default_summarization())


def load_config(data_path: Path) -> ServerConfig:
    """
    Load configuration from a data directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = data_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    version = data.get("server", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    section = data.get("summarization", {"name": "none"})
    summarization = ProviderConfig(
        name=section.get("name", "none"),
        params={k: v for k, v in section.items() if k != "name"},
    )

    return ServerConfig(
        path=data_path,
        version=version,
        created=data.get("server", {}).get("created", ""),
        summarization=summarization,
    )


def save_config(config: ServerConfig) -> None:
    """
    Save configuration to the data directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    summarization = {"name": config.summarization.name}
    summarization.update(config.summarization.params)

    data = {
        "server": {
            "version": config.version,
            "created": config.created,
        },
        "summarization": summarization,
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(data_path: Path) -> ServerConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    if (data_path / CONFIG_FILENAME).exists():
        return load_config(data_path)
    config = create_default_config(data_path)
    save_config(config)
    return config
