"""
Configuration management for the tagger.

The configuration is stored as a TOML file in the vault's tool directory
(``<vault>/.tagger/tagger.toml``). It holds connection and timing
parameters; user choices that change at runtime (model, vocabulary,
exclusions, tagging record) live in the JSON state file instead.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import tomli_w

CONFIG_FILENAME = "tagger.toml"
STATE_FILENAME = "data.json"
TOOL_DIRNAME = ".tagger"
CONFIG_VERSION = 1


@dataclass
class OllamaConfig:
    """Where and how to reach the Ollama service."""
    url: str = ""  # empty: OLLAMA_HOST, then http://localhost:11434
    timeout: float = 120.0


@dataclass
class ScheduleConfig:
    """Auto-tag timing."""
    debounce_seconds: float = 2.0
    settle_seconds: float = 0.5
    poll_interval: float = 1.0


@dataclass
class TaggerConfig:
    """Complete tagger configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    extensions: list[str] = field(default_factory=lambda: ["md"])

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def state_path(self) -> Path:
        """Path to the JSON state file."""
        return self.path / STATE_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_tool_directory(vault: Path | None = None) -> Path:
    """
    Resolve the tool directory for a vault.

    Priority: explicit vault argument, TAGGER_VAULT, current directory.
    """
    if vault is None:
        env = os.environ.get("TAGGER_VAULT")
        vault = Path(env) if env else Path.cwd()
    return Path(vault).expanduser().resolve() / TOOL_DIRNAME


def load_config(tool_dir: Path) -> TaggerConfig:
    """
    Load configuration from a tool directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = tool_dir / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    version = data.get("tagger", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    ollama = data.get("ollama", {})
    schedule = data.get("schedule", {})
    documents = data.get("documents", {})
    defaults = ScheduleConfig()

    return TaggerConfig(
        path=tool_dir,
        version=version,
        created=data.get("tagger", {}).get("created", ""),
        ollama=OllamaConfig(
            url=str(ollama.get("url", "")),
            timeout=float(ollama.get("timeout", OllamaConfig.timeout)),
        ),
        schedule=ScheduleConfig(
            debounce_seconds=float(schedule.get("debounce_seconds", defaults.debounce_seconds)),
            settle_seconds=float(schedule.get("settle_seconds", defaults.settle_seconds)),
            poll_interval=float(schedule.get("poll_interval", defaults.poll_interval)),
        ),
        extensions=[
            str(e).lstrip(".").lower()
            for e in documents.get("extensions", ["md"])
        ],
    )


def save_config(config: TaggerConfig) -> None:
    """
    Save configuration to the tool directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "tagger": {
            "version": config.version,
            "created": config.created,
        },
        "ollama": {"timeout": config.ollama.timeout},
        "schedule": {
            "debounce_seconds": config.schedule.debounce_seconds,
            "settle_seconds": config.schedule.settle_seconds,
            "poll_interval": config.schedule.poll_interval,
        },
        "documents": {
            "extensions": list(config.extensions),
        },
    }
    if config.ollama.url:
        data["ollama"]["url"] = config.ollama.url

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(tool_dir: Path) -> TaggerConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    if (tool_dir / CONFIG_FILENAME).exists():
        return load_config(tool_dir)
    config = TaggerConfig(path=tool_dir)
    save_config(config)
    return config
