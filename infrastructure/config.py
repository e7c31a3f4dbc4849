"""
DEREN CONFIG - TOML Configuration Loading

Configuration is read once from config/deren.toml and converted into typed
sections. Components receive the section they need instead of reading the
file themselves.

Sections:
    [orchestrator]  simulated latency of the mission pipeline
    [project]       default project file and title
    [logging]       log level and mutation/diagnostic log files

Usage:
    from infrastructure.config import load_config

    config = load_config()
    orchestrator = MissionOrchestrator(config=config.orchestrator)
"""
import msgspec
import os
import tomllib
import warnings
from typing import Optional, Dict, Any
from pathlib import Path


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "deren.toml"
CONFIG_ENV_VAR = "DEREN_CONFIG"


# =============================================================================
# SECTIONS
# =============================================================================

class OrchestratorConfig(msgspec.Struct, kw_only=True):
    """Simulated latency, in seconds. Zero disables the sleep."""
    progress_delay: float = 0.5         # after every progress event
    planning_delay: float = 1.0
    step_delay: float = 1.5             # per execution step
    synthesis_delay: float = 1.0
    tool_latency_scale: float = 1.0     # multiplier on simulated capability latency


class ProjectConfig(msgspec.Struct, kw_only=True):
    path: str = "deren-project.json"
    title: str = "DEREN Project"


class LoggingConfig(msgspec.Struct, kw_only=True):
    level: str = "INFO"
    mutation_log: bool = False          # write JSONL mutation logs
    log_dir: str = "./workspace/logs"
    diagnostics_log: Optional[str] = None


class DerenConfig(msgspec.Struct, kw_only=True):
    orchestrator: OrchestratorConfig = msgspec.field(default_factory=OrchestratorConfig)
    project: ProjectConfig = msgspec.field(default_factory=ProjectConfig)
    logging: LoggingConfig = msgspec.field(default_factory=LoggingConfig)


# =============================================================================
# LOADING
# =============================================================================

def config_path() -> Path:
    """The config file in use: $DEREN_CONFIG if set, else config/deren.toml."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return DEFAULT_CONFIG_PATH


def load_toml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the raw configuration tables.

    Returns:
        Dict with all configuration sections (empty if the file is missing
        or unreadable)
    """
    path = Path(path) if path is not None else config_path()
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from TOML: {e}")
        return {}


def load_config(path: Optional[Path] = None) -> DerenConfig:
    """
    Load and validate configuration.

    Unknown sections are ignored; missing sections and keys take defaults.

    Raises:
        msgspec.ValidationError: If a known key has the wrong type
    """
    raw = load_toml_config(path)
    return msgspec.convert(raw, type=DerenConfig)
