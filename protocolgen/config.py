"""
Protocol generation configuration.

Defaults live on ProtocolConfig. A YAML file can override any field, and
PROTOCOLGEN_<FIELD> environment variables override the file.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "PROTOCOLGEN_"

# Upper bound on tasks loaded into a single protocol. Tasks beyond it are
# omitted from the report.
DEFAULT_TASK_CAP = 10_000


@dataclass(frozen=True)
class ProtocolConfig:
    """Configuration for protocol generation."""
    task_cap: int = DEFAULT_TASK_CAP
    max_workers: int = 2          # concurrent generation jobs
    max_pending: int = 8          # running + queued jobs before QueueFull
    read_workers: int = 4         # photo/blueprint read fan-out per job
    storage_root: Path = Path("./storage")

    def __post_init__(self):
        for name in ("task_cap", "max_workers", "max_pending", "read_workers"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.max_pending < self.max_workers:
            raise ValueError("max_pending must be >= max_workers")


_FIELD_TYPES = {f.name: f.type for f in fields(ProtocolConfig)}


def _coerce(name: str, value: Any) -> Any:
    if name == "storage_root":
        return Path(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {name}: {value!r}") from None


def _apply(config: ProtocolConfig, overrides: Mapping[str, Any], source: str) -> ProtocolConfig:
    updates: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in _FIELD_TYPES:
            logger.warning(f"Ignoring unknown config key '{key}' from {source}")
            continue
        updates[key] = _coerce(key, value)
    return replace(config, **updates) if updates else config


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> ProtocolConfig:
    """
    Build configuration from defaults, an optional YAML file and the environment.

    Args:
        path: YAML file with a mapping of field names to values
        environ: Environment mapping (defaults to os.environ)

    Returns:
        ProtocolConfig
    """
    config = ProtocolConfig()

    if path is not None:
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        config = _apply(config, data, str(path))
        if "storage_root" in data and not config.storage_root.is_absolute():
            config = replace(config, storage_root=path.parent / config.storage_root)
        logger.info(f"Loaded config from {path}")

    environ = os.environ if environ is None else environ
    env_overrides = {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in environ.items()
        if key.startswith(ENV_PREFIX)
    }
    return _apply(config, env_overrides, "environment")
