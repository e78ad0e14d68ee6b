import os
import logging
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import numpy as np
import yaml

CONFIG_ENV = "TAPEGRAD_CONFIG"
DEFAULT_CONFIG_PATH = Path("tapegrad.yaml")

_ENV_OVERRIDES = {
    "dtype": "TAPEGRAD_DTYPE",
    "zero_fill": "TAPEGRAD_ZERO_FILL",
    "log_level": "TAPEGRAD_LOG_LEVEL",
}


@dataclass(frozen=True)
class Config:
    dtype: str = "float32"
    zero_fill: bool = False
    log_level: str = "WARNING"

    def validate(self) -> "Config":
        np.dtype(self.dtype)
        if not isinstance(self.zero_fill, bool):
            raise ValueError(f"zero_fill must be a boolean, got {self.zero_fill!r}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")
        return self


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


def _check_keys(values: Dict[str, Any]) -> None:
    known = {f.name for f in fields(Config)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")


def load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration values from a YAML file, or {} if there is none."""
    cfg_path = Path(path or os.getenv(CONFIG_ENV, DEFAULT_CONFIG_PATH))
    if not cfg_path.exists():
        return {}
    with open(cfg_path, "r") as f:
        values = yaml.safe_load(f) or {}
    if not isinstance(values, dict):
        raise ValueError(f"{cfg_path} must contain a mapping, got {type(values).__name__}")
    _check_keys(values)
    return values


def load_env_overrides() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, env_name in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None:
            continue
        values[key] = _parse_bool(raw) if key == "zero_fill" else raw
    return values


def load_config(path: Optional[str] = None) -> Config:
    """YAML file first, environment variables win."""
    values = load_yaml_config(path)
    values.update(load_env_overrides())
    return Config(**values).validate()


_config: Optional[Config] = None


def _apply(config: Config) -> None:
    logging.getLogger("tapegrad").setLevel(config.log_level.upper())


def get_config() -> Config:
    global _config
    if _config is None:
        _config = load_config()
        _apply(_config)
    return _config


def set_config(**overrides: Any) -> Config:
    global _config
    _check_keys(overrides)
    _config = replace(get_config(), **overrides).validate()
    _apply(_config)
    return _config


@contextmanager
def config_override(**overrides: Any) -> Iterator[Config]:
    previous = get_config()
    try:
        yield set_config(**overrides)
    finally:
        set_config(**{f.name: getattr(previous, f.name) for f in fields(Config)})
