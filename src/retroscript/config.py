"""
Engine configuration.

Settings come from a YAML file of the form::

    limits:
      timeout_seconds: 30
      max_loop_iterations: 100000
      max_call_depth: 100
      yield_interval: 500
    autoexec:
      paths: [C:/Windows/autoexec.retro]
      timeout_seconds: 10
    log_level: WARNING

The file is found by explicit path, else $RETROSCRIPT_CONFIG, else
~/.config/retroscript/config.yaml. Missing files fall back to defaults.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

CONFIG_ENV_VAR = "RETROSCRIPT_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/retroscript/config.yaml")

DEFAULT_AUTOEXEC_PATHS = [
    "C:/Windows/autoexec.retro",
    "C:/Scripts/autoexec.retro",
    "C:/Users/User/autoexec.retro",
]


class ConfigError(Exception):
    """Invalid or unreadable configuration."""
    pass


@dataclass(frozen=True)
class EngineLimits:
    """Resource limits enforced by the governor on every run."""
    timeout_seconds: float = 30.0
    max_loop_iterations: int = 100_000
    max_call_depth: int = 100
    yield_interval: int = 500

    def with_timeout(self, timeout_seconds: Optional[float]) -> "EngineLimits":
        if timeout_seconds is None:
            return self
        return replace(self, timeout_seconds=float(timeout_seconds))


@dataclass(frozen=True)
class EngineConfig:
    limits: EngineLimits = field(default_factory=EngineLimits)
    autoexec_paths: List[str] = field(default_factory=lambda: list(DEFAULT_AUTOEXEC_PATHS))
    autoexec_timeout_seconds: float = 10.0
    log_level: str = "WARNING"


def _check_keys(section: str, data: Dict[str, Any], allowed) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ConfigError(f"unknown key(s) in {section}: {', '.join(unknown)}")


def _positive(section: str, key: str, value: Any, kind=float):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{section}.{key} must be a number, got {type(value).__name__}")
    if value <= 0:
        raise ConfigError(f"{section}.{key} must be positive")
    return kind(value)


def config_from_dict(data: Optional[Dict[str, Any]]) -> EngineConfig:
    """Build an EngineConfig from parsed YAML, validating every key."""
    if data is None:
        return EngineConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"expected mapping at root, got {type(data).__name__}")
    _check_keys("config", data, ("limits", "autoexec", "log_level"))

    limits_data = data.get("limits") or {}
    if not isinstance(limits_data, dict):
        raise ConfigError("limits must be a mapping")
    limit_fields = {f.name: f for f in fields(EngineLimits)}
    _check_keys("limits", limits_data, limit_fields)
    limits = EngineLimits(**{
        key: _positive("limits", key, value, float if key == "timeout_seconds" else int)
        for key, value in limits_data.items()
    })

    autoexec = data.get("autoexec") or {}
    if not isinstance(autoexec, dict):
        raise ConfigError("autoexec must be a mapping")
    _check_keys("autoexec", autoexec, ("paths", "timeout_seconds"))
    paths = autoexec.get("paths", DEFAULT_AUTOEXEC_PATHS)
    if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
        raise ConfigError("autoexec.paths must be a list of strings")
    autoexec_timeout = _positive("autoexec", "timeout_seconds",
                                 autoexec.get("timeout_seconds", 10.0))

    log_level = str(data.get("log_level", "WARNING")).upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigError(f"unknown log_level: {log_level}")

    return EngineConfig(
        limits=limits,
        autoexec_paths=list(paths),
        autoexec_timeout_seconds=autoexec_timeout,
        log_level=log_level,
    )


def find_config_path(path: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Resolve which config file applies, or None to use defaults."""
    if path is not None:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.exists():
        return default
    return None


def load_config(path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """
    Load engine configuration.

    An explicitly named file (argument or environment variable) must exist;
    the per-user default file is optional.

    Raises:
        ConfigError: If the file cannot be read or contains invalid settings
    """
    config_path = find_config_path(path)
    if config_path is None:
        return EngineConfig()
    if not config_path.exists():
        raise ConfigError(f"config file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML parse error in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"cannot read {config_path}: {e}") from e
    return config_from_dict(data)
