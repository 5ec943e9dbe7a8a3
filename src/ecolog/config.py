"""
ecolog configuration handling.

Configuration comes from an optional YAML file, then ECOLOG_* environment
variables override individual settings.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union, get_args, get_origin

import yaml

from .core.errors import ConfigError
from .core.masking import MaskPolicy


CONFIG_ENV_VAR = "ECOLOG_CONFIG"
PROJECT_CONFIG_NAME = ".ecolog.yaml"


def default_presets_file() -> str:
    return str(Path.home() / ".config" / "ecolog" / "presets.json")


def _env_bool(value: str) -> bool:
    return value.strip().lower() not in {"0", "false", "no", "off", ""}


def _matches_type(value: Any, annotation: Any) -> bool:
    if annotation is Any:
        return True
    if annotation is type(None):
        return value is None

    origin = get_origin(annotation)
    if origin is Union:
        return any(_matches_type(value, arg) for arg in get_args(annotation))
    if origin is not None:
        return isinstance(value, origin)

    if annotation in (int, float) and isinstance(value, bool):
        return False
    return isinstance(value, annotation)


def _build(cls, data: Optional[Mapping[str, Any]], section: str):
    """Instantiate a config dataclass, rejecting unknown keys and mistyped values."""
    data = data or {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"'{section}' must be a mapping")

    known = {f.name: f.type for f in fields(cls)}
    unknown = set(data) - set(known)
    if unknown:
        raise ConfigError(f"Unknown option(s) in '{section}': {', '.join(sorted(unknown))}")

    for name, value in data.items():
        if not _matches_type(value, known[name]):
            raise ConfigError(f"Option '{section}.{name}' has the wrong type: {value!r}")
    return cls(**data)


@dataclass
class PerformanceConfig:
    """Cache sizes, TTLs and batching for the masking engine."""
    parsed_cache_size: int = 200
    overlay_cache_size: int = 100
    mask_cache_size: int = 150
    intern_cache_size: int = 512
    batch_size: int = 50
    hash_sample_rate: int = 16
    parsed_cache_ttl_ms: int = 3600000
    overlay_cache_ttl_ms: int = 1800000
    mask_cache_ttl_ms: int = 1800000
    cleanup_interval_ms: int = 300000
    auto_cleanup: bool = True

    def update(self, **options) -> "PerformanceConfig":
        """
        Merge options into this config.

        Raises:
            ConfigError: On an unknown option or a value of the wrong type
        """
        for name, value in options.items():
            if not hasattr(self, name):
                raise ConfigError(f"Unknown performance option: {name}")
            current = getattr(self, name)
            if type(value) is not type(current):
                raise ConfigError(
                    f"Performance option {name} expects {type(current).__name__}, got {type(value).__name__}"
                )
            setattr(self, name, value)
        return self


@dataclass
class ShelterConfig:
    """Masking settings."""
    mask_char: str = "*"
    partial_mode: Union[bool, Dict[str, int]] = False
    mask_length: Optional[int] = None
    skip_comments: bool = True
    style_tag: str = "EcologMasked"

    def policy(self) -> MaskPolicy:
        return MaskPolicy.from_config(self.mask_char, self.partial_mode, self.mask_length)


@dataclass
class LoadShellConfig:
    """Whether process environment variables are merged with file values."""
    enabled: bool = False
    override: bool = False


@dataclass
class EcologConfig:
    """
    Top-level configuration.

    Can be loaded from a YAML file or created programmatically.
    """
    path: str = "."
    preferred_environment: str = ""
    shelter: ShelterConfig = field(default_factory=ShelterConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    types: Union[bool, List[str]] = True
    custom_types: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    load_shell: LoadShellConfig = field(default_factory=LoadShellConfig)
    presets_file: str = field(default_factory=default_presets_file)
    log_level: str = "WARNING"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EcologConfig":
        """
        Create configuration from a dictionary.

        Raises:
            ConfigError: On unknown options
        """
        data = dict(data or {})
        shelter = _build(ShelterConfig, data.pop("shelter", None), "shelter")
        performance = _build(PerformanceConfig, data.pop("performance", None), "performance")

        load_shell = data.pop("load_shell", None)
        if isinstance(load_shell, bool):
            load_shell = {"enabled": load_shell}
        load_shell = _build(LoadShellConfig, load_shell, "load_shell")

        top = _build(cls, data, "config")
        top.shelter = shelter
        top.performance = performance
        top.load_shell = load_shell
        return top

    @classmethod
    def load(cls, path: str, environ: Optional[Mapping[str, str]] = None) -> "EcologConfig":
        """
        Load configuration from a YAML file and apply environment overrides.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigError: If the file is not valid YAML or has unknown options
        """
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")

        return cls.from_dict(data).apply_env_overrides(environ)

    def apply_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "EcologConfig":
        """
        Apply ECOLOG_* environment variables.

        ECOLOG_MASK_CHAR, ECOLOG_PARTIAL, ECOLOG_MASK_LENGTH,
        ECOLOG_PRESETS_FILE, ECOLOG_LOG_LEVEL, ECOLOG_PATH
        """
        env = os.environ if environ is None else environ

        if env.get("ECOLOG_MASK_CHAR"):
            self.shelter.mask_char = env["ECOLOG_MASK_CHAR"]
        if "ECOLOG_PARTIAL" in env:
            self.shelter.partial_mode = _env_bool(env["ECOLOG_PARTIAL"])
        if env.get("ECOLOG_MASK_LENGTH"):
            try:
                self.shelter.mask_length = int(env["ECOLOG_MASK_LENGTH"])
            except ValueError as e:
                raise ConfigError(f"ECOLOG_MASK_LENGTH must be an integer, got {env['ECOLOG_MASK_LENGTH']!r}") from e
        if env.get("ECOLOG_PRESETS_FILE"):
            self.presets_file = env["ECOLOG_PRESETS_FILE"]
        if env.get("ECOLOG_LOG_LEVEL"):
            self.log_level = env["ECOLOG_LOG_LEVEL"]
        if env.get("ECOLOG_PATH"):
            self.path = env["ECOLOG_PATH"]

        return self


def find_config(cwd: Optional[str] = None) -> Optional[str]:
    """
    Find a config file.

    Priority order:
        1. ECOLOG_CONFIG environment variable
        2. .ecolog.yaml in the working directory
        3. ~/.config/ecolog/config.yaml

    Returns:
        Path to the config file, or None
    """
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config and Path(env_config).exists():
        return env_config

    project_config = Path(cwd or os.getcwd()) / PROJECT_CONFIG_NAME
    if project_config.exists():
        return str(project_config)

    user_config = Path.home() / ".config" / "ecolog" / "config.yaml"
    if user_config.exists():
        return str(user_config)

    return None
