"""Configuration management for makerchecker.

Handles loading and validation of the YAML file that controls who may make
and check requests, how long pending requests stay checkable, and whether
duplicate pending requests are refused.

Example file::

    whitelisted_models:
      maker: [User]
      checker: [Admin, User]
    request_expiration_in_minutes: 1440
    ensure_requests_are_unique: true
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Optional, Union

import yaml


DEFAULT_CONFIG_PATH = "/etc/makerchecker/config.yaml"


@dataclass(frozen=True)
class MakerCheckerConfig:
    """Immutable engine configuration.

    Empty allow-lists mean any actor type may make or check requests.
    """

    maker_allowlist: FrozenSet[str] = field(default_factory=frozenset)
    checker_allowlist: FrozenSet[str] = field(default_factory=frozenset)
    request_expiration_in_minutes: Optional[int] = None
    ensure_requests_are_unique: bool = False

    @property
    def expiration_window(self) -> Optional[timedelta]:
        """Window after which a pending request can no longer be checked."""
        if not self.request_expiration_in_minutes:
            return None
        return timedelta(minutes=self.request_expiration_in_minutes)

    def can_make(self, actor_type: str) -> bool:
        return not self.maker_allowlist or actor_type in self.maker_allowlist

    def can_check(self, actor_type: str) -> bool:
        return not self.checker_allowlist or actor_type in self.checker_allowlist


def _parse_allowlist(value: Union[None, str, Iterable[str]]) -> FrozenSet[str]:
    """Normalize an allow-list entry.

    A single string is treated as a one-item list; anything that is not a
    string or a list is treated as "no restriction".
    """
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset([value]) if value else frozenset()
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(str(item) for item in value)
    return frozenset()


def _parse_expiration(value: Any) -> Optional[int]:
    if value in (None, "", "never"):
        return None
    minutes = int(value)
    if minutes < 0:
        raise ValueError(f"request_expiration_in_minutes must not be negative, got {minutes}")
    return minutes or None


def parse_config(config_dict: Dict[str, Any]) -> MakerCheckerConfig:
    """Parse the full configuration dictionary.

    Args:
        config_dict: Configuration dictionary (usually loaded from YAML)

    Returns:
        MakerCheckerConfig instance
    """
    whitelisted = config_dict.get("whitelisted_models") or {}

    return MakerCheckerConfig(
        maker_allowlist=_parse_allowlist(whitelisted.get("maker")),
        checker_allowlist=_parse_allowlist(whitelisted.get("checker")),
        request_expiration_in_minutes=_parse_expiration(
            config_dict.get("request_expiration_in_minutes")
        ),
        ensure_requests_are_unique=bool(config_dict.get("ensure_requests_are_unique", False)),
    )


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid YAML
        TypeError: If the document root is not a mapping
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise TypeError(
            f"Configuration root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj


def load_typed_config(config_path: str = DEFAULT_CONFIG_PATH) -> MakerCheckerConfig:
    """Load and parse configuration into the typed dataclass.

    Args:
        config_path: Path to configuration file

    Returns:
        MakerCheckerConfig instance
    """
    return parse_config(load_config(config_path))
