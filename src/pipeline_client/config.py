"""Pipeline client configuration from YAML file.

Loads the ``pipeline:`` section of a YAML file:

    pipeline:
      url: https://pipeline.example.com
      group: my-consumer-group
      token: ${PIPELINE_TOKEN}
      topic: events
      ping_timeout_seconds: 90
      reconnection_delay_seconds: 5
      sync_interval_seconds: 30
      organizations: [org-a, org-b]
      sources: []
      reset: latest
      auto_sync: false

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax in YAML files. PIPELINE_URL, PIPELINE_GROUP, PIPELINE_TOKEN and
PIPELINE_TOPIC fill in settings the file leaves empty.
"""

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from pipeline_client.errors.exceptions import ConfigurationError
from pipeline_client.schemas.requests import (
    DEFAULT_PING_TIMEOUT,
    DEFAULT_RECONNECTION_DELAY,
    MIN_SYNC_INTERVAL,
    ReceiveRequest,
    Reset,
)

logger = logging.getLogger(__name__)

# Default config file, relative to the working directory
DEFAULT_CONFIG_FILE = Path("config.yaml")

# Environment variables consulted when the file leaves a setting empty
ENV_FALLBACKS = {
    "url": "PIPELINE_URL",
    "group": "PIPELINE_GROUP",
    "token": "PIPELINE_TOKEN",
    "topic": "PIPELINE_TOPIC",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _as_list(value: Any) -> List[str]:
    """Accept a YAML list or a comma-separated string."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value]


def _as_bool(value: Any) -> bool:
    # bool('false') would be True
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ClientSettings:
    """Settings for connecting to the pipeline and reading one topic."""

    url: str = ""
    group: str = ""
    token: str = ""
    topic: str = ""
    ping_timeout_seconds: float = DEFAULT_PING_TIMEOUT
    reconnection_delay_seconds: float = DEFAULT_RECONNECTION_DELAY
    sync_interval_seconds: Optional[float] = None
    organizations: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    reset: Optional[str] = None
    auto_sync: bool = False

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.ping_timeout_seconds = float(self.ping_timeout_seconds)
        self.reconnection_delay_seconds = float(self.reconnection_delay_seconds)
        if self.sync_interval_seconds in ("", None):
            self.sync_interval_seconds = None
        else:
            self.sync_interval_seconds = float(self.sync_interval_seconds)
        self.organizations = _as_list(self.organizations)
        self.sources = _as_list(self.sources)
        self.reset = str(self.reset).lower() if self.reset else None
        self.auto_sync = _as_bool(self.auto_sync)

    def validate(self, require_topic: bool = True) -> None:
        """Validate all settings and report every problem at once.

        Raises:
            ConfigurationError: One or more settings are missing or invalid
        """
        problems = []
        if not self.url:
            problems.append("url is required (pipeline.url or PIPELINE_URL)")
        if not self.group:
            problems.append("group is required (pipeline.group or PIPELINE_GROUP)")
        if not self.token:
            problems.append("token is required (pipeline.token or PIPELINE_TOKEN)")
        if require_topic and not self.topic:
            problems.append("topic is required (pipeline.topic or PIPELINE_TOPIC)")
        if self.ping_timeout_seconds <= 0:
            problems.append(
                f"ping_timeout_seconds must be > 0, got {self.ping_timeout_seconds}"
            )
        if self.reconnection_delay_seconds < 0:
            problems.append(
                f"reconnection_delay_seconds must be >= 0, got {self.reconnection_delay_seconds}"
            )
        if (
            self.sync_interval_seconds is not None
            and self.sync_interval_seconds < MIN_SYNC_INTERVAL
        ):
            problems.append(
                f"sync_interval_seconds must be >= {MIN_SYNC_INTERVAL:g}, "
                f"got {self.sync_interval_seconds}"
            )
        valid_resets = [r.value for r in Reset]
        if self.reset is not None and self.reset not in valid_resets:
            problems.append(f"reset must be one of {valid_resets}, got '{self.reset}'")

        if problems:
            raise ConfigurationError(
                "Invalid pipeline configuration:\n  - " + "\n  - ".join(problems)
            )

    def to_receive_request(self) -> ReceiveRequest:
        return ReceiveRequest(
            sync_interval=self.sync_interval_seconds,
            organizations=tuple(self.organizations),
            sources=tuple(self.sources),
            reset=Reset(self.reset) if self.reset else None,
            ping_timeout=self.ping_timeout_seconds,
            reconnection_delay=self.reconnection_delay_seconds,
        )


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ClientSettings:
    """Load client settings from a YAML file, the environment and overrides.

    Priority: overrides > file > environment fallbacks > defaults. A missing
    default config file is not an error; an explicitly given one is.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
    """
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    path = config_path or DEFAULT_CONFIG_FILE
    yaml_data = _expand_env_vars(load_yaml(path))
    if yaml_data:
        logger.info("Loading configuration from file: %s", path)

    section = yaml_data.get("pipeline", {}) if yaml_data else {}
    if yaml_data and "pipeline" not in yaml_data:
        raise ConfigurationError(
            f"Invalid config file {path}: missing 'pipeline:' section"
        )

    known = {f.name for f in fields(ClientSettings)}
    unknown = set(section) - known
    if unknown:
        logger.warning("Ignoring unknown pipeline settings: %s", sorted(unknown))

    values = {k: v for k, v in section.items() if k in known}

    for key, env_var in ENV_FALLBACKS.items():
        if not values.get(key) and os.getenv(env_var):
            values[key] = os.getenv(env_var)

    if overrides:
        logger.debug("Applying overrides: %s", sorted(overrides))
        values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return ClientSettings(**values)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid pipeline configuration: {e}", cause=e) from e


__all__ = [
    "ClientSettings",
    "load_settings",
    "load_yaml",
    "DEFAULT_CONFIG_FILE",
    "ENV_FALLBACKS",
]
