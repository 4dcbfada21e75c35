"""Runtime configuration for a resolution run.

Values are merged with precedence CLI flags > environment variables >
YAML config file > built-in defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """The configuration file exists but cannot be used."""


@dataclass
class ResolverConfig:
    """Settings consumed by the CLI when building a resolution run."""

    index_url: str = Constants.INDEX_URL
    max_concurrency: int = Constants.MAX_CONCURRENT_FETCHES
    batch_size: int = Constants.RESPONSE_BATCH_SIZE
    timeout: Optional[float] = None
    request_timeout: float = Constants.REQUEST_TIMEOUT
    retries: int = Constants.HTTP_RETRY_MAX
    cache_ttl: int = Constants.HTTP_CACHE_TTL_SEC
    environment: Dict[str, str] = field(default_factory=dict)


def find_config_file(explicit: Optional[str] = None) -> Optional[str]:
    """Locate the config file: explicit path, WHEELPIN_CONFIG, then cwd defaults."""
    if explicit:
        return explicit
    from_env = os.environ.get(Constants.ENV_CONFIG)
    if from_env:
        return from_env
    for name in Constants.CONFIG_FILE_NAMES:
        if os.path.isfile(name):
            return name
    return None


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """Load a YAML config file into a dict.

    A missing default file yields an empty dict; an unreadable or malformed
    file raises ConfigError.
    """
    if not path:
        return {}
    if not os.path.isfile(path):
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load config {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a mapping at the top level")
    logger.debug("Loaded config from %s", path)
    return data


def _coerce(key: str, value: Any, kind: type) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from exc


def build_resolver_config(
    args: Any,
    file_config: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ResolverConfig:
    """Merge config file, environment and CLI arguments into a ResolverConfig.

    Args:
        args: Parsed CLI namespace (attributes may be missing or None).
        file_config: Parsed YAML config; loaded from ``args.CONFIG`` when None.
        environ: Environment mapping; defaults to ``os.environ``.
    """
    if file_config is None:
        file_config = load_config_file(find_config_file(getattr(args, "CONFIG", None)))
    env = os.environ if environ is None else environ
    config = ResolverConfig()

    section = file_config.get("resolver") or {}
    if not isinstance(section, dict):
        raise ConfigError("'resolver' section must be a mapping")
    if "index_url" in section:
        config.index_url = str(section["index_url"])
    if "max_concurrency" in section:
        config.max_concurrency = _coerce("max_concurrency", section["max_concurrency"], int)
    if "batch_size" in section:
        config.batch_size = _coerce("batch_size", section["batch_size"], int)
    if section.get("timeout") is not None:
        config.timeout = _coerce("timeout", section["timeout"], float)
    if "request_timeout" in section:
        config.request_timeout = _coerce("request_timeout", section["request_timeout"], float)
    if "retries" in section:
        config.retries = _coerce("retries", section["retries"], int)
    if "cache_ttl" in section:
        config.cache_ttl = _coerce("cache_ttl", section["cache_ttl"], int)

    markers = file_config.get("environment") or {}
    if not isinstance(markers, dict):
        raise ConfigError("'environment' section must be a mapping")
    config.environment = {str(k): str(v) for k, v in markers.items()}

    if env.get(Constants.ENV_INDEX_URL):
        config.index_url = env[Constants.ENV_INDEX_URL]
    if env.get(Constants.ENV_TIMEOUT):
        config.timeout = _coerce(Constants.ENV_TIMEOUT, env[Constants.ENV_TIMEOUT], float)

    if getattr(args, "INDEX_URL", None):
        config.index_url = args.INDEX_URL
    if getattr(args, "MAX_CONCURRENCY", None) is not None:
        config.max_concurrency = int(args.MAX_CONCURRENCY)
    if getattr(args, "TIMEOUT", None) is not None:
        config.timeout = float(args.TIMEOUT)
    if getattr(args, "REQUEST_TIMEOUT", None) is not None:
        config.request_timeout = float(args.REQUEST_TIMEOUT)

    if config.max_concurrency < 1:
        raise ConfigError("max_concurrency must be at least 1")
    if config.batch_size < 1:
        raise ConfigError("batch_size must be at least 1")
    return config
