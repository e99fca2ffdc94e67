"""Configuration management for tiered-fileio.

Holds the string-keyed ``Configuration`` store consumed by the file IO
implementations and the immutable ``MappingConfig`` that drives read path
mapping. Configuration files are TOML, stored in:
- macOS: ~/.config/tiered-fileio/config.toml
- Linux: ~/.config/tiered-fileio/config.toml (XDG_CONFIG_HOME)
- Windows: %APPDATA%\\tiered-fileio\\config.toml
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping, Optional

import tomllib
import tomli_w

# Mapping options
CACHE_BASE_URI = "cache.baseuri"
CANONICAL_BASE_URI = "canonical.baseuri"
READ_THROUGH_CACHE = "read.through.cache"

# Delegate (S3) options
S3_ENDPOINT = "s3.endpoint"
S3_REGION = "s3.region"
S3_ACCESS_KEY_ID = "s3.access-key-id"
S3_SECRET_ACCESS_KEY = "s3.secret-access-key"

# Keys that may be overridden from the environment when loading a file
ENV_OVERRIDABLE_KEYS = (
    CACHE_BASE_URI,
    CANONICAL_BASE_URI,
    READ_THROUGH_CACHE,
    S3_ENDPOINT,
    S3_REGION,
)


class ConfigurationError(ValueError):
    """Required file IO configuration is missing or blank."""

    pass


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _to_str(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _flatten(data: Mapping, prefix: str = "") -> dict[str, str]:
    """Flatten nested TOML tables into dotted keys."""
    flat = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, f"{full_key}."))
        elif isinstance(value, list):
            flat[full_key] = ",".join(_to_str(v) for v in value)
        else:
            flat[full_key] = _to_str(value)
    return flat


class Configuration:
    """String-keyed configuration source for file IO implementations.

    Values are always stored as strings. Typed accessors parse on read,
    so the same store can be handed to any file IO without conversion.
    """

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self._values: dict[str, str] = {}
        if values:
            for key, value in values.items():
                self._values[key] = _to_str(value)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a configuration value by key.

        Args:
            key: Dotted configuration key (e.g., "cache.baseuri")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return self._values.get(key, default)

    def get_bool(self, key: str, default: bool) -> bool:
        """Get a boolean value.

        Only "true" and "false" (case-insensitive) are recognised; any
        other value, or a missing key, yields *default*.
        """
        value = self._values.get(key)
        if value is None:
            return default
        normalized = value.strip().lower()
        if normalized == "true":
            return True
        if normalized == "false":
            return False
        return default

    def set(self, key: str, value) -> None:
        self._values[key] = _to_str(value)

    def unset(self, key: str) -> None:
        self._values.pop(key, None)

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)

    def copy(self) -> "Configuration":
        return Configuration(self._values)

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Configuration):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"Configuration({self._values!r})"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Configuration":
        """Load configuration from TOML file.

        Nested tables are flattened to dotted keys, so ``[cache]`` with
        ``baseuri = "..."`` and a top-level ``"cache.baseuri" = "..."``
        are equivalent. Environment variables override file values for
        the keys in ``ENV_OVERRIDABLE_KEYS``.

        Args:
            path: Path to config file (defaults to standard location)

        Returns:
            Configuration instance with loaded values

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        if path is None:
            path = get_config_path()

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "rb") as f:
            data = tomllib.load(f)

        config = cls(_flatten(data))

        # Environment takes precedence over the file
        for key in ENV_OVERRIDABLE_KEYS:
            env_value = os.environ.get(get_env_var_name(key))
            if env_value:
                config.set(key, env_value)

        return config

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to TOML file.

        Keys are written flat as quoted dotted keys, which ``load`` reads
        back unchanged.

        Args:
            path: Path to save config (defaults to standard location)
        """
        if path is None:
            path = get_config_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "wb") as f:
            tomli_w.dump(dict(sorted(self._values.items())), f)


@dataclass(frozen=True)
class MappingConfig:
    """Read path mapping settings.

    Attributes:
        cache_base_uri: Base URI of the cache tier reads are redirected to
        canonical_base_prefixes: Canonical prefixes eligible for remapping,
            in configured order, blank entries removed
        read_through_cache: Master switch for read remapping
    """

    cache_base_uri: str = ""
    canonical_base_prefixes: tuple[str, ...] = ()
    read_through_cache: bool = True

    @classmethod
    def from_properties(cls, properties: Mapping[str, str]) -> "MappingConfig":
        """Build a validated mapping config from flat string properties.

        Args:
            properties: Flat key/value map (e.g. catalog properties)

        Returns:
            MappingConfig instance

        Raises:
            ConfigurationError: If ``cache.baseuri`` is blank, or
                ``canonical.baseuri`` is empty or starts with a blank entry
        """
        cache_base_uri = properties.get(CACHE_BASE_URI, "")
        raw_prefixes = _split_prefixes(properties.get(CANONICAL_BASE_URI, ""))
        read_through = properties.get(READ_THROUGH_CACHE, "true")

        if _is_blank(cache_base_uri) or not raw_prefixes or _is_blank(raw_prefixes[0]):
            raise ConfigurationError(
                f"Both '{CACHE_BASE_URI}' and '{CANONICAL_BASE_URI}' properties must be specified"
            )

        return cls(
            cache_base_uri=cache_base_uri.strip(),
            canonical_base_prefixes=_non_blank(raw_prefixes),
            read_through_cache=read_through.strip().lower() == "true",
        )

    @classmethod
    def from_configuration(cls, conf: Configuration) -> "MappingConfig":
        """Build a mapping config from a structured configuration.

        Unset keys default to empty strings and no validation is applied;
        a config without a cache base simply never remaps.
        """
        cache_base_uri = conf.get(CACHE_BASE_URI, "") or ""
        return cls(
            cache_base_uri=cache_base_uri.strip(),
            canonical_base_prefixes=_non_blank(
                _split_prefixes(conf.get(CANONICAL_BASE_URI, "") or "")
            ),
            read_through_cache=conf.get_bool(READ_THROUGH_CACHE, True),
        )


def _split_prefixes(value: str) -> list[str]:
    # Trailing empty entries are dropped, leading and inner ones are kept
    parts = [part.strip() for part in value.split(",")]
    while parts and not parts[-1]:
        parts.pop()
    return parts


def _non_blank(prefixes: list[str]) -> tuple[str, ...]:
    return tuple(prefix for prefix in prefixes if prefix)


APP_DIR_NAME = "tiered-fileio"


def get_config_dir() -> Path:
    """Directory holding config.toml.

    Uses %APPDATA% on Windows and $XDG_CONFIG_HOME elsewhere, falling back
    to the usual per-user location when the variable is unset.
    """
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or Path.home() / "AppData" / "Roaming"
    else:
        base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / APP_DIR_NAME


def get_config_path() -> Path:
    return get_config_dir() / "config.toml"


def ensure_config_exists(path: Optional[Path] = None) -> Configuration:
    """Ensure config file exists, creating default if needed.

    Returns:
        Configuration instance
    """
    config_path = path or get_config_path()

    if config_path.exists():
        return Configuration.load(config_path)

    config = Configuration(
        {
            CACHE_BASE_URI: "",
            CANONICAL_BASE_URI: "",
            READ_THROUGH_CACHE: "true",
        }
    )
    config.save(config_path)
    return config


def get_env_var_name(key: str) -> str:
    """Get the environment variable name for a config key.

    Args:
        key: Configuration key

    Returns:
        Environment variable name
    """
    return f"TFIO_{key.upper().replace('.', '_').replace('-', '_')}"
