"""
CPC Settings

Per-invocation configuration resolved from the process environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from cpc.constants import (
    CACHE_DIRNAME,
    CONTEXT_FILENAME,
    DEFAULT_CONFIG_DIR,
    DEFAULT_TIMEOUTS,
    LOGS_DIRNAME,
    LONG_TTL,
    REPO_PATH_FILENAME,
    REPORTS_DIRNAME,
    SECRETS_CACHE_TTL,
    SHORT_TTL,
)
from cpc.exceptions import ConfigurationError

TRUTHY = ("1", "true", "yes", "on")
TTL_OVERRIDE_PREFIX = "CPC_CACHE_TTL_"


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(
            f"Invalid value for {name}: '{raw}'", context="Expected a whole number of seconds"
        )
    if value < 0:
        raise ConfigurationError(f"Invalid value for {name}: '{raw}'", context="Must not be negative")
    return value


@dataclass
class Settings:
    """Resolved CLI settings. Paths are not created until something writes to them."""

    config_dir: Path
    debug: bool = False
    short_ttl: int = SHORT_TTL
    long_ttl: int = LONG_TTL
    ttl_overrides: Dict[str, int] = field(default_factory=dict)
    timeouts: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TIMEOUTS))
    secrets_ttl: int = SECRETS_CACHE_TTL

    @property
    def repo_path_file(self) -> Path:
        return self.config_dir / REPO_PATH_FILENAME

    @property
    def context_file(self) -> Path:
        return self.config_dir / CONTEXT_FILENAME

    @property
    def cache_dir(self) -> Path:
        return self.config_dir / CACHE_DIRNAME

    @property
    def logs_dir(self) -> Path:
        return self.config_dir / LOGS_DIRNAME

    @property
    def reports_dir(self) -> Path:
        return self.config_dir / REPORTS_DIRNAME

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read (defaults to os.environ)

        Returns:
            Settings instance

        Raises:
            ConfigurationError: If a numeric setting is malformed
        """
        environ = os.environ if environ is None else environ

        config_dir = Path(environ.get("CPC_CONFIG_DIR") or DEFAULT_CONFIG_DIR).expanduser()

        timeouts = {
            name: _int_setting(environ, f"CPC_{name.upper()}_TIMEOUT", default)
            for name, default in DEFAULT_TIMEOUTS.items()
        }

        ttl_overrides = {}
        for key in environ:
            if key.startswith(TTL_OVERRIDE_PREFIX) and len(key) > len(TTL_OVERRIDE_PREFIX):
                operation = key[len(TTL_OVERRIDE_PREFIX):].lower()
                ttl_overrides[operation] = _int_setting(environ, key, LONG_TTL)

        return cls(
            config_dir=config_dir,
            debug=environ.get("CPC_DEBUG", "").strip().lower() in TRUTHY,
            short_ttl=_int_setting(environ, "CPC_CACHE_SHORT_TTL", SHORT_TTL),
            long_ttl=_int_setting(environ, "CPC_CACHE_LONG_TTL", LONG_TTL),
            ttl_overrides=ttl_overrides,
            timeouts=timeouts,
            secrets_ttl=_int_setting(environ, "CPC_SECRETS_TTL", SECRETS_CACHE_TTL),
        )
