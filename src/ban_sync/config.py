"""
Configuration for the ban sync system.

Process-wide settings are held in a dataclass built from environment
variables (optionally seeded from a ``.env`` file). Per-domain
credentials are not copied into the dataclass; they are read on demand
through an ``EnvironmentLookup`` so every sync sees current values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional

from dotenv import load_dotenv

from .enums import LogLevel


DEFAULT_RULE_NAME = "fail2ban"
DEFAULT_API_BASE_URL = "https://api.cloudflare.com/client/v4"
DEFAULT_TIMEOUT_SECONDS = 5.0

# Credential lookup: key -> value, None when absent
Lookup = Callable[[str], Optional[str]]


def parse_comma_separated_list(value: Optional[str]) -> list[str]:
    """Split a comma separated setting, trimming items and dropping empties."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class EnvironmentLookup:
    """
    Credential lookup backed by a mapping (``os.environ`` by default).

    Empty strings count as missing.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def __call__(self, key: str) -> Optional[str]:
        value = self._environ.get(key)
        if value is None or not value.strip():
            return None
        return value


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    output_format: str = "json"  # 'json', 'text', or 'both'


@dataclass
class SyncConfig:
    """Process-wide configuration for syncing bans."""

    allowed_domains: list[str] = field(default_factory=list)
    allowed_ips: list[str] = field(default_factory=list)
    rule_name: str = DEFAULT_RULE_NAME
    api_base_url: str = DEFAULT_API_BASE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[Path] = None,
    ) -> "SyncConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)
            env_file: Optional .env file loaded into os.environ first;
                      existing variables are not overridden

        Returns:
            SyncConfig populated from the environment

        Raises:
            ValueError: If LOG_LEVEL or REQUEST_TIMEOUT_SECONDS is invalid
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)
        env = environ if environ is not None else os.environ

        level_raw = (env.get("LOG_LEVEL") or LogLevel.INFO.value).strip().lower()
        if level_raw == "warning":
            level_raw = LogLevel.WARN.value
        try:
            level = LogLevel(level_raw)
        except ValueError:
            raise ValueError(f"Invalid LOG_LEVEL: {level_raw}") from None

        output_format = (env.get("LOG_FORMAT") or "json").strip().lower()
        if output_format not in ("json", "text", "both"):
            raise ValueError(f"Invalid LOG_FORMAT: {output_format}")

        timeout_raw = env.get("REQUEST_TIMEOUT_SECONDS")
        timeout = DEFAULT_TIMEOUT_SECONDS
        if timeout_raw:
            try:
                timeout = float(timeout_raw)
            except ValueError:
                raise ValueError(f"Invalid REQUEST_TIMEOUT_SECONDS: {timeout_raw}") from None
            if timeout <= 0:
                raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")

        return cls(
            allowed_domains=parse_comma_separated_list(env.get("ALLOWED_DOMAINS")),
            allowed_ips=parse_comma_separated_list(env.get("ALLOWED_IPS")),
            rule_name=(env.get("RULE_NAME") or "").strip() or DEFAULT_RULE_NAME,
            api_base_url=(env.get("CLOUDFLARE_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/"),
            timeout_seconds=timeout,
            logging=LoggingConfig(level=level, output_format=output_format),
        )
