"""
Domain configuration resolution.

Maps an allowed domain to the Cloudflare zone id and API token used to
manage its firewall rules. Credentials are looked up under keys derived
from the domain, e.g. ``example.com`` -> ``ZONE_ID_EXAMPLE_COM`` and
``API_TOKEN_EXAMPLE_COM``.
"""

import re
from dataclasses import dataclass
from typing import Optional

from .config import EnvironmentLookup, Lookup, SyncConfig
from .enums import AccessErrorCode, ConfigErrorCode
from .exceptions import ConfigError, DisallowedDomainError, ValidationError


_KEY_UNSAFE_CHARS = re.compile(r"[^A-Z0-9]")

ZONE_ID_PREFIX = "ZONE_ID_"
API_TOKEN_PREFIX = "API_TOKEN_"


@dataclass(frozen=True)
class DomainConfig:
    """Credentials for one domain."""

    zone_id: str
    api_token: str

    def __repr__(self) -> str:
        return f"DomainConfig(zone_id={self.zone_id!r}, api_token='***')"


def sanitize_domain_key(domain: str) -> str:
    """
    Turn a domain into the fragment used in credential keys.

    Upper-cases the domain and replaces every character outside
    ``[A-Z0-9]`` with an underscore.

    Raises:
        ValidationError: If the domain is empty or whitespace-only
    """
    if not domain or not domain.strip():
        raise ValidationError(
            code=AccessErrorCode.EMPTY_DOMAIN.value,
            message="Domain cannot be empty",
            details={"domain": domain},
        )
    return _KEY_UNSAFE_CHARS.sub("_", domain.upper())


class DomainConfigResolver:
    """Resolves per-domain credentials against the allow-list."""

    def __init__(self, config: SyncConfig, lookup: Optional[Lookup] = None) -> None:
        """
        Args:
            config: Process configuration holding the domain allow-list
            lookup: Credential lookup; defaults to reading os.environ
        """
        self._config = config
        self._lookup = lookup if lookup is not None else EnvironmentLookup()

    def is_allowed(self, domain: str) -> bool:
        return domain in self._config.allowed_domains

    def check_allowed(self, domain: str) -> None:
        """Raise DisallowedDomainError unless the domain is on the allow-list."""
        if not self.is_allowed(domain):
            raise DisallowedDomainError(domain, list(self._config.allowed_domains))

    def resolve(self, domain: str) -> DomainConfig:
        """
        Resolve credentials for a domain.

        Raises:
            DisallowedDomainError: If the domain is not on the allow-list
            ValidationError: If the domain is empty
            ConfigError: If the zone id or API token is missing
        """
        self.check_allowed(domain)

        key = sanitize_domain_key(domain)
        zone_key = f"{ZONE_ID_PREFIX}{key}"
        token_key = f"{API_TOKEN_PREFIX}{key}"

        zone_id = self._lookup(zone_key)
        api_token = self._lookup(token_key)

        missing = [name for name, value in ((zone_key, zone_id), (token_key, api_token)) if not value]
        details = {"domain": domain, "missing_keys": missing}

        if not zone_id:
            raise ConfigError(ConfigErrorCode.MISSING_ZONE, details)
        if not api_token:
            raise ConfigError(ConfigErrorCode.MISSING_API_TOKEN, details)

        return DomainConfig(zone_id=zone_id, api_token=api_token)
