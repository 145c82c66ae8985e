"""
Enumeration types for the ban sync system.

These enums provide type-safe constants for error codes, log levels
and the fixed values sent to the Cloudflare Rulesets API.
"""

from enum import Enum


class LogLevel(Enum):
    """Logging severity levels, ordered from most to least verbose."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    NONE = "none"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER[self]


_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
    LogLevel.NONE: 4,
}


class ConfigErrorCode(Enum):
    """Per-domain configuration that can be missing."""

    MISSING_ZONE = "missing_zone"
    MISSING_API_TOKEN = "missing_api_token"


class AccessErrorCode(Enum):
    """Error codes for rejected callers and domains."""

    DISALLOWED_DOMAIN = "disallowed_domain"
    DISALLOWED_IP = "disallowed_ip"
    EMPTY_DOMAIN = "empty_domain"


class RemoteErrorCode(Enum):
    """Error codes for Cloudflare client operations."""

    HTTP_ERROR = "http_error"
    MALFORMED_JSON = "malformed_json"
    TRANSPORT_ERROR = "transport_error"
    SCHEMA_VALIDATION = "schema_validation"
    TIMEOUT = "timeout"


class InvariantErrorCode(Enum):
    """Remote state that contradicts what the previous call reported."""

    RULESET_MISSING_AFTER_CREATE = "ruleset_missing_after_create"
    CREATED_RULE_MISSING = "created_rule_missing"


class RuleAction(Enum):
    """Firewall rule actions. Only blocking is supported."""

    BLOCK = "block"


class RulesetPhase(Enum):
    """Cloudflare processing phases used by the sync engine."""

    HTTP_REQUEST_FIREWALL_CUSTOM = "http_request_firewall_custom"
