"""
Ban Sync - keep a Cloudflare firewall rule in line with fail2ban bans.

This package reconciles the full ban list reported for a domain with a
single custom firewall rule in the domain's Cloudflare zone, creating
the phase entrypoint ruleset and the rule on first use.
"""

__version__ = "0.1.0"
__author__ = "Ban Sync Team"

from ban_sync.exceptions import (
    BanSyncError,
    ValidationError,
    DisallowedDomainError,
    DisallowedIpError,
    ConfigError,
    RemoteProtocolError,
    SchemaValidationError,
    RemoteTimeoutError,
    InvariantViolationError,
)
from ban_sync.enums import (
    LogLevel,
    ConfigErrorCode,
    AccessErrorCode,
    RemoteErrorCode,
    InvariantErrorCode,
    RuleAction,
    RulesetPhase,
)
from ban_sync.config import (
    SyncConfig,
    LoggingConfig,
    EnvironmentLookup,
    parse_comma_separated_list,
)
from ban_sync.models import (
    BansMap,
    BanList,
    CloudflareMessage,
    RuleSummary,
    Ruleset,
    RulesetResponse,
    RuleData,
    CreateRulesetRequest,
    SyncRequest,
)
from ban_sync.audit_logger import (
    AuditLogger,
    LogEntry,
    create_logger,
)
from ban_sync.domain_resolver import (
    DomainConfig,
    DomainConfigResolver,
    sanitize_domain_key,
)
from ban_sync.expression import (
    NO_MATCH_EXPRESSION,
    build_bans_expression,
    find_rule_by_name,
)
from ban_sync.cloudflare_client import (
    CloudflareClient,
    CloudflareAPI,
)
from ban_sync.sync_service import (
    CloudflareSyncService,
)

__all__ = [
    # Exceptions
    "BanSyncError",
    "ValidationError",
    "DisallowedDomainError",
    "DisallowedIpError",
    "ConfigError",
    "RemoteProtocolError",
    "SchemaValidationError",
    "RemoteTimeoutError",
    "InvariantViolationError",
    # Enums
    "LogLevel",
    "ConfigErrorCode",
    "AccessErrorCode",
    "RemoteErrorCode",
    "InvariantErrorCode",
    "RuleAction",
    "RulesetPhase",
    # Configuration
    "SyncConfig",
    "LoggingConfig",
    "EnvironmentLookup",
    "parse_comma_separated_list",
    # Models
    "BansMap",
    "BanList",
    "CloudflareMessage",
    "RuleSummary",
    "Ruleset",
    "RulesetResponse",
    "RuleData",
    "CreateRulesetRequest",
    "SyncRequest",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    "create_logger",
    # Domain Resolver
    "DomainConfig",
    "DomainConfigResolver",
    "sanitize_domain_key",
    # Expression
    "NO_MATCH_EXPRESSION",
    "build_bans_expression",
    "find_rule_by_name",
    # Cloudflare Client
    "CloudflareClient",
    "CloudflareAPI",
    # Sync Service
    "CloudflareSyncService",
]
