"""
Ban sync service.

Reconciles a domain's ban map with a single Cloudflare custom firewall
rule. The service:
1. Resolves the domain's zone id and API token
2. Gets or creates the phase entrypoint ruleset
3. Finds or creates the rule named after the configured rule name
4. Replaces the rule's expression with one built from the ban map

Remote state is re-read on every call; nothing is cached between calls.
Errors from resolution or the client propagate unchanged.

Two overlapping syncs for the same domain can both miss the rule and
both create it. Callers that may overlap per domain must serialise them
(see ``DomainLockRegistry`` in ``ban_sync.api``).
"""

from typing import Mapping

from .audit_logger import AuditLogger
from .cloudflare_client import CloudflareClient
from .config import SyncConfig
from .domain_resolver import DomainConfigResolver
from .enums import InvariantErrorCode, RuleAction, RulesetPhase
from .exceptions import InvariantViolationError
from .expression import NO_MATCH_EXPRESSION, build_bans_expression, find_rule_by_name
from .models import CreateRulesetRequest, RuleData, Ruleset


PHASE = RulesetPhase.HTTP_REQUEST_FIREWALL_CUSTOM.value


class CloudflareSyncService:
    """Keeps one Cloudflare firewall rule per domain in line with its bans."""

    COMPONENT = "CloudflareSyncService"

    def __init__(
        self,
        config: SyncConfig,
        resolver: DomainConfigResolver,
        client: CloudflareClient,
        logger: AuditLogger,
    ) -> None:
        self._config = config
        self._resolver = resolver
        self._client = client
        self._log = logger

    @property
    def rule_name(self) -> str:
        return self._config.rule_name

    async def ensure_ruleset(self, zone_id: str, api_token: str) -> Ruleset:
        """
        Return the entrypoint ruleset, creating an empty one if needed.

        Raises:
            InvariantViolationError: If the ruleset is still missing after creation
        """
        existing = await self._client.get_ruleset_by_phase(zone_id, api_token, PHASE)
        if existing is not None:
            self._log.info(self.COMPONENT, f"Using existing entrypoint ruleset {existing.id}")
            return existing

        self._log.info(self.COMPONENT, "No entrypoint ruleset found, creating new one")
        await self._client.create_ruleset(
            zone_id,
            api_token,
            CreateRulesetRequest(name="default", kind="zone", phase=PHASE, description="", rules=[]),
        )

        # Re-read so the rest of the sync works from the entrypoint view
        latest = await self._client.get_ruleset_by_phase(zone_id, api_token, PHASE)
        if latest is None or not latest.id:
            raise InvariantViolationError(
                InvariantErrorCode.RULESET_MISSING_AFTER_CREATE,
                "Failed to retrieve ruleset after creation",
                {"zone_id": zone_id, "phase": PHASE},
            )
        return latest

    async def find_or_create_rule(
        self, zone_id: str, api_token: str, ruleset: Ruleset, rule_name: str
    ) -> str:
        """Return the id of the named rule, creating an inert one if absent."""
        existing_id = find_rule_by_name(ruleset.rules, rule_name)
        if existing_id:
            self._log.info(self.COMPONENT, f"Using existing rule {existing_id}")
            return existing_id

        self._log.info(self.COMPONENT, f'Rule "{rule_name}" not found, creating...')
        placeholder = RuleData(
            action=RuleAction.BLOCK.value,
            description=rule_name,
            expression=NO_MATCH_EXPRESSION,
            enabled=True,
        )
        return await self._client.create_rule(zone_id, ruleset.id, api_token, placeholder)

    async def sync_bans(self, domain: str, bans: Mapping[str, int]) -> str:
        """
        Make the domain's ban rule match ``bans``.

        Args:
            domain: Domain whose zone holds the rule
            bans: Complete current ban map (IP -> seconds)

        Returns:
            Confirmation message with the number of IPs synced
        """
        domain_config = self._resolver.resolve(domain)
        count = len(bans)
        rule_name = self.rule_name

        self._log.info(
            self.COMPONENT,
            f"Syncing {count} bans for {domain}",
            {"domain": domain, "ban_count": count, "rule_name": rule_name},
        )

        ruleset = await self.ensure_ruleset(domain_config.zone_id, domain_config.api_token)
        rule_id = await self.find_or_create_rule(
            domain_config.zone_id, domain_config.api_token, ruleset, rule_name
        )

        rule = RuleData(
            action=RuleAction.BLOCK.value,
            description=rule_name,
            expression=build_bans_expression(bans),
            enabled=True,
        )
        await self._client.update_rule(
            domain_config.zone_id, ruleset.id, rule_id, domain_config.api_token, rule
        )

        return f"Successfully synced {count} IP bans for {domain}"
