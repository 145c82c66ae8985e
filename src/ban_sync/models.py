"""
Data models for the ban sync system.

Pydantic models describing the Cloudflare Rulesets API envelope, the
payloads sent to it, and the inbound sync request. Response models are
used to validate decoded JSON before the client hands it on.
"""

import ipaddress
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from .enums import RuleAction, RulesetPhase


BanDuration = Annotated[StrictInt, Field(gt=0)]

# IP address -> ban duration in seconds
BansMap = dict[str, int]


class CloudflareMessageSource(BaseModel):
    pointer: str


class CloudflareMessage(BaseModel):
    """An entry of the ``errors`` or ``messages`` array of an API response."""

    message: str
    code: Optional[int] = None
    source: Optional[CloudflareMessageSource] = None


class RuleSummary(BaseModel):
    """A rule inside a ruleset. Unknown fields are kept as-is."""

    model_config = ConfigDict(extra="allow")

    id: str
    description: str


class Ruleset(BaseModel):
    """A ruleset (rule container) as returned by the API."""

    id: str
    rules: list[RuleSummary]


class RulesetResponse(BaseModel):
    """Success envelope for every ruleset-bearing response."""

    success: Literal[True]
    errors: list[CloudflareMessage]
    messages: list[CloudflareMessage]
    result: Ruleset


class RuleData(BaseModel):
    """Desired state of the ban rule, sent in full on create and update."""

    action: Literal["block"] = RuleAction.BLOCK.value
    description: str
    expression: str
    enabled: bool = True


class CreateRulesetRequest(BaseModel):
    name: str = "default"
    kind: str = "zone"
    phase: str = RulesetPhase.HTTP_REQUEST_FIREWALL_CUSTOM.value
    description: str = ""
    rules: list[RuleData] = Field(default_factory=list)


class BanList(BaseModel):
    """A ban map with validated IP keys and positive durations."""

    bans: dict[str, BanDuration]

    @field_validator("bans")
    @classmethod
    def _valid_ips(cls, value: dict[str, int]) -> dict[str, int]:
        for ip in value:
            try:
                address = ipaddress.ip_address(ip)
            except ValueError:
                raise ValueError(f"Invalid IP address: {ip}") from None
            if getattr(address, "scope_id", None):
                raise ValueError(f"Scoped IPv6 address not allowed: {ip}")
        return value


class SyncRequest(BanList):
    """Inbound request: one domain and its complete current ban map."""

    domain: str = Field(min_length=1)

    @field_validator("domain")
    @classmethod
    def _single_domain(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Domain cannot be empty")
        if "," in value or " " in value:
            raise ValueError("Only a single domain is allowed")
        return value
