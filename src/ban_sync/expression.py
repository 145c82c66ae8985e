"""
Firewall expression building for ban sets.

Pure functions; no I/O.
"""

from typing import Iterable, Mapping, Optional

from .models import RuleSummary


# Matches no real traffic; keeps a rule valid while it holds no bans
NO_MATCH_EXPRESSION = "ip.src eq 0.0.0.0"


def build_bans_expression(bans: Mapping[str, int]) -> str:
    """
    Build the Cloudflare match expression for a ban map.

    IPs appear in the map's iteration order. An empty map yields
    NO_MATCH_EXPRESSION rather than an empty set, which the API rejects.

    Args:
        bans: Mapping of IP address to ban duration in seconds

    Returns:
        Expression string for the rule
    """
    if not bans:
        return NO_MATCH_EXPRESSION
    return "ip.src in {" + " ".join(bans) + "}"


def find_rule_by_name(rules: Iterable[RuleSummary], name: str) -> Optional[str]:
    """Return the id of the first rule whose description equals ``name``."""
    for rule in rules:
        if rule.description == name:
            return rule.id
    return None
