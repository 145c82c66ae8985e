"""
Property-based tests for domain configuration resolution.

Uses Hypothesis to verify allow-list enforcement, credential key
derivation and the missing-credential error variants.
"""

import re
import string

import pytest
from hypothesis import given, settings, assume
from hypothesis import strategies as st

from ban_sync.config import EnvironmentLookup, SyncConfig
from ban_sync.domain_resolver import (
    DomainConfig,
    DomainConfigResolver,
    sanitize_domain_key,
)
from ban_sync.enums import ConfigErrorCode
from ban_sync.exceptions import ConfigError, DisallowedDomainError, ValidationError


ENV = {
    "ZONE_ID_EXAMPLE_COM": "zoneid-abc",
    "API_TOKEN_EXAMPLE_COM": "token-abc",
    "ZONE_ID_ANOTHER_COM": "zoneid-xyz",
    "API_TOKEN_ANOTHER_COM": "token-xyz",
}


def make_resolver(env: dict, allowed: list[str]) -> DomainConfigResolver:
    return DomainConfigResolver(
        SyncConfig(allowed_domains=allowed),
        EnvironmentLookup(env),
    )


def valid_domain_strategy() -> st.SearchStrategy[str]:
    label = st.text(
        alphabet=string.ascii_lowercase + string.digits + "-",
        min_size=1,
        max_size=15,
    ).filter(lambda s: s[0] != "-" and s[-1] != "-")
    return st.builds(
        lambda parts, tld: ".".join(parts + [tld]),
        st.lists(label, min_size=1, max_size=3),
        st.sampled_from(["com", "de", "co.uk", "org"]),
    )


class TestSanitizeDomainKey:
    """Derivation of the credential key fragment."""

    def test_examples(self) -> None:
        assert sanitize_domain_key("example.com") == "EXAMPLE_COM"
        assert sanitize_domain_key("my-domain.co.uk") == "MY_DOMAIN_CO_UK"
        assert sanitize_domain_key("my-app.example-site.com") == "MY_APP_EXAMPLE_SITE_COM"

    @pytest.mark.parametrize("domain", ["", "   ", "\t\n"])
    def test_empty_domain_rejected(self, domain: str) -> None:
        with pytest.raises(ValidationError, match="Domain cannot be empty"):
            sanitize_domain_key(domain)

    @given(domain=st.text(min_size=1, max_size=60))
    @settings(max_examples=200)
    def test_output_only_contains_safe_characters(self, domain: str) -> None:
        """
        *For any* non-blank domain, the key contains only ``[A-Z0-9_]``.
        """
        assume(domain.strip())
        key = sanitize_domain_key(domain)
        assert re.fullmatch(r"[A-Z0-9_]+", key)

    @given(domain=valid_domain_strategy())
    @settings(max_examples=100)
    def test_ascii_domains_keep_length(self, domain: str) -> None:
        assert len(sanitize_domain_key(domain)) == len(domain)


class TestDomainConfigResolver:
    """Allow-list and credential lookup."""

    def test_resolves_allowed_domain(self) -> None:
        resolver = make_resolver(ENV, ["example.com", "another.com"])
        assert resolver.resolve("example.com") == DomainConfig("zoneid-abc", "token-abc")
        assert resolver.resolve("another.com") == DomainConfig("zoneid-xyz", "token-xyz")

    def test_unauthorized_domain_rejected(self) -> None:
        resolver = make_resolver(ENV, ["example.com"])
        with pytest.raises(DisallowedDomainError) as exc_info:
            resolver.resolve("unauthorized.com")
        assert "unauthorized.com" in exc_info.value.message

    def test_allow_list_is_case_sensitive(self) -> None:
        resolver = make_resolver(ENV, ["example.com"])
        with pytest.raises(DisallowedDomainError):
            resolver.resolve("EXAMPLE.com")

    @given(domain=valid_domain_strategy(), with_credentials=st.booleans())
    @settings(max_examples=100)
    def test_disallowed_regardless_of_credentials(self, domain: str, with_credentials: bool) -> None:
        """
        *For any* domain missing from the allow-list, resolution fails with
        DisallowedDomainError even when its credentials exist.
        """
        assume(domain != "example.com")
        env = dict(ENV)
        if with_credentials:
            key = sanitize_domain_key(domain)
            env[f"ZONE_ID_{key}"] = "zone"
            env[f"API_TOKEN_{key}"] = "token"
        resolver = make_resolver(env, ["example.com"])

        with pytest.raises(DisallowedDomainError):
            resolver.resolve(domain)

    def test_missing_zone(self) -> None:
        env = {"API_TOKEN_EXAMPLE_COM": "token-abc"}
        resolver = make_resolver(env, ["example.com"])
        with pytest.raises(ConfigError) as exc_info:
            resolver.resolve("example.com")
        assert exc_info.value.kind is ConfigErrorCode.MISSING_ZONE
        assert exc_info.value.message == "Zone ID missing"

    def test_missing_api_token(self) -> None:
        env = {"ZONE_ID_EXAMPLE_COM": "zoneid-abc"}
        resolver = make_resolver(env, ["example.com"])
        with pytest.raises(ConfigError) as exc_info:
            resolver.resolve("example.com")
        assert exc_info.value.kind is ConfigErrorCode.MISSING_API_TOKEN
        assert exc_info.value.message == "API token missing"

    def test_both_missing_reports_zone_and_lists_both_keys(self) -> None:
        resolver = make_resolver({}, ["example.com"])
        with pytest.raises(ConfigError) as exc_info:
            resolver.resolve("example.com")
        assert exc_info.value.kind is ConfigErrorCode.MISSING_ZONE
        assert exc_info.value.details["missing_keys"] == [
            "ZONE_ID_EXAMPLE_COM",
            "API_TOKEN_EXAMPLE_COM",
        ]

    def test_blank_credentials_count_as_missing(self) -> None:
        env = {"ZONE_ID_EXAMPLE_COM": "zoneid-abc", "API_TOKEN_EXAMPLE_COM": "  "}
        resolver = make_resolver(env, ["example.com"])
        with pytest.raises(ConfigError) as exc_info:
            resolver.resolve("example.com")
        assert exc_info.value.kind is ConfigErrorCode.MISSING_API_TOKEN

    def test_credentials_are_read_on_every_call(self) -> None:
        env = dict(ENV)
        resolver = make_resolver(env, ["example.com"])
        assert resolver.resolve("example.com").zone_id == "zoneid-abc"

        env["ZONE_ID_EXAMPLE_COM"] = "zoneid-new"
        assert resolver.resolve("example.com").zone_id == "zoneid-new"

    def test_repr_hides_token(self) -> None:
        assert "token-abc" not in repr(DomainConfig("zoneid-abc", "token-abc"))

    def test_check_allowed_does_not_read_credentials(self) -> None:
        reads = []

        def lookup(key: str):
            reads.append(key)
            return None

        resolver = DomainConfigResolver(SyncConfig(allowed_domains=["example.com"]), lookup)

        resolver.check_allowed("example.com")
        with pytest.raises(DisallowedDomainError):
            resolver.check_allowed("unauthorized.com")
        assert reads == []
