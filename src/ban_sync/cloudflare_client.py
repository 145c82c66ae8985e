"""
Cloudflare Rulesets API client.

This module provides an async client for the four ruleset operations the
sync engine needs. Every call:
- sends the API token as a bearer credential
- is bounded by a total timeout (5 seconds by default)
- rejects non-2xx responses with the status and raw body in the message
- validates the decoded JSON against a pydantic model before returning
"""

import asyncio
import json
from typing import Any, Optional, Protocol, TypeVar

import httpx
import pydantic

from .audit_logger import AuditLogger
from .config import DEFAULT_API_BASE_URL, DEFAULT_TIMEOUT_SECONDS
from .enums import InvariantErrorCode, RemoteErrorCode
from .exceptions import (
    InvariantViolationError,
    RemoteProtocolError,
    RemoteTimeoutError,
    SchemaValidationError,
)
from .models import CreateRulesetRequest, RuleData, Ruleset, RulesetResponse


ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


class CloudflareClient(Protocol):
    """Operations the sync engine performs against the Rulesets API."""

    async def get_ruleset_by_phase(
        self, zone_id: str, api_token: str, phase: str
    ) -> Optional[Ruleset]: ...

    async def create_ruleset(
        self, zone_id: str, api_token: str, request: CreateRulesetRequest
    ) -> Ruleset: ...

    async def create_rule(
        self, zone_id: str, ruleset_id: str, api_token: str, rule: RuleData
    ) -> str: ...

    async def update_rule(
        self, zone_id: str, ruleset_id: str, rule_id: str, api_token: str, rule: RuleData
    ) -> None: ...


def format_validation_issues(error: pydantic.ValidationError) -> list[dict]:
    """Flatten a pydantic error into ``{"path", "code", "message"}`` dicts."""
    return [
        {
            "path": list(issue["loc"]),
            "code": issue["type"],
            "message": issue["msg"],
        }
        for issue in error.errors()
    ]


def has_error_code(body: Optional[str], code: int) -> bool:
    """Check whether a response body reports the given Cloudflare error code."""
    if not body:
        return False
    try:
        payload = json.loads(body)
    except ValueError:
        return str(code) in body
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list):
            return any(
                isinstance(error, dict) and error.get("code") == code
                for error in errors
            )
    return False


class CloudflareAPI:
    """
    Async Cloudflare Rulesets API client.

    Use as an async context manager, or call ``aclose()`` when done.
    A custom ``transport`` can be supplied (e.g. ``httpx.MockTransport``).
    """

    # Error code Cloudflare reports when a phase has no entrypoint ruleset
    NOT_FOUND_CODE = 10003

    COMPONENT = "CloudflareAPI"

    def __init__(
        self,
        logger: AuditLogger,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the Cloudflare client.

        Args:
            logger: Logger for request and rule lifecycle events
            base_url: API root, without trailing slash
            timeout: Total time bound per call in seconds
            transport: Optional httpx transport override
        """
        self._log = logger
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "CloudflareAPI":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def timeout(self) -> float:
        return self._timeout

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    def _zone_url(self, zone_id: str, path: str) -> str:
        return f"{self._base_url}/zones/{zone_id}{path}"

    async def _fetch_json(
        self,
        method: str,
        url: str,
        model: type[ModelT],
        api_token: str,
        body: Optional[Any] = None,
    ) -> ModelT:
        """
        Perform one request and return the validated response model.

        Raises:
            RemoteTimeoutError: If the call exceeds the time bound
            RemoteProtocolError: On transport failure, non-2xx status or bad JSON
            SchemaValidationError: If the JSON does not match ``model``
        """
        client = self._ensure_client()
        headers = {"Authorization": f"Bearer {api_token}"}
        if body is not None:
            headers["Content-Type"] = "application/json"

        self._log.debug(self.COMPONENT, f"{method} {url}")

        try:
            response = await asyncio.wait_for(
                client.request(method, url, headers=headers, json=body),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RemoteTimeoutError(url, self._timeout) from e
        except httpx.HTTPError as e:
            raise RemoteProtocolError(
                code=RemoteErrorCode.TRANSPORT_ERROR.value,
                message=f"Request to {url} failed: {e}",
                details={"url": url, "method": method},
            ) from e

        text = response.text

        if not response.is_success:
            raise RemoteProtocolError(
                code=RemoteErrorCode.HTTP_ERROR.value,
                message=f"HTTP {response.status_code}: {response.reason_phrase} - {text}",
                details={"url": url, "method": method},
                status_code=response.status_code,
                body=text,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteProtocolError(
                code=RemoteErrorCode.MALFORMED_JSON.value,
                message=f"Invalid JSON in response from {url}: {e}",
                details={"url": url, "method": method},
                status_code=response.status_code,
                body=text,
            ) from e

        try:
            return model.model_validate(payload)
        except pydantic.ValidationError as e:
            issues = format_validation_issues(e)
            raise SchemaValidationError(
                f"API response validation failed: {json.dumps(issues, indent=2)}",
                issues=issues,
                status_code=response.status_code,
                body=text,
            ) from e

    async def get_ruleset_by_phase(
        self, zone_id: str, api_token: str, phase: str
    ) -> Optional[Ruleset]:
        """
        Fetch the entrypoint ruleset of a phase.

        Returns:
            The ruleset, or None if Cloudflare reports it does not exist
        """
        url = self._zone_url(zone_id, f"/rulesets/phases/{phase}/entrypoint")
        try:
            response = await self._fetch_json("GET", url, RulesetResponse, api_token)
        except RemoteProtocolError as e:
            if has_error_code(e.body, self.NOT_FOUND_CODE):
                self._log.info(
                    self.COMPONENT,
                    f"Entrypoint ruleset not found for zone {zone_id}",
                    {"zone_id": zone_id, "phase": phase},
                )
                return None
            raise
        return response.result

    async def create_ruleset(
        self, zone_id: str, api_token: str, request: CreateRulesetRequest
    ) -> Ruleset:
        self._log.info(
            self.COMPONENT,
            f"Creating entrypoint ruleset for zone {zone_id}",
            {"zone_id": zone_id, "phase": request.phase},
        )
        response = await self._fetch_json(
            "POST",
            self._zone_url(zone_id, "/rulesets"),
            RulesetResponse,
            api_token,
            body=request.model_dump(),
        )
        return response.result

    async def create_rule(
        self, zone_id: str, ruleset_id: str, api_token: str, rule: RuleData
    ) -> str:
        """
        Add a rule to a ruleset.

        Returns:
            The id Cloudflare assigned to the new rule

        Raises:
            InvariantViolationError: If the response does not contain the rule
        """
        self._log.info(
            self.COMPONENT,
            f'Creating rule "{rule.description}" in ruleset {ruleset_id}',
        )
        response = await self._fetch_json(
            "POST",
            self._zone_url(zone_id, f"/rulesets/{ruleset_id}/rules"),
            RulesetResponse,
            api_token,
            body={"rules": [rule.model_dump()]},
        )

        created = next(
            (r for r in response.result.rules if r.description == rule.description),
            None,
        )
        if created is None:
            raise InvariantViolationError(
                InvariantErrorCode.CREATED_RULE_MISSING,
                f"Failed to create rule: {rule.description}",
                {"ruleset_id": ruleset_id, "description": rule.description},
            )

        self._log.info(
            self.COMPONENT,
            f'Created rule "{rule.description}" with ID {created.id}',
        )
        return created.id

    async def update_rule(
        self, zone_id: str, ruleset_id: str, rule_id: str, api_token: str, rule: RuleData
    ) -> None:
        self._log.info(
            self.COMPONENT,
            f'Updating rule "{rule.description}" ({rule_id})',
        )
        await self._fetch_json(
            "PATCH",
            self._zone_url(zone_id, f"/rulesets/{ruleset_id}/rules/{rule_id}"),
            RulesetResponse,
            api_token,
            body=rule.model_dump(),
        )
        self._log.info(
            self.COMPONENT,
            f'Successfully updated rule "{rule.description}"',
        )
