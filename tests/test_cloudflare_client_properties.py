"""
Property-based tests for the Cloudflare Rulesets API client.

HTTP traffic is served by httpx.MockTransport, so no network requests
are made. Async calls are driven with asyncio.run.
"""

import asyncio
import json
import string
from io import StringIO

import httpx
import pydantic
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ban_sync.audit_logger import AuditLogger
from ban_sync.cloudflare_client import CloudflareAPI, has_error_code
from ban_sync.enums import InvariantErrorCode, LogLevel, RemoteErrorCode
from ban_sync.exceptions import (
    InvariantViolationError,
    RemoteProtocolError,
    RemoteTimeoutError,
    SchemaValidationError,
)
from ban_sync.models import CreateRulesetRequest, RuleData, Ruleset


BASE_URL = "https://api.cloudflare.test/client/v4"
PHASE = "http_request_firewall_custom"


def envelope(result, success: bool = True, errors=None) -> dict:
    return {
        "success": success,
        "errors": errors or [],
        "messages": [],
        "result": result,
    }


def ruleset_body(ruleset_id: str = "rs-1", rules=None) -> dict:
    return envelope({"id": ruleset_id, "rules": rules or []})


def run_with(handler, call, timeout: float = 5.0):
    """Run ``call(client)`` against a client backed by ``handler``."""
    logger = AuditLogger(output_stream=StringIO(), min_level=LogLevel.DEBUG)

    async def _run():
        async with CloudflareAPI(
            logger,
            base_url=BASE_URL,
            timeout=timeout,
            transport=httpx.MockTransport(handler),
        ) as client:
            return await call(client)

    return asyncio.run(_run())


class RecordingHandler:
    """Returns canned responses and remembers every request."""

    def __init__(self, *responses: httpx.Response) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responses.pop(0)


class TestGetRulesetByPhase:
    def test_returns_ruleset(self) -> None:
        handler = RecordingHandler(
            httpx.Response(200, json=ruleset_body("rs-1", [{"id": "r1", "description": "fail2ban", "action": "block"}]))
        )

        ruleset = run_with(handler, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE))

        assert isinstance(ruleset, Ruleset)
        assert ruleset.id == "rs-1"
        assert ruleset.rules[0].id == "r1"
        # passthrough fields are kept
        assert ruleset.rules[0].model_extra == {"action": "block"}

        request = handler.requests[0]
        assert request.method == "GET"
        assert str(request.url) == f"{BASE_URL}/zones/zone-1/rulesets/phases/{PHASE}/entrypoint"
        assert request.headers["Authorization"] == "Bearer tok"
        assert "Content-Type" not in request.headers

    def test_not_found_code_in_error_response_returns_none(self) -> None:
        body = envelope(None, success=False, errors=[{"code": 10003, "message": "could not find entrypoint ruleset"}])
        handler = RecordingHandler(httpx.Response(404, json=body))

        assert run_with(handler, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE)) is None

    def test_not_found_code_in_200_failure_envelope_returns_none(self) -> None:
        body = envelope(None, success=False, errors=[{"code": 10003, "message": "not found"}])
        handler = RecordingHandler(httpx.Response(200, json=body))

        assert run_with(handler, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE)) is None

    def test_plain_404_without_code_propagates(self) -> None:
        handler = RecordingHandler(httpx.Response(404, text="Not Found"))

        with pytest.raises(RemoteProtocolError) as exc_info:
            run_with(handler, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE))
        assert exc_info.value.status_code == 404

    def test_other_error_codes_propagate(self) -> None:
        body = envelope(None, success=False, errors=[{"code": 10000, "message": "Authentication error"}])
        handler = RecordingHandler(httpx.Response(403, json=body))

        with pytest.raises(RemoteProtocolError):
            run_with(handler, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE))


class TestFailureClassification:
    def test_http_403_embeds_status_and_body(self) -> None:
        handler = RecordingHandler(httpx.Response(403, text="Forbidden"))

        with pytest.raises(RemoteProtocolError) as exc_info:
            run_with(handler, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE))

        error = exc_info.value
        assert "403" in str(error)
        assert "Forbidden" in str(error)
        assert error.code == RemoteErrorCode.HTTP_ERROR.value
        assert error.body == "Forbidden"
        assert len(handler.requests) == 1

    @given(
        status=st.integers(min_value=300, max_value=599),
        body=st.text(alphabet=string.ascii_letters + string.digits + " ", min_size=1, max_size=40),
    )
    @settings(max_examples=50, deadline=None)
    def test_any_non_2xx_status_is_reported(self, status: int, body: str) -> None:
        """
        *For any* non-2xx status, the error message contains the status
        code and the raw response body.
        """
        handler = RecordingHandler(httpx.Response(status, text=body))

        with pytest.raises(RemoteProtocolError) as exc_info:
            run_with(handler, lambda c: c.create_ruleset("zone-1", "tok", CreateRulesetRequest()))

        assert f"HTTP {status}" in exc_info.value.message
        assert body in exc_info.value.message
        assert exc_info.value.status_code == status

    def test_schema_mismatch_keeps_cause_and_issues(self) -> None:
        handler = RecordingHandler(
            httpx.Response(200, json=envelope({"id": 42, "rules": [{"id": "r1"}]}))
        )

        with pytest.raises(SchemaValidationError) as exc_info:
            run_with(handler, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE))

        error = exc_info.value
        assert "validation failed" in str(error)
        assert isinstance(error.__cause__, pydantic.ValidationError)
        paths = [issue["path"] for issue in error.issues]
        assert ["result", "id"] in paths
        assert ["result", "rules", 0, "description"] in paths
        for issue in error.issues:
            assert set(issue) == {"path", "code", "message"}

    def test_malformed_json(self) -> None:
        handler = RecordingHandler(httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(RemoteProtocolError) as exc_info:
            run_with(handler, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE))
        assert exc_info.value.code == RemoteErrorCode.MALFORMED_JSON.value

    def test_slow_response_times_out(self) -> None:
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1.0)
            return httpx.Response(200, json=ruleset_body())

        with pytest.raises(RemoteTimeoutError) as exc_info:
            run_with(slow, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE), timeout=0.05)

        assert exc_info.value.code == RemoteErrorCode.TIMEOUT.value
        assert exc_info.value.timeout == 0.05

    def test_httpx_timeout_is_reported_as_timeout(self) -> None:
        def raise_timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(RemoteTimeoutError):
            run_with(raise_timeout, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE))

    def test_connection_failure_is_transport_error(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RemoteProtocolError) as exc_info:
            run_with(refuse, lambda c: c.get_ruleset_by_phase("zone-1", "tok", PHASE))
        assert exc_info.value.code == RemoteErrorCode.TRANSPORT_ERROR.value


class TestMutatingCalls:
    def test_create_ruleset_posts_request(self) -> None:
        handler = RecordingHandler(httpx.Response(200, json=ruleset_body("rs-new")))

        ruleset = run_with(handler, lambda c: c.create_ruleset("zone-1", "tok", CreateRulesetRequest()))

        assert ruleset.id == "rs-new"
        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/zones/zone-1/rulesets"
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {
            "name": "default",
            "kind": "zone",
            "phase": PHASE,
            "description": "",
            "rules": [],
        }

    def test_create_rule_returns_matching_id(self) -> None:
        rules = [
            {"id": "r-other", "description": "other"},
            {"id": "r-new", "description": "fail2ban"},
        ]
        handler = RecordingHandler(httpx.Response(200, json=ruleset_body("rs-1", rules)))
        rule = RuleData(description="fail2ban", expression="ip.src eq 0.0.0.0")

        rule_id = run_with(handler, lambda c: c.create_rule("zone-1", "rs-1", "tok", rule))

        assert rule_id == "r-new"
        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/zones/zone-1/rulesets/rs-1/rules"
        assert json.loads(request.content) == {
            "rules": [{
                "action": "block",
                "description": "fail2ban",
                "expression": "ip.src eq 0.0.0.0",
                "enabled": True,
            }]
        }

    def test_create_rule_missing_from_response(self) -> None:
        handler = RecordingHandler(
            httpx.Response(200, json=ruleset_body("rs-1", [{"id": "r-other", "description": "other"}]))
        )
        rule = RuleData(description="fail2ban", expression="ip.src eq 0.0.0.0")

        with pytest.raises(InvariantViolationError) as exc_info:
            run_with(handler, lambda c: c.create_rule("zone-1", "rs-1", "tok", rule))

        assert exc_info.value.kind is InvariantErrorCode.CREATED_RULE_MISSING
        assert "Failed to create rule: fail2ban" in str(exc_info.value)

    def test_update_rule_patches_full_rule(self) -> None:
        handler = RecordingHandler(httpx.Response(200, json=ruleset_body("rs-1", [{"id": "r1", "description": "fail2ban"}])))
        rule = RuleData(description="fail2ban", expression="ip.src in {192.168.1.1}")

        result = run_with(handler, lambda c: c.update_rule("zone-1", "rs-1", "r1", "tok", rule))

        assert result is None
        request = handler.requests[0]
        assert request.method == "PATCH"
        assert str(request.url) == f"{BASE_URL}/zones/zone-1/rulesets/rs-1/rules/r1"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {
            "action": "block",
            "description": "fail2ban",
            "expression": "ip.src in {192.168.1.1}",
            "enabled": True,
        }


class TestHasErrorCode:
    def test_json_errors(self) -> None:
        body = json.dumps({"errors": [{"code": 10003, "message": "x"}]})
        assert has_error_code(body, 10003)
        assert not has_error_code(body, 10000)

    def test_plain_text_falls_back_to_substring(self) -> None:
        assert has_error_code("error 10003: not found", 10003)

    def test_empty(self) -> None:
        assert not has_error_code(None, 10003)
        assert not has_error_code("", 10003)
