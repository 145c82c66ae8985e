"""
HTTP API for the ban sync system.

Exposes ``POST /api/sync`` for ban-reporting agents. The endpoint checks
the caller IP against ``ALLOWED_IPS``, validates the request body, runs
one reconciliation per request and maps errors to HTTP status codes:
- 403 for a disallowed caller IP or domain
- 400 for an invalid request body
- 500 for missing configuration and every other failure

Syncs for the same domain are serialised within the process so two
requests cannot both create the domain's rule.
"""

import asyncio
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional, TextIO

import pydantic
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .audit_logger import AuditLogger, create_logger
from .cloudflare_client import CloudflareAPI, format_validation_issues
from .config import Lookup, SyncConfig
from .domain_resolver import DomainConfigResolver
from .exceptions import ConfigError, DisallowedDomainError, DisallowedIpError
from .models import SyncRequest
from .sync_service import CloudflareSyncService


COMPONENT = "SyncEndpoint"

# Builds a client (async context manager) bound to the request's logger
ClientFactory = Callable[[AuditLogger], CloudflareAPI]


class DomainLockRegistry:
    """
    Per-domain asyncio locks; one sync per domain at a time.

    A domain's lock is dropped once no task holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, domain: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(domain, asyncio.Lock())
        self._users[domain] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[domain] -= 1
            if self._users[domain] == 0:
                del self._users[domain]
                del self._locks[domain]

    def is_locked(self, domain: str) -> bool:
        lock = self._locks.get(domain)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class RequestBodyError(Exception):
    """Request body is not valid JSON or does not match SyncRequest."""

    def __init__(self, issues: list[dict]) -> None:
        super().__init__("Validation failed")
        self.issues = issues


def get_caller_ip(request: Request) -> str:
    """Caller IP as reported by Cloudflare, else the socket peer."""
    header_ip = request.headers.get("CF-Connecting-IP")
    if header_ip:
        return header_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def authorize_request(config: SyncConfig, request: Request, log: AuditLogger) -> None:
    """
    Reject callers outside ALLOWED_IPS. An empty list allows everyone.

    Raises:
        DisallowedIpError: If the caller IP is not allowed
    """
    if not config.allowed_ips:
        return
    caller_ip = get_caller_ip(request)
    log.info(COMPONENT, f"Request from IP: {caller_ip}")
    if caller_ip not in config.allowed_ips:
        log.warn(COMPONENT, f"Unauthorized IP {caller_ip} attempted access")
        raise DisallowedIpError(caller_ip)


async def parse_sync_request(request: Request) -> SyncRequest:
    try:
        payload = await request.json()
    except ValueError:
        raise RequestBodyError(
            [{"path": [], "code": "json_invalid", "message": "Request body is not valid JSON"}]
        ) from None
    try:
        return SyncRequest.model_validate(payload)
    except pydantic.ValidationError as e:
        raise RequestBodyError(format_validation_issues(e)) from e


def error_response(error: Exception) -> JSONResponse:
    """Map an exception raised while handling a sync to a JSON response."""
    if isinstance(error, (DisallowedIpError, DisallowedDomainError)):
        return JSONResponse({"success": False, "message": error.message}, status_code=403)
    if isinstance(error, ConfigError):
        return JSONResponse({"success": False, "message": error.message}, status_code=500)
    if isinstance(error, RequestBodyError):
        return JSONResponse(
            {"success": False, "message": "Validation failed", "issues": error.issues},
            status_code=400,
        )
    return JSONResponse(
        {"success": False, "message": f"Internal server error: {error}"},
        status_code=500,
    )


def create_app(
    config: Optional[SyncConfig] = None,
    lookup: Optional[Lookup] = None,
    client_factory: Optional[ClientFactory] = None,
    log_stream: Optional[TextIO] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Process configuration (defaults to SyncConfig.from_env())
        lookup: Credential lookup (defaults to os.environ)
        client_factory: Builds the Cloudflare client for each request
        log_stream: Where log lines go (defaults to stderr)
    """
    if config is None:
        config = SyncConfig.from_env()

    if client_factory is None:
        def client_factory(log: AuditLogger) -> CloudflareAPI:
            return CloudflareAPI(log, base_url=config.api_base_url, timeout=config.timeout_seconds)

    base_logger = create_logger(
        level=config.logging.level,
        output_format=config.logging.output_format,
        output_stream=log_stream,
    )
    resolver = DomainConfigResolver(config, lookup)
    locks = DomainLockRegistry()

    app = FastAPI(title="Cloudflare Ban Sync", version=__version__)
    app.state.config = config
    app.state.locks = locks

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/api/sync")
    async def sync(request: Request) -> JSONResponse:
        """Sync the caller's full ban list for one domain."""
        start = time.monotonic()
        log = base_logger.bind(str(uuid.uuid4()))
        domain = ""

        try:
            authorize_request(config, request, log)

            body = await parse_sync_request(request)
            domain = body.domain
            log.info(COMPONENT, f"Starting sync for {domain} with {len(body.bans)} bans")
            resolver.check_allowed(domain)

            async with locks.hold(domain):
                async with client_factory(log) as client:
                    service = CloudflareSyncService(config, resolver, client, log)
                    message = await service.sync_bans(domain, body.bans)

            duration_ms = (time.monotonic() - start) * 1000
            log.info(COMPONENT, f"Success for {domain} in {duration_ms:.0f}ms")
            return JSONResponse({"success": True, "message": message, "data": body.bans})

        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            log.log_error(
                COMPONENT,
                f"Failed for {domain or 'unknown domain'} after {duration_ms:.0f}ms",
                error=e,
                response_status_code=getattr(e, "status_code", None),
            )
            return error_response(e)

    return app
