"""
Exception classes for the ban sync system.

All exceptions inherit from BanSyncError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional

from .enums import (
    AccessErrorCode,
    ConfigErrorCode,
    InvariantErrorCode,
    RemoteErrorCode,
)


class BanSyncError(Exception):
    """Base exception for all ban sync errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(BanSyncError):
    """Raised when caller input cannot be used (e.g. an empty domain)."""

    pass


class DisallowedDomainError(BanSyncError):
    """Raised when a domain is not on the configured allow-list."""

    def __init__(self, domain: str, allowed: Optional[list[str]] = None) -> None:
        super().__init__(
            code=AccessErrorCode.DISALLOWED_DOMAIN.value,
            message=f"Domain {domain} not allowed",
            details={"domain": domain, "allowed_domains": allowed or []},
        )
        self.domain = domain


class DisallowedIpError(BanSyncError):
    """Raised when a caller IP is not on the configured allow-list."""

    def __init__(self, ip: str) -> None:
        super().__init__(
            code=AccessErrorCode.DISALLOWED_IP.value,
            message=f"IP {ip} not allowed",
            details={"ip": ip},
        )
        self.ip = ip


class ConfigError(BanSyncError):
    """Raised when per-domain credentials are missing from configuration."""

    MESSAGES = {
        ConfigErrorCode.MISSING_ZONE: "Zone ID missing",
        ConfigErrorCode.MISSING_API_TOKEN: "API token missing",
    }

    def __init__(self, kind: ConfigErrorCode, details: Optional[dict] = None) -> None:
        super().__init__(
            code=kind.value,
            message=self.MESSAGES[kind],
            details=details,
        )
        self.kind = kind


class RemoteProtocolError(BanSyncError):
    """Raised when the Cloudflare API answers with something unusable."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(code=code, message=message, details=details)
        self.status_code = status_code
        self.body = body


class SchemaValidationError(RemoteProtocolError):
    """Raised when a response body does not match the expected schema.

    ``issues`` holds one ``{"path", "code", "message"}`` dict per violation;
    the underlying pydantic error is kept as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        issues: list[dict],
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(
            code=RemoteErrorCode.SCHEMA_VALIDATION.value,
            message=message,
            details={"issues": issues},
            status_code=status_code,
            body=body,
        )
        self.issues = issues


class RemoteTimeoutError(BanSyncError):
    """Raised when a Cloudflare call exceeds its time bound."""

    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(
            code=RemoteErrorCode.TIMEOUT.value,
            message=f"Request to {url} timed out after {timeout:g}s",
            details={"url": url, "timeout_seconds": timeout},
        )
        self.url = url
        self.timeout = timeout


class InvariantViolationError(BanSyncError):
    """Raised when remote state is internally inconsistent."""

    def __init__(self, kind: InvariantErrorCode, message: str, details: Optional[dict] = None) -> None:
        super().__init__(code=kind.value, message=message, details=details)
        self.kind = kind
