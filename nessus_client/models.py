"""Data models for nessus-client.

All models use Pydantic v2. Header and query values are lists to support
repeated names, the same shape on the way in (CallDescription) and out
(Response).
"""

from __future__ import annotations

import platform
import sys
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

VERSION = "0.0.1"


def _default_platform() -> str:
    """Return "<os>-<arch>" for the running interpreter, e.g. "linux-x86_64"."""
    return f"{sys.platform}-{platform.machine().lower() or 'unknown'}"


def _as_multi_map(value: Any) -> Any:
    """Wrap scalar string values of a mapping in single-element lists."""
    if not isinstance(value, dict):
        return value
    return {
        key: [item] if isinstance(item, str) else item
        for key, item in value.items()
    }


# =============================================================================
# Call Models
# =============================================================================


class CallDescription(BaseModel):
    """One logical API call: which endpoint, with what payload.

    The body may be a raw string, any JSON-serializable value, or an explicit
    StringBody/JsonBody from nessus_client.request. None means no body.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = Field(description="HTTP method (GET, POST, etc.)")
    path: str = Field(description="Path appended to the server URL, e.g., /scans")
    params: dict[str, list[str]] = Field(
        default_factory=dict, description="Query parameters (arrays for repeated params)"
    )
    body: Any = Field(default=None, description="Request body, None for no body")
    content_type: str | None = Field(default=None, description="Content-Type override")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Extra headers, appended to the defaults"
    )
    compress: bool = Field(default=False, description="gzip the request body")

    @field_validator("params", "headers", mode="before")
    @classmethod
    def wrap_scalar_values(cls, v: Any) -> Any:
        return _as_multi_map(v)


class Response(BaseModel):
    """Decoded result of a call.

    Header keys are lowercase. Header values are arrays for repeated headers.
    The network stream is closed before this object exists.
    """

    model_config = ConfigDict(extra="forbid")

    status_code: int = Field(description="HTTP status code")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, array values)"
    )
    body: Any = Field(default=None, description="Parsed JSON body, None if empty")
    content: bytes = Field(default=b"", description="Raw response payload")
    http_version: str = Field(default="HTTP/1.1", description="Protocol version")

    @property
    def ok(self) -> bool:
        """True for 2xx status codes."""
        return 200 <= self.status_code < 300


# =============================================================================
# Configuration Models
# =============================================================================


class RequestDefaults(BaseModel):
    """Fixed values every outbound request starts from."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    client_name: str = Field(default="Nessus", description="Product token in User-Agent")
    version: str = Field(default=VERSION, description="Client version in User-Agent")
    platform: str = Field(
        default_factory=_default_platform, description="<os>-<arch> in User-Agent"
    )
    accept: str = Field(default="application/json", description="Default Accept header")
    content_type: str = Field(
        default="application/json", description="Default Content-Type header"
    )

    @property
    def user_agent(self) -> str:
        return f"{self.client_name}/{self.version} ({self.platform})"


class ClientConfig(BaseModel):
    """Connection settings for one Nessus server."""

    model_config = ConfigDict(extra="forbid")

    server_url: str = Field(description="Base URL, e.g., https://nessus.local:8834")
    access_key: str = Field(default="", description="API access key for X-ApiKeys")
    secret_key: str = Field(default="", description="API secret key for X-ApiKeys")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    # Scanners ship with a self-signed certificate out of the box.
    verify_ssl: bool = Field(default=False, description="Verify the server certificate")
    ca_bundle: str | None = Field(default=None, description="CA bundle for server verification")
    cert: str | None = Field(default=None, description="Client certificate (mTLS)")
    key: str | None = Field(default=None, description="Client private key (mTLS)")
    key_password: str | None = Field(default=None, description="Password for the client key")
    ciphers: str | None = Field(default=None, description="OpenSSL cipher string")

    @field_validator("server_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v:
            raise ValueError("server_url must not be empty")
        return v[:-1] if v.endswith("/") else v
