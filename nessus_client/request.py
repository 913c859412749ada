"""Request builder - Turns a method, URL and body into a wire-ready request.

The builder owns the final encoded body bytes. Encoding happens once, in
set_body; afterwards the bytes are an immutable snapshot and every call to
get_body hands out a fresh read cursor over them, so a transport can resend
the body (redirect, connection reset) without re-running JSON serialization
or gzip.

Body encoding is a 2x2 matrix, raw string vs structured value and plain vs
gzip. Each cell has a fixed header side effect:

    StringBody, plain   no header change
    StringBody, gzip    Content-Encoding: gzip, Vary: Accept-Encoding
    JsonBody, plain     Content-Type: application/json
    JsonBody, gzip      all three of the above
"""

from __future__ import annotations

import base64
import gzip
import io
import json
import re
import zlib
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable

import httpx
from pydantic_core import PydanticSerializationError, to_jsonable_python

from nessus_client.errors import EncodingError, InvalidRequestError, SerializationError
from nessus_client.models import RequestDefaults

JSON_CONTENT_TYPE = "application/json"

# RFC 7230 token characters; an HTTP method must be a non-empty token.
_METHOD_TOKEN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


# =============================================================================
# Body Variants
# =============================================================================


@dataclass(frozen=True)
class StringBody:
    """A body sent as the UTF-8 bytes of a string, as-is."""

    text: str


@dataclass(frozen=True)
class JsonBody:
    """A body serialized as JSON before sending."""

    value: Any


Body = StringBody | JsonBody


def body_from_value(value: Any) -> Body:
    """Lift a plain value into a Body variant.

    Strings become StringBody, variants pass through, anything else is treated
    as a structured value to be JSON-encoded.
    """
    if isinstance(value, (StringBody, JsonBody)):
        return value
    if isinstance(value, str):
        return StringBody(value)
    return JsonBody(value)


class _UnsupportedValue(TypeError):
    """Raised from the JSON default hook for a value with no JSON form."""

    def __init__(self, value_type: type, message: str) -> None:
        super().__init__(message)
        self.value_type = value_type


def _json_default(obj: Any) -> Any:
    """Convert values json cannot encode natively.

    Pydantic models, dataclasses, enums, datetimes, UUIDs, sets and the other
    types pydantic knows are turned into their JSON-compatible form.
    """
    try:
        return to_jsonable_python(obj)
    except PydanticSerializationError as e:
        raise _UnsupportedValue(type(obj), str(e)) from e


def encode_json(value: Any) -> bytes:
    """Encode value as compact UTF-8 JSON.

    Raises:
        SerializationError: If value (or something nested in it) has no JSON
            representation, including NaN, infinities and nesting too deep to
            encode. value_type names the offending value's type.
    """
    try:
        text = json.dumps(
            value,
            default=_json_default,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except _UnsupportedValue as e:
        raise SerializationError(
            f"cannot serialize value of type {e.value_type.__name__} to JSON: {e}",
            value_type=e.value_type,
        ) from e
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError(
            f"cannot serialize body of type {type(value).__name__} to JSON: {e}",
            value_type=type(value),
        ) from e
    return text.encode("utf-8")


def gzip_bytes(data: bytes) -> bytes:
    """gzip data with a zero mtime, so equal input gives equal output.

    Raises:
        EncodingError: If the compressor fails.
    """
    try:
        return gzip.compress(data, mtime=0)
    except (OSError, zlib.error) as e:
        raise EncodingError(f"gzip compression failed: {e}") from e


# =============================================================================
# Request
# =============================================================================


class Request:
    """An outbound HTTP request restricted to header and body operations.

    Create with Request.create(); it validates method and URL and installs the
    default headers. Convert to the transport's representation with to_httpx().
    """

    def __init__(self, method: str, url: httpx.URL, defaults: RequestDefaults) -> None:
        self.method = method
        self.url = url
        self.defaults = defaults
        self.body: BinaryIO | None = None
        self.content_length = 0
        self.get_body: Callable[[], BinaryIO] | None = None
        self._header_items: list[tuple[str, str]] = []
        self._payload: bytes | None = None

    @classmethod
    def create(
        cls,
        method: str,
        url: str,
        defaults: RequestDefaults | None = None,
    ) -> "Request":
        """Build a request shell with the default headers.

        Raises:
            InvalidRequestError: If method is not an HTTP token or url is not an
                absolute http(s) URL.
        """
        if not isinstance(method, str) or not _METHOD_TOKEN.fullmatch(method):
            raise InvalidRequestError(f"invalid method {method!r}")

        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as e:
            raise InvalidRequestError(f"invalid URL {url!r}: {e}") from e
        if parsed.scheme not in ("http", "https"):
            raise InvalidRequestError(
                f"invalid URL {url!r}: missing an 'http://' or 'https://' scheme"
            )
        if not parsed.host:
            raise InvalidRequestError(f"invalid URL {url!r}: missing host")

        defaults = defaults or RequestDefaults()
        request = cls(method.upper(), parsed, defaults)
        request.add_header("User-Agent", defaults.user_agent)
        request.add_header("Accept", defaults.accept)
        request.set_header("Content-Type", defaults.content_type)
        return request

    # -------------------------------------------------------------------------
    # Headers
    # -------------------------------------------------------------------------

    @property
    def headers(self) -> httpx.Headers:
        """Snapshot of the current headers (case-insensitive, multi-valued)."""
        return httpx.Headers(self._header_items)

    def add_header(self, name: str, value: str) -> None:
        """Append a value for name, keeping any existing values."""
        try:
            name.encode("ascii")
            value.encode("ascii")
        except UnicodeEncodeError as e:
            raise InvalidRequestError(
                f"header {name!r} contains non-ASCII characters; HTTP requires ASCII"
            ) from e
        self._header_items.append((name, value))

    def set_header(self, name: str, value: str) -> None:
        """Replace all values for name with value."""
        self.del_header(name)
        self.add_header(name, value)

    def del_header(self, name: str) -> None:
        lower = name.lower()
        self._header_items = [(k, v) for k, v in self._header_items if k.lower() != lower]

    def set_basic_auth(self, username: str, password: str) -> None:
        """Install an Authorization: Basic header."""
        token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        self.set_header("Authorization", f"Basic {token}")

    # -------------------------------------------------------------------------
    # Body
    # -------------------------------------------------------------------------

    def set_body(self, body: Any, compress: bool = False) -> None:
        """Encode body into the request, optionally gzip-compressed.

        Args:
            body: StringBody, JsonBody, or a plain value (see body_from_value).
            compress: gzip the encoded bytes.

        Raises:
            SerializationError: If a structured body cannot be JSON-encoded.
            EncodingError: If compression fails.
        """
        body = body_from_value(body)

        if isinstance(body, StringBody):
            payload = body.text.encode("utf-8")
            if compress:
                payload = gzip_bytes(payload)
                self._mark_gzip()
        else:
            payload = encode_json(body.value)
            if compress:
                payload = gzip_bytes(payload)
                self._mark_gzip()
            self.set_header("Content-Type", JSON_CONTENT_TYPE)

        self._set_payload(payload)

    def _mark_gzip(self) -> None:
        self.set_header("Content-Encoding", "gzip")
        self.set_header("Vary", "Accept-Encoding")

    def _set_payload(self, payload: bytes) -> None:
        snapshot = bytes(payload)

        def get_body() -> BinaryIO:
            return io.BytesIO(snapshot)

        self._payload = snapshot
        self.content_length = len(snapshot)
        self.body = get_body()
        self.get_body = get_body

    @property
    def payload(self) -> bytes | None:
        """The encoded body bytes, or None if no body was set."""
        return self._payload

    # -------------------------------------------------------------------------
    # Transport conversion
    # -------------------------------------------------------------------------

    def to_httpx(self) -> httpx.Request:
        """Convert to an httpx.Request carrying the encoded body bytes."""
        return httpx.Request(
            self.method,
            self.url,
            headers=self.headers,
            content=self._payload,
        )

    def __repr__(self) -> str:
        return f"<Request({self.method!r}, {str(self.url)!r})>"
