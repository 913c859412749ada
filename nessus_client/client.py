"""Client - Performs calls against the Nessus REST API.

A call is a single linear pipeline with no retries:

    compose path -> build request -> X-ApiKeys -> headers -> encode body
    -> send -> decode -> Response

Every failure ends the call with one of the errors in nessus_client.errors.
The response stream is closed on every exit path once the request was sent.
"""

from __future__ import annotations

import json
import logging
import ssl
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

import httpx

from nessus_client.errors import (
    ConfigError,
    DecodeError,
    NessusClientError,
    TransportError,
)
from nessus_client.models import CallDescription, ClientConfig, RequestDefaults, Response
from nessus_client.request import Request

logger = logging.getLogger(__name__)

API_KEYS_HEADER = "X-ApiKeys"


def encode_query(params: dict[str, list[str]]) -> str:
    """Encode a query multi-map, keys sorted and values kept in order."""
    pairs = [(key, value) for key in sorted(params) for value in params[key]]
    return urlencode(pairs)


def format_api_keys(access_key: str, secret_key: str) -> str:
    """Render the X-ApiKeys header value. Empty keys are rendered as-is."""
    return f"accessKey={access_key}; secretKey={secret_key}"


class Client:
    """Nessus API client.

    Usage:
        config = ClientConfig(server_url="https://nessus:8834",
                              access_key="...", secret_key="...")
        with Client(config) as client:
            response = client.perform_request(
                CallDescription(method="GET", path="/scans")
            )

    Thread-safe: calls share only the underlying httpx.Client connection pool.
    """

    def __init__(
        self,
        config: ClientConfig,
        http_client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
        defaults: RequestDefaults | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server URL, API keys and TLS settings.
            http_client: Existing httpx.Client to send through. The caller keeps
                ownership and must close it.
            transport: Custom httpx transport for a client built here (ignored
                when http_client is given).
            defaults: Request defaults (User-Agent parts, Accept, Content-Type).

        Raises:
            ConfigError: If the TLS settings are invalid.
        """
        self._config = config
        self._defaults = defaults or RequestDefaults()
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(**self._build_client_kwargs(config, transport))

    @classmethod
    def from_config_file(cls, config_path: Path, **kwargs: Any) -> "Client":
        """Create a client from a YAML config file (see config_loader)."""
        from nessus_client.config_loader import load_client_config

        return cls(load_client_config(config_path), **kwargs)

    def __enter__(self) -> "Client":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this Client created it."""
        if self._owns_http:
            self._http.close()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @staticmethod
    def _build_client_kwargs(
        config: ClientConfig,
        transport: httpx.BaseTransport | None,
    ) -> dict[str, Any]:
        """Build kwargs for httpx.Client including TLS configuration.

        Args:
            config: Client configuration with TLS settings.
            transport: Optional custom transport.

        Returns:
            Dictionary of kwargs for httpx.Client constructor.
        """
        kwargs: dict[str, Any] = {"timeout": config.timeout}
        if transport is not None:
            kwargs["transport"] = transport

        if not (config.ciphers or config.ca_bundle or config.cert):
            kwargs["verify"] = config.verify_ssl
            return kwargs

        # Ciphers, a CA bundle or a client certificate need a custom SSL context
        ssl_context = ssl.create_default_context()
        if config.ciphers:
            try:
                ssl_context.set_ciphers(config.ciphers)
            except ssl.SSLError as e:
                raise ConfigError(f"Invalid cipher string '{config.ciphers}': {e}") from e

        if config.ca_bundle:
            try:
                ssl_context.load_verify_locations(config.ca_bundle)
            except (OSError, ssl.SSLError) as e:
                raise ConfigError(f"Cannot load CA bundle '{config.ca_bundle}': {e}") from e
        elif not config.verify_ssl:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE

        if config.cert:
            try:
                ssl_context.load_cert_chain(config.cert, config.key, config.key_password)
            except (OSError, ssl.SSLError) as e:
                raise ConfigError(f"Cannot load client certificate '{config.cert}': {e}") from e

        kwargs["verify"] = ssl_context
        return kwargs

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    def request(self, method: str, path: str, **kwargs: Any) -> Response:
        """Shorthand for perform_request(CallDescription(method, path, **kwargs))."""
        return self.perform_request(CallDescription(method=method, path=path, **kwargs))

    def perform_request(self, call: CallDescription) -> Response:
        """Perform one API call and return the decoded response.

        Args:
            call: What to call and with which payload.

        Returns:
            Response with status, lowercase headers and the parsed JSON body.
            Non-2xx responses are returned, not raised.

        Raises:
            InvalidRequestError: If method or URL is malformed.
            SerializationError: If the body cannot be JSON-encoded.
            EncodingError: If body compression fails.
            TransportError: If sending or reading fails (connection, TLS, timeout).
            DecodeError: If the response body is not valid JSON.
        """
        path = call.path
        if call.params:
            path += "?" + encode_query(call.params)
        url = self._config.server_url + path

        logger.debug("%s %s", call.method.upper(), url)
        try:
            request = self._build_request(call, url)
        except NessusClientError as e:
            logger.debug("cannot build request for %s %s: %s", call.method.upper(), url, e)
            raise

        raw = self._send(request)
        try:
            return self._convert_response(raw)
        finally:
            raw.close()

    def _build_request(self, call: CallDescription, url: str) -> Request:
        """Assemble the wire request: defaults, auth, overrides, extra headers, body."""
        request = Request.create(call.method, url, defaults=self._defaults)

        request.set_header(
            API_KEYS_HEADER,
            format_api_keys(self._config.access_key, self._config.secret_key),
        )

        if call.content_type:
            request.set_header("Content-Type", call.content_type)

        for name, values in call.headers.items():
            for value in values:
                request.add_header(name, value)

        if call.body is not None:
            request.set_body(call.body, compress=call.compress)

        return request

    def _send(self, request: Request) -> httpx.Response:
        """Send the request, streaming the response.

        Raises:
            TransportError: If the request fails before a response arrives.
        """
        try:
            return self._http.send(request.to_httpx(), stream=True)
        except httpx.TimeoutException as e:
            logger.debug("send request failed: %s", e)
            raise TransportError(f"request timeout: {e}") from e
        except httpx.ConnectError as e:
            logger.debug("send request failed: %s", e)
            raise TransportError(f"connection error: {e}") from e
        except httpx.RequestError as e:
            logger.debug("send request failed: %s", e)
            raise TransportError(f"request error: {e}") from e

    def _convert_response(self, raw: httpx.Response) -> Response:
        """Read and decode a streamed httpx response into a Response.

        Raises:
            TransportError: If reading the body fails.
            DecodeError: If the body cannot be decoded or is not valid JSON.
        """
        # Headers - lowercase keys, list values
        headers: dict[str, list[str]] = {}
        for key, value in raw.headers.multi_items():
            headers.setdefault(key.lower(), []).append(value)

        payload = b""
        try:
            if raw.is_stream_consumed:
                content = raw.read()
            else:
                # Keep the encoded bytes so a corrupt payload can be reported
                payload = b"".join(raw.iter_raw())
                content = httpx.Response(
                    raw.status_code, headers=raw.headers, content=payload
                ).content
        except httpx.DecodingError as e:
            # Content-Encoding said gzip/deflate/br but the payload was not
            raise DecodeError(
                f"cannot decode response content: {e}",
                status_code=raw.status_code,
                headers=headers,
                content=payload,
            ) from e
        except httpx.RequestError as e:
            raise TransportError(f"reading response failed: {e}") from e

        logger.debug("response: %d - %d bytes", raw.status_code, len(content))

        body: Any = None
        if content:
            try:
                body = json.loads(content)
            except ValueError as e:
                raise DecodeError(
                    f"response body is not valid JSON (status {raw.status_code}): {e}",
                    status_code=raw.status_code,
                    headers=headers,
                    content=content,
                ) from e

        return Response(
            status_code=raw.status_code,
            headers=headers,
            body=body,
            content=content,
            http_version=raw.http_version,
        )
