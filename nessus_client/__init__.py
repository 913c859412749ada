"""Minimal client SDK for the Nessus vulnerability scanner REST API."""

from nessus_client.client import Client
from nessus_client.errors import (
    ConfigError,
    DecodeError,
    EncodingError,
    InvalidRequestError,
    NessusClientError,
    SerializationError,
    TransportError,
)
from nessus_client.models import VERSION, CallDescription, ClientConfig, RequestDefaults, Response
from nessus_client.request import JsonBody, Request, StringBody

__version__ = VERSION

__all__ = [
    "CallDescription",
    "Client",
    "ClientConfig",
    "ConfigError",
    "DecodeError",
    "EncodingError",
    "InvalidRequestError",
    "JsonBody",
    "NessusClientError",
    "Request",
    "RequestDefaults",
    "Response",
    "SerializationError",
    "StringBody",
    "TransportError",
    "__version__",
]
