"""CLI entry point for nessus-client.

Issues one raw API call from a config file and prints the decoded body:

    nessus-client request --config nessus.yaml GET /scans
    nessus-client request --config nessus.yaml --json --data '{"name": "x"}' POST /folders
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nessus_client.models import VERSION


def parse_query_param(value: str) -> tuple[str, str]:
    """Parse KEY=VALUE format.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if "=" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid format '{value}'. Expected KEY=VALUE (e.g., 'folder_id=3')"
        )
    key, _, param_value = value.partition("=")
    if not key:
        raise argparse.ArgumentTypeError(f"Invalid format '{value}'. Key cannot be empty.")
    return (key, param_value)


def parse_header(value: str) -> tuple[str, str]:
    """Parse 'NAME: VALUE' format.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if ":" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid format '{value}'. Expected NAME: VALUE (e.g., 'X-Trace: abc')"
        )
    name, _, header_value = value.partition(":")
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"Invalid format '{value}'. Name cannot be empty.")
    return (name, header_value.strip())


@dataclass
class RequestArgs:
    """Parsed arguments for request mode."""

    config: Path
    method: str
    path: str
    params: dict[str, list[str]]
    headers: dict[str, list[str]]
    data: str | None
    json_body: bool
    gzip: bool
    content_type: str | None
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with the request subcommand."""
    parser = argparse.ArgumentParser(
        prog="nessus-client",
        description="Minimal client for the Nessus vulnerability scanner REST API.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    request_parser = subparsers.add_parser(
        "request",
        help="Perform one API call and print the decoded JSON body",
    )
    request_parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to client config YAML (server_url, access_key, secret_key)",
    )
    request_parser.add_argument(
        "--param",
        type=parse_query_param,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        dest="params",
        help="Query parameter (can be repeated)",
    )
    request_parser.add_argument(
        "--header",
        type=parse_header,
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        dest="headers",
        help="Extra request header (can be repeated)",
    )
    request_parser.add_argument(
        "--data",
        default=None,
        help="Request body, sent as-is unless --json is given",
    )
    request_parser.add_argument(
        "--json",
        action="store_true",
        dest="json_body",
        help="Parse --data as JSON and send it as a structured body",
    )
    request_parser.add_argument(
        "--gzip",
        action="store_true",
        help="gzip-compress the request body",
    )
    request_parser.add_argument(
        "--content-type",
        default=None,
        help="Override the request Content-Type",
    )
    request_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log request lines and response sizes to stderr",
    )
    request_parser.add_argument("method", help="HTTP method, e.g., GET")
    request_parser.add_argument("path", help="API path, e.g., /scans")

    return parser


def _group_pairs(pairs: list[tuple[str, str]]) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    for key, value in pairs:
        result.setdefault(key, []).append(value)
    return result


def parse_request_args(namespace: argparse.Namespace) -> RequestArgs:
    """Convert parsed namespace to RequestArgs dataclass."""
    return RequestArgs(
        config=namespace.config,
        method=namespace.method,
        path=namespace.path,
        params=_group_pairs(namespace.params),
        headers=_group_pairs(namespace.headers),
        data=namespace.data,
        json_body=namespace.json_body,
        gzip=namespace.gzip,
        content_type=namespace.content_type,
        verbose=namespace.verbose,
    )


def _check_body_options(parser: argparse.ArgumentParser, namespace: argparse.Namespace) -> None:
    """Reject body flags that would otherwise be dropped silently."""
    if namespace.data is None:
        if namespace.gzip:
            parser.error("--gzip requires --data")
        if namespace.json_body:
            parser.error("--json requires --data")
        return

    if namespace.json_body:
        try:
            value = json.loads(namespace.data)
        except json.JSONDecodeError as e:
            parser.error(f"--data is not valid JSON: {e}")
        if value is None:
            parser.error("--data null is not a request body; omit --data to send none")


def parse_args(args: list[str] | None = None) -> RequestArgs:
    """Parse command-line arguments and return typed args dataclass.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)
    if namespace.command == "request":
        _check_body_options(parser, namespace)
        return parse_request_args(namespace)
    # Should not happen with required=True on subparsers
    parser.error(f"Unknown command: {namespace.command}")


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(args)
        return run_request(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_request(args: RequestArgs) -> int:
    """Run request mode. Returns 0 for a 2xx response, 1 otherwise."""
    from nessus_client.client import Client
    from nessus_client.errors import ConfigError, DecodeError, NessusClientError
    from nessus_client.models import CallDescription

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    body: Any = args.data
    if args.data is not None and args.json_body:
        try:
            body = json.loads(args.data)
        except json.JSONDecodeError as e:
            print(f"Error: --data is not valid JSON: {e}", file=sys.stderr)
            return 1
        if body is None:
            print("Error: --data null is not a request body", file=sys.stderr)
            return 1

    call = CallDescription(
        method=args.method,
        path=args.path,
        params=args.params,
        body=body,
        content_type=args.content_type,
        headers=args.headers,
        compress=args.gzip,
    )

    try:
        with Client.from_config_file(args.config) as client:
            response = client.perform_request(call)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1
    except DecodeError as e:
        print(f"HTTP {e.status_code}", file=sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except NessusClientError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"HTTP {response.status_code}", file=sys.stderr)
    if response.body is not None:
        print(json.dumps(response.body, indent=2, ensure_ascii=False))

    return 0 if response.ok else 1


if __name__ == "__main__":
    sys.exit(main())
