"""Tests for nessus_client.cli.

Tests cover:
- Argument parsing for the request subcommand
- KEY=VALUE and 'NAME: VALUE' argument types
- run_request output and exit codes against a mock transport
"""

import argparse
import json
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from nessus_client.cli import (
    RequestArgs,
    main,
    parse_args,
    parse_header,
    parse_query_param,
    run_request,
)
from nessus_client.client import Client
from nessus_client.errors import ConfigError
from tests.conftest import RecordingHandler, TrackingStream, make_client


def make_args(**overrides) -> RequestArgs:
    fields = {
        "config": Path("nessus.yaml"),
        "method": "GET",
        "path": "/scans",
        "params": {},
        "headers": {},
        "data": None,
        "json_body": False,
        "gzip": False,
        "content_type": None,
        "verbose": False,
    }
    fields.update(overrides)
    return RequestArgs(**fields)


# =============================================================================
# Argument Parsing Tests
# =============================================================================


class TestParseArgs:
    def test_minimal(self) -> None:
        args = parse_args(["request", "--config", "nessus.yaml", "GET", "/scans"])
        assert isinstance(args, RequestArgs)
        assert args.config == Path("nessus.yaml")
        assert args.method == "GET"
        assert args.path == "/scans"
        assert args.params == {}
        assert args.headers == {}
        assert args.data is None
        assert args.json_body is False
        assert args.gzip is False

    def test_repeated_params_and_headers(self) -> None:
        args = parse_args([
            "request", "--config", "c.yaml",
            "--param", "folder_id=3",
            "--param", "tag=a",
            "--param", "tag=b",
            "--header", "X-Trace: abc",
            "GET", "/scans",
        ])
        assert args.params == {"folder_id": ["3"], "tag": ["a", "b"]}
        assert args.headers == {"X-Trace": ["abc"]}

    def test_body_options(self) -> None:
        args = parse_args([
            "request", "--config", "c.yaml",
            "--data", '{"name": "x"}', "--json", "--gzip",
            "--content-type", "application/vnd.api+json",
            "POST", "/folders",
        ])
        assert args.data == '{"name": "x"}'
        assert args.json_body is True
        assert args.gzip is True
        assert args.content_type == "application/vnd.api+json"

    def test_missing_config(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["request", "GET", "/scans"])
        assert exc_info.value.code == 2

    @pytest.mark.parametrize(
        ("options", "message"),
        [
            (["--gzip"], "--gzip requires --data"),
            (["--json"], "--json requires --data"),
            (["--json", "--data", "null"], "--data null is not a request body"),
            (["--json", "--data", "{bad"], "--data is not valid JSON"),
        ],
    )
    def test_body_option_usage_errors(
        self, options: list[str], message: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["request", "--config", "c.yaml", *options, "POST", "/folders"])
        assert exc_info.value.code == 2
        assert message in capsys.readouterr().err

    def test_null_data_without_json_is_a_string_body(self) -> None:
        args = parse_args(["request", "--config", "c.yaml", "--data", "null", "POST", "/x"])
        assert args.data == "null"

    def test_missing_command(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            parse_args([])
        assert exc_info.value.code == 2


class TestArgumentTypes:
    def test_query_param(self) -> None:
        assert parse_query_param("a=b=c") == ("a", "b=c")

    def test_query_param_empty_value(self) -> None:
        assert parse_query_param("a=") == ("a", "")

    @pytest.mark.parametrize("value", ["novalue", "=x"])
    def test_query_param_invalid(self, value: str) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_query_param(value)

    def test_header(self) -> None:
        assert parse_header("X-Trace:  abc ") == ("X-Trace", "abc")

    def test_header_value_with_colon(self) -> None:
        assert parse_header("Referer: https://x:8834/") == ("Referer", "https://x:8834/")

    @pytest.mark.parametrize("value", ["no-colon", ": value"])
    def test_header_invalid(self, value: str) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_header(value)


# =============================================================================
# run_request Tests
# =============================================================================


class TestRunRequest:
    def _run(self, handler: RecordingHandler, args: RequestArgs) -> int:
        client = make_client(handler)
        with patch.object(Client, "from_config_file", return_value=client):
            return run_request(args)

    def test_success_prints_body(self, capsys: pytest.CaptureFixture[str]) -> None:
        handler = RecordingHandler(json_body={"scans": [{"id": 1}]})
        code = self._run(handler, make_args())

        captured = capsys.readouterr()
        assert code == 0
        assert json.loads(captured.out) == {"scans": [{"id": 1}]}
        assert "HTTP 200" in captured.err

    def test_json_data_sent_structured(self) -> None:
        handler = RecordingHandler(json_body={})
        code = self._run(
            handler,
            make_args(method="POST", path="/folders", data='{"name": "x"}', json_body=True),
        )
        assert code == 0
        assert handler.last.content == b'{"name":"x"}'
        assert handler.last.headers["content-type"] == "application/json"

    def test_raw_data_sent_as_is(self) -> None:
        handler = RecordingHandler(json_body={})
        self._run(handler, make_args(method="POST", data="raw", content_type="text/plain"))
        assert handler.last.content == b"raw"
        assert handler.last.headers["content-type"] == "text/plain"

    def test_params_and_headers_forwarded(self) -> None:
        handler = RecordingHandler(json_body={})
        self._run(
            handler,
            make_args(params={"folder_id": ["3"]}, headers={"X-Trace": ["abc"]}),
        )
        assert handler.last.url.params["folder_id"] == "3"
        assert handler.last.headers["x-trace"] == "abc"

    def test_invalid_json_data(self, capsys: pytest.CaptureFixture[str]) -> None:
        handler = RecordingHandler(json_body={})
        code = self._run(handler, make_args(method="POST", data="{bad", json_body=True))
        assert code == 1
        assert "not valid JSON" in capsys.readouterr().err
        assert handler.requests == []

    def test_json_null_data_not_sent(self, capsys: pytest.CaptureFixture[str]) -> None:
        handler = RecordingHandler(json_body={})
        code = self._run(handler, make_args(method="POST", data="null", json_body=True))
        assert code == 1
        assert "not a request body" in capsys.readouterr().err
        assert handler.requests == []

    def test_non_2xx_exit_code(self) -> None:
        handler = RecordingHandler(status_code=403, json_body={"error": "Invalid Credentials"})
        assert self._run(handler, make_args()) == 1

    def test_decode_error_reports_status(self, capsys: pytest.CaptureFixture[str]) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, stream=TrackingStream(b"Bad Gateway"))

        code = self._run(RecordingHandler(respond=respond), make_args())
        err = capsys.readouterr().err
        assert code == 1
        assert "HTTP 502" in err
        assert "not valid JSON" in err

    def test_transport_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        code = self._run(RecordingHandler(respond=respond), make_args())
        assert code == 1
        assert "connection error" in capsys.readouterr().err

    def test_config_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch.object(Client, "from_config_file", side_effect=ConfigError("Config file not found: x")):
            code = run_request(make_args())
        assert code == 1
        assert "Error loading config" in capsys.readouterr().err


class TestMain:
    def test_main_end_to_end(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        config_file = tmp_path / "nessus.yaml"
        config_file.write_text("server_url: https://scanner:8834\n")
        handler = RecordingHandler(json_body={"status": "ready"})

        original = Client.from_config_file.__func__

        def from_config_file(cls, path, **kwargs):
            return original(cls, path, transport=httpx.MockTransport(handler))

        with patch.object(Client, "from_config_file", classmethod(from_config_file)):
            code = main(["request", "--config", str(config_file), "GET", "/server/status"])

        assert code == 0
        assert json.loads(capsys.readouterr().out) == {"status": "ready"}
        assert str(handler.last.url) == "https://scanner:8834/server/status"
