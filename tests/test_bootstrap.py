#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
End-to-end tests for process bootstrap against a mocked control plane.
"""

import json
import logging
import textwrap
from typing import List

import httpx
import pytest

from lambda_ric.__main__ import main
from lambda_ric.bootstrap import RuntimeBootstrap
from lambda_ric.core.config import RuntimeConfig, create_config
from lambda_ric.core.handlers.registry import HandlerRegistry
from lambda_ric.core.nodes.runtime_loop import ExecutionLoop, ExitCode
from lambda_ric.core.transport.chunked import BufferByteStream
from lambda_ric.core.transport.control_plane import ERROR_TYPE_HEADER, ControlPlaneClient


class MockControlPlane:
    """
    Serves queued events on ``next`` and records every request.
    """

    def __init__(self, events=()):
        self.events = list(events)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/runtime/invocation/next"):
            if not self.events:
                return httpx.Response(500)
            request_id, event = self.events.pop(0)
            return httpx.Response(
                200,
                headers={"Lambda-Runtime-Aws-Request-Id": request_id},
                content=json.dumps(event).encode("utf-8"),
            )
        return httpx.Response(202)

    def posts(self, suffix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "POST" and r.url.path.endswith(suffix)]


def _bootstrap(tmp_path, control_plane, handler, streams=None, **kwargs):
    config = RuntimeConfig(runtime_api="127.0.0.1:9001", handler=handler, task_root=str(tmp_path))
    client = ControlPlaneClient(config, transport=httpx.MockTransport(control_plane))

    def factory():
        stream = BufferByteStream()
        if streams is not None:
            streams.append(stream)
        return stream

    return RuntimeBootstrap(
        config=config,
        registry=HandlerRegistry(),
        client=client,
        connection_factory=factory,
        **kwargs
    )


def _write_module(tmp_path, name, source):
    (tmp_path / "{0}.py".format(name)).write_text(textwrap.dedent(source))


def test_missing_handler_is_a_configuration_error(tmp_path):
    control_plane = MockControlPlane()

    exit_code = _bootstrap(tmp_path, control_plane, handler=None).run()

    assert exit_code == ExitCode.CONFIGURATION_ERROR
    [post] = control_plane.posts("/runtime/init/error")
    assert post.headers[ERROR_TYPE_HEADER] == "Init<ConfigurationError>"
    assert control_plane.posts("/runtime/invocation/next") == []


def test_malformed_handler_is_a_configuration_error(tmp_path):
    control_plane = MockControlPlane()

    exit_code = _bootstrap(tmp_path, control_plane, handler="nodots").run()

    assert exit_code == ExitCode.CONFIGURATION_ERROR
    [post] = control_plane.posts("/runtime/init/error")
    assert "FILENAME.METHOD" in json.loads(post.content)["errorMessage"]


def test_missing_module_is_an_init_error(tmp_path):
    control_plane = MockControlPlane()

    exit_code = _bootstrap(tmp_path, control_plane, handler="ric_bootstrap_absent.handle").run()

    assert exit_code == ExitCode.INIT_ERROR
    [post] = control_plane.posts("/runtime/init/error")
    assert post.headers[ERROR_TYPE_HEADER] == "Init<HandlerNotFoundError>"


def test_module_raising_on_import_is_an_init_error(tmp_path):
    _write_module(tmp_path, "ric_bootstrap_broken", "VALUE = 1 / 0\n")
    control_plane = MockControlPlane()

    exit_code = _bootstrap(tmp_path, control_plane, handler="ric_bootstrap_broken.handle").run()

    assert exit_code == ExitCode.INIT_ERROR
    [post] = control_plane.posts("/runtime/init/error")
    assert post.headers[ERROR_TYPE_HEADER] == "Init<ZeroDivisionError>"


def test_unreachable_control_plane_during_init_still_exits(tmp_path):
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    exit_code = _bootstrap(tmp_path, refuse, handler="nodots").run()

    assert exit_code == ExitCode.CONFIGURATION_ERROR


def test_serves_invocations_from_handler_file(tmp_path):
    _write_module(
        tmp_path,
        "ric_bootstrap_app",
        """
        def handle(event, context):
            return {"doubled": event["n"] * 2}
        """,
    )
    control_plane = MockControlPlane([("req-1", {"n": 21})])
    streams: List[BufferByteStream] = []

    exit_code = _bootstrap(
        tmp_path, control_plane, handler="ric_bootstrap_app.handle", streams=streams,
        max_invocations=1,
    ).run()

    assert exit_code == ExitCode.OK
    assert control_plane.posts("/error") == []
    wire = streams[0].getvalue()
    assert wire.startswith(b"POST /2018-06-01/runtime/invocation/req-1/response HTTP/1.1\r\n")
    assert wire.endswith(b'f\r\n{"doubled": 42}\r\n0\r\n\r\n')
    assert streams[0].closed


def test_handler_error_is_posted_with_diagnostics(tmp_path):
    _write_module(
        tmp_path,
        "ric_bootstrap_failing",
        """
        class QuotaExceeded(Exception):
            pass

        def handle(event, context):
            raise QuotaExceeded("over quota")
        """,
    )
    control_plane = MockControlPlane([("req-1", {})])

    exit_code = _bootstrap(
        tmp_path, control_plane, handler="ric_bootstrap_failing.handle", max_invocations=1
    ).run()

    assert exit_code == ExitCode.OK
    [post] = control_plane.posts("/runtime/invocation/req-1/error")
    assert post.headers[ERROR_TYPE_HEADER] == "Function<UserException>"
    assert "Lambda-Runtime-Function-XRay-Error-Cause" in post.headers
    body = json.loads(post.content)
    assert body["errorType"] == "Function<QuotaExceeded>"
    assert body["errorMessage"] == "over quota"


def test_cli_rejects_bad_runtime_api(capsys):
    assert main(["app.handle", "--runtime-api", "host:port"]) == 1
    assert "Invalid runtime API address" in capsys.readouterr().err


def test_cli_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["--version"])

    assert exc_info.value.code == 0
    assert capsys.readouterr().out.strip()


def test_configured_log_level_reaches_every_component(tmp_path):
    _write_module(tmp_path, "ric_bootstrap_levels", "def handle(event, context):\n    return event\n")
    config = create_config(
        environ={},
        handler="ric_bootstrap_levels.handle",
        task_root=str(tmp_path),
        log_level="debug",
    )
    bootstrap = RuntimeBootstrap(
        config=config,
        registry=HandlerRegistry(),
        connection_factory=BufferByteStream,
    )

    lambda_handler = bootstrap.initialize()
    loop = ExecutionLoop(lambda_handler, bootstrap.client, bootstrap.sender, config=config)

    levels = {
        "bootstrap": bootstrap.logger.level,
        "client": bootstrap.client.logger.level,
        "sender": bootstrap.sender.logger.level,
        "registry": bootstrap.registry.logger.level,
        "handler": lambda_handler.logger.level,
        "loop": loop.logger.level,
    }
    assert levels == dict.fromkeys(levels, logging.DEBUG)


def test_init_error_log_includes_cause_chain(tmp_path, caplog):
    control_plane = MockControlPlane()

    with caplog.at_level(logging.ERROR, logger="lambda_ric.RuntimeBootstrap"):
        _bootstrap(tmp_path, control_plane, handler="ric_bootstrap_unknown.handle").run()

    [record] = [r for r in caplog.records if r.name == "lambda_ric.RuntimeBootstrap"]
    message = record.getMessage()
    assert "Init<HandlerNotFoundError>" in message
    assert "HandlerNotFoundError: Cannot load handler module 'ric_bootstrap_unknown'" in message
    assert "<- ModuleNotFoundError: No module named 'ric_bootstrap_unknown'" in message


@pytest.mark.parametrize("value", ["0", "-3"])
def test_cli_rejects_non_positive_max_invocations(capsys, value):
    assert main(["app.handle", "--max-invocations", value]) == 1
    assert "--max-invocations must be positive" in capsys.readouterr().err
