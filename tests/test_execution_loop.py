#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Tests for the poll-invoke-report execution loop.
"""

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest

from lambda_ric.core.config import RuntimeConfig
from lambda_ric.core.data.models import Buffered, Streamed
from lambda_ric.core.handlers.invoker import LambdaHandler
from lambda_ric.core.handlers.registry import HandlerRegistry
from lambda_ric.core.nodes.runtime_loop import (
    TRACE_ID_ENV,
    ExecutionLoop,
    ExitCode,
    RuntimeState,
)
from lambda_ric.core.transport.chunked import BufferByteStream
from lambda_ric.core.transport.streaming import StreamingResponseSender
from lambda_ric.core.utils.exceptions import (
    InvocationError,
    RuntimeCommunicationError,
)

CONFIG = RuntimeConfig(runtime_api="127.0.0.1:9001", function_name="fn", task_root="/var/task")


class FakeControlPlane:
    def __init__(self, invocations: List[Tuple[str, Any, Dict[str, str]]]):
        self._queue = list(invocations)
        self.config = CONFIG
        self.polls = 0
        self.errors: List[Dict[str, Any]] = []

    def poll_next_invocation(self):
        self.polls += 1
        if not self._queue:
            raise InvocationError(message="Received 500 when waiting for next invocation.", status_code=500)
        request_id, event, headers = self._queue.pop(0)
        response = SimpleNamespace(
            headers={"Lambda-Runtime-Aws-Request-Id": request_id, **headers},
            content=json.dumps(event).encode("utf-8"),
        )
        return request_id, response

    def post_error(self, request_id, error_payload, error_type, xray_cause=None):
        self.errors.append({
            "request_id": request_id,
            "payload": error_payload,
            "error_type": error_type.runtime_error_type,
            "xray_cause": xray_cause,
        })

    @property
    def pending(self) -> int:
        return len(self._queue)


class FakeSender:
    def __init__(self, fail_with: Optional[Exception] = None):
        self.responses: List[Tuple[str, Any]] = []
        self.fail_with = fail_with

    def send_response(self, request_id, result):
        if self.fail_with is not None:
            raise self.fail_with
        if isinstance(result, Streamed):
            result = [chunk for chunk in result.chunks]
        self.responses.append((request_id, result))


def _invocation(request_id: str, event: Any, **headers: str):
    return (request_id, event, headers)


def _loop(func, control_plane, sender, **kwargs) -> ExecutionLoop:
    registry = HandlerRegistry()
    registry.register("app.handle", func, **kwargs)
    return ExecutionLoop(
        LambdaHandler("app.handle", registry=registry),
        control_plane,
        sender,
        config=CONFIG,
    )


def _echo_or_fail(event, context):
    if event.get("fail"):
        raise ValueError("requested failure")
    return {"echo": event["n"], "request_id": context.aws_request_id}


def test_recoverable_fault_is_reported_and_loop_continues():
    control_plane = FakeControlPlane([
        _invocation("req-1", {"fail": True}),
        _invocation("req-2", {"n": 2}),
    ])
    sender = FakeSender()
    loop = _loop(_echo_or_fail, control_plane, sender)

    exit_code = loop.run()

    # Exits only once there is no more work to poll.
    assert exit_code == ExitCode.INVOCATION_ERROR
    assert [error["request_id"] for error in control_plane.errors] == ["req-1"]
    assert control_plane.errors[0]["error_type"] == "Function<ValueError>"
    assert control_plane.errors[0]["payload"]["errorMessage"] == "requested failure"
    assert json.loads(control_plane.errors[0]["xray_cause"])["working_directory"] == "/var/task"

    request_id, result = sender.responses[0]
    assert request_id == "req-2"
    assert isinstance(result, Buffered)
    assert json.loads(result.body) == {"echo": 2, "request_id": "req-2"}
    assert loop.metrics.succeeded == 1
    assert loop.metrics.failed == 1


def test_fatal_fault_is_reported_then_loop_exits():
    def handle(event, context):
        return undefined_name  # noqa: F821

    control_plane = FakeControlPlane([
        _invocation("req-1", {}),
        _invocation("req-2", {}),
    ])
    sender = FakeSender()
    loop = _loop(handle, control_plane, sender)

    exit_code = loop.run()

    assert exit_code == ExitCode.FATAL_HANDLER_ERROR
    assert control_plane.errors[0]["error_type"] == "Function<NameError>"
    assert control_plane.pending == 1
    assert sender.responses == []
    assert loop.state is RuntimeState.EXITED


def test_poll_failure_terminates_without_reporting():
    control_plane = FakeControlPlane([])
    loop = _loop(_echo_or_fail, control_plane, FakeSender())

    assert loop.run() == ExitCode.INVOCATION_ERROR
    assert control_plane.errors == []
    assert control_plane.polls == 1


def test_undeliverable_response_terminates_loop():
    control_plane = FakeControlPlane([
        _invocation("req-1", {"n": 1}),
        _invocation("req-2", {"n": 2}),
    ])
    sender = FakeSender(fail_with=RuntimeCommunicationError(ConnectionResetError("reset")))
    loop = _loop(_echo_or_fail, control_plane, sender)

    assert loop.run() == ExitCode.RUNTIME_COMMUNICATION_ERROR
    assert control_plane.pending == 1


def test_undeliverable_error_report_terminates_loop():
    class FailingErrorPost(FakeControlPlane):
        def post_error(self, request_id, error_payload, error_type, xray_cause=None):
            raise RuntimeCommunicationError(ConnectionResetError("reset"))

    control_plane = FailingErrorPost([_invocation("req-1", {"fail": True})])
    loop = _loop(_echo_or_fail, control_plane, FakeSender())

    assert loop.run() == ExitCode.RUNTIME_COMMUNICATION_ERROR


def test_mid_stream_fault_is_not_reported_twice_and_loop_continues():
    def tokens(event, context):
        yield "a"
        if event.get("fail"):
            raise ValueError("boom")
        yield "b"

    control_plane = FakeControlPlane([
        _invocation("req-1", {"fail": True}),
        _invocation("req-2", {}),
    ])
    streams: List[BufferByteStream] = []

    def factory():
        stream = BufferByteStream()
        streams.append(stream)
        return stream

    sender = StreamingResponseSender(CONFIG, connection_factory=factory)
    loop = _loop(tokens, control_plane, sender, stream=True)

    assert loop.run() == ExitCode.INVOCATION_ERROR
    assert control_plane.errors == []
    assert b"Lambda-Runtime-Function-Error-Type: Function<ValueError>" in streams[0].getvalue()
    assert streams[1].getvalue().endswith(b"1\r\na\r\n1\r\nb\r\n0\r\n\r\n")
    assert loop.metrics.failed == 1
    assert loop.metrics.succeeded == 1


def test_max_invocations_stops_loop_cleanly():
    control_plane = FakeControlPlane([
        _invocation("req-1", {"n": 1}),
        _invocation("req-2", {"n": 2}),
    ])
    registry = HandlerRegistry()
    registry.register("app.handle", _echo_or_fail)
    loop = ExecutionLoop(
        LambdaHandler("app.handle", registry=registry),
        control_plane,
        FakeSender(),
        config=CONFIG,
        max_invocations=1,
    )

    assert loop.run() == ExitCode.OK
    assert control_plane.pending == 1


def test_max_invocations_must_be_positive():
    with pytest.raises(ValueError):
        ExecutionLoop(
            LambdaHandler("app.handle", registry=HandlerRegistry()),
            FakeControlPlane([]),
            FakeSender(),
            max_invocations=0,
        )


def test_trace_id_and_context_metadata_reach_the_handler(monkeypatch):
    monkeypatch.delenv(TRACE_ID_ENV, raising=False)
    seen = {}

    def handle(event, context):
        import os

        seen["trace_env"] = os.environ.get(TRACE_ID_ENV)
        seen["arn"] = context.invoked_function_arn
        seen["function_name"] = context.function_name
        seen["deadline_ms"] = context.deadline_ms
        return None

    control_plane = FakeControlPlane([
        _invocation(
            "req-1",
            {},
            **{
                "Lambda-Runtime-Trace-Id": "Root=1-abc",
                "Lambda-Runtime-Invoked-Function-Arn": "arn:aws:lambda:us-east-1:123:function:fn",
                "Lambda-Runtime-Deadline-Ms": "1700000000000",
            }
        ),
    ])
    loop = _loop(handle, control_plane, FakeSender())

    loop.run()

    assert seen == {
        "trace_env": "Root=1-abc",
        "arn": "arn:aws:lambda:us-east-1:123:function:fn",
        "function_name": "fn",
        "deadline_ms": 1700000000000,
    }


def test_state_returns_to_idle_between_invocations():
    states = []
    control_plane = FakeControlPlane([_invocation("req-1", {"n": 1})])

    class StateRecordingSender(FakeSender):
        def send_response(self, request_id, result):
            states.append(loop.state)
            super().send_response(request_id, result)

    loop = _loop(_echo_or_fail, control_plane, StateRecordingSender())

    assert loop.run_once() is None
    assert states == [RuntimeState.RESPONDING]
    assert loop.state is RuntimeState.IDLE
