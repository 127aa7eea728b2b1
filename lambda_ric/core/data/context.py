#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Per-invocation context object handed to user handlers.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .models import Invocation

REQUEST_ID_HEADER = "Lambda-Runtime-Aws-Request-Id"
DEADLINE_HEADER = "Lambda-Runtime-Deadline-Ms"
FUNCTION_ARN_HEADER = "Lambda-Runtime-Invoked-Function-Arn"
TRACE_ID_HEADER = "Lambda-Runtime-Trace-Id"
CLIENT_CONTEXT_HEADER = "Lambda-Runtime-Client-Context"
COGNITO_IDENTITY_HEADER = "Lambda-Runtime-Cognito-Identity"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _parse_json_header(value: Optional[str]) -> Any:
    if not value:
        return None
    try:
        return json.loads(value)
    except ValueError:
        return None


@dataclass
class LambdaContext:
    """
    Metadata of the invocation being served.

    ``deadline_ms`` is the absolute wall-clock deadline in epoch milliseconds
    announced by the host; it is informational and never enforced here.
    """

    aws_request_id: str
    invoked_function_arn: Optional[str] = None
    deadline_ms: Optional[int] = None
    trace_id: Optional[str] = None
    client_context: Any = None
    identity: Any = None
    function_name: Optional[str] = None
    function_version: Optional[str] = None
    memory_limit_in_mb: Optional[int] = None
    log_group_name: Optional[str] = None
    log_stream_name: Optional[str] = None
    clock: Callable[[], int] = _now_ms

    @classmethod
    def from_invocation(cls, invocation: Invocation, config: Any = None) -> "LambdaContext":
        deadline = invocation.header(DEADLINE_HEADER)
        try:
            deadline_ms = int(deadline) if deadline else None
        except ValueError:
            deadline_ms = None

        return cls(
            aws_request_id=invocation.request_id,
            invoked_function_arn=invocation.header(FUNCTION_ARN_HEADER),
            deadline_ms=deadline_ms,
            trace_id=invocation.header(TRACE_ID_HEADER),
            client_context=_parse_json_header(invocation.header(CLIENT_CONTEXT_HEADER)),
            identity=_parse_json_header(invocation.header(COGNITO_IDENTITY_HEADER)),
            function_name=getattr(config, "function_name", None),
            function_version=getattr(config, "function_version", None),
            memory_limit_in_mb=getattr(config, "memory_limit_in_mb", None),
            log_group_name=getattr(config, "log_group_name", None),
            log_stream_name=getattr(config, "log_stream_name", None),
        )

    def get_remaining_time_in_millis(self) -> int:
        """Milliseconds left before the deadline; 0 once it has passed."""
        if self.deadline_ms is None:
            return 0
        return max(self.deadline_ms - self.clock(), 0)
