#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
The poll-invoke-report loop of the runtime.

One invocation is live at a time: the loop polls the control plane, runs the
handler, transmits the result (or reports the error) and only then polls
again. Backpressure comes from the host's blocking ``next`` call.

State machine::

    IDLE -> POLLING -> INVOKING -> RESPONDING -> IDLE
                 \\          \\            \\
                  +----------+------------+--> EXITED

The loop exits when polling fails, when a handler fault is classified fatal
(after it has been reported) or when a result or error cannot be delivered.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional

from ..config import RuntimeConfig
from ..data.context import TRACE_ID_HEADER, LambdaContext
from ..data.models import Invocation
from ..handlers.invoker import LambdaHandler
from ..transport.control_plane import ControlPlaneClient
from ..transport.streaming import StreamingResponseSender
from ..utils.exceptions import (
    ExceptionFormatter,
    HandlerFault,
    InvocationError,
    RuntimeCommunicationError,
)
from ..utils.logger import ModernLogger

TRACE_ID_ENV = "_X_AMZN_TRACE_ID"


class RuntimeState(Enum):
    """
    States of the execution loop.
    """
    IDLE = "idle"
    POLLING = "polling"
    INVOKING = "invoking"
    RESPONDING = "responding"
    EXITED = "exited"


class ExitCode(IntEnum):
    """
    Process exit statuses; every termination cause has its own value.
    """
    OK = 0
    CONFIGURATION_ERROR = 1
    INVOCATION_ERROR = 2
    FATAL_HANDLER_ERROR = 3
    RUNTIME_COMMUNICATION_ERROR = 4
    INIT_ERROR = 5


@dataclass
class LoopMetrics:
    """
    Counters of the invocations served by this process.
    """
    invocations: int = 0
    succeeded: int = 0
    failed: int = 0
    last_request_id: Optional[str] = None
    last_updated: Optional[datetime] = None

    def record(self, request_id: str, success: bool) -> None:
        if success:
            self.succeeded += 1
        else:
            self.failed += 1
        self.last_request_id = request_id
        self.last_updated = datetime.now()


class ExecutionLoop(ModernLogger):
    """
    Drive invocations from the control plane through the handler.
    """

    def __init__(
        self,
        handler: LambdaHandler,
        client: ControlPlaneClient,
        sender: StreamingResponseSender,
        config: Optional[RuntimeConfig] = None,
        max_invocations: Optional[int] = None,
    ) -> None:
        self.config = config if config is not None else client.config
        super().__init__(name="lambda_ric.ExecutionLoop", level=self.config.log_level)
        if max_invocations is not None and max_invocations <= 0:
            raise ValueError("max_invocations must be positive")

        self.handler = handler
        self.client = client
        self.sender = sender
        self.max_invocations = max_invocations
        self.metrics = LoopMetrics()
        self._state = RuntimeState.IDLE

    @property
    def state(self) -> RuntimeState:
        return self._state

    def run(self) -> ExitCode:
        """
        Serve invocations until a termination decision is made.
        """
        self.info("Runtime loop started for handler %s", self.handler.spec)
        while self.max_invocations is None or self.metrics.invocations < self.max_invocations:
            exit_code = self.run_once()
            if exit_code is not None:
                self._state = RuntimeState.EXITED
                self.info("Runtime loop exiting with status %d (%s)", exit_code, exit_code.name)
                return exit_code

        self._state = RuntimeState.EXITED
        return ExitCode.OK

    def run_once(self) -> Optional[ExitCode]:
        """
        Serve exactly one invocation; return an exit code to stop the loop.
        """
        self._state = RuntimeState.POLLING
        try:
            request_id, response = self.client.poll_next_invocation()
        except InvocationError as exc:
            # There is no endpoint to report a failed poll to.
            self.error("Failed to get next invocation: %s", exc)
            return ExitCode.INVOCATION_ERROR

        self._state = RuntimeState.INVOKING
        invocation = Invocation.from_response(request_id, response)
        try:
            return self._handle(invocation)
        except RuntimeCommunicationError as exc:
            self.error(
                "Could not deliver outcome of %s: %s", invocation.request_id, exc.error_message
            )
            return ExitCode.RUNTIME_COMMUNICATION_ERROR
        finally:
            self._state = RuntimeState.IDLE

    def _handle(self, invocation: Invocation) -> Optional[ExitCode]:
        self.metrics.invocations += 1
        self._export_trace_id(invocation)
        context = LambdaContext.from_invocation(invocation, self.config)

        try:
            result = self.handler.invoke(invocation, context)
        except HandlerFault as fault:
            self._report_error(invocation.request_id, fault)
            return self._after_fault(invocation.request_id, fault)

        self._state = RuntimeState.RESPONDING
        try:
            self.sender.send_response(invocation.request_id, result)
        except HandlerFault as fault:
            # Already reported through the response's error trailers.
            return self._after_fault(invocation.request_id, fault)

        self.metrics.record(invocation.request_id, success=True)
        return None

    def _report_error(self, request_id: str, fault: HandlerFault) -> None:
        self.client.post_error(
            request_id,
            fault.to_lambda_response(),
            fault,
            ExceptionFormatter.xray_cause_json(fault, self.config.task_root),
        )

    def _after_fault(self, request_id: str, fault: HandlerFault) -> Optional[ExitCode]:
        self.metrics.record(request_id, success=False)
        if fault.recoverable:
            self.warning(
                "Invocation %s failed with %s: %s",
                request_id,
                fault.error_type,
                fault.error_message,
            )
            return None

        self.critical(
            "Invocation %s failed with fatal %s: %s",
            request_id,
            fault.error_type,
            fault.error_message,
        )
        return ExitCode.FATAL_HANDLER_ERROR

    @staticmethod
    def _export_trace_id(invocation: Invocation) -> None:
        trace_id = invocation.header(TRACE_ID_HEADER)
        if trace_id:
            os.environ[TRACE_ID_ENV] = trace_id
        else:
            os.environ.pop(TRACE_ID_ENV, None)
