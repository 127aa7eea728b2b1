#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Client for the control-plane endpoints of the runtime API.

Every call opens its own short-lived ``httpx.Client``; nothing is pooled or
shared between invocations, and nothing is retried.
"""

import json
import platform
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from ..._version import __version__
from ..config import RuntimeConfig
from ..utils.exceptions import (
    ExceptionTranslator,
    InvocationError,
    LambdaError,
)
from ..utils.logger import ModernLogger

REQUEST_ID_HEADER = "Lambda-Runtime-Aws-Request-Id"
ERROR_TYPE_HEADER = "Lambda-Runtime-Function-Error-Type"
XRAY_ERROR_CAUSE_HEADER = "Lambda-Runtime-Function-XRay-Error-Cause"

MAX_HEADER_SIZE_BYTES = 1024 * 1024
# The host holds the poll open until work exists.
LONG_TIMEOUT_SECONDS = 1_000_000.0
CONNECT_TIMEOUT_SECONDS = 10.0
POST_TIMEOUT_SECONDS = 30.0


def default_user_agent() -> str:
    return "lambda-ric-python/{0}-{1}".format(platform.python_version(), __version__)


def _error_type_of(error: Any) -> str:
    if isinstance(error, LambdaError):
        return error.runtime_error_type
    return str(error)


class ControlPlaneClient(ModernLogger):
    """
    Poll for invocations and report errors to the control plane.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(name="lambda_ric.ControlPlaneClient", level=config.log_level)
        self.config = config
        self.user_agent = user_agent or default_user_agent()
        self._transport = transport

    def _client(self, timeout: httpx.Timeout) -> httpx.Client:
        return httpx.Client(
            base_url=self.config.base_url,
            timeout=timeout,
            transport=self._transport,
            headers={"User-Agent": self.user_agent},
        )

    def poll_next_invocation(self) -> Tuple[str, httpx.Response]:
        """
        Block until the host hands out the next invocation.

        Raises:
            InvocationError: non-2xx answer (``status_code`` set) or transport failure
        """
        timeout = httpx.Timeout(LONG_TIMEOUT_SECONDS, connect=CONNECT_TIMEOUT_SECONDS)
        try:
            with self._client(timeout) as client:
                response = client.get("/runtime/invocation/next")
        except httpx.HTTPError as exc:
            raise InvocationError(
                message="Failed to fetch next invocation: {0}".format(exc),
                cause=exc,
            ) from exc

        if not response.is_success:
            raise InvocationError(
                message="Received {0} when waiting for next invocation.".format(
                    response.status_code
                ),
                status_code=response.status_code,
            )

        request_id = response.headers.get(REQUEST_ID_HEADER)
        if not request_id:
            raise InvocationError(
                message="Next invocation response has no {0} header".format(
                    REQUEST_ID_HEADER
                ),
                status_code=response.status_code,
            )
        self.debug("Received invocation %s", request_id)
        return request_id, response

    @staticmethod
    def build_error_headers(error_type: str, xray_cause: Optional[str] = None) -> Dict[str, str]:
        """
        Error-post headers; the diagnostic header is dropped at 1 MiB or more.
        """
        headers = {
            ERROR_TYPE_HEADER: error_type,
            "Content-Type": "application/json",
        }
        if xray_cause is not None and len(xray_cause.encode("utf-8")) < MAX_HEADER_SIZE_BYTES:
            headers[XRAY_ERROR_CAUSE_HEADER] = xray_cause
        return headers

    def _post_json(self, path: str, payload: Mapping[str, Any], headers: Dict[str, str]) -> httpx.Response:
        timeout = httpx.Timeout(POST_TIMEOUT_SECONDS, connect=CONNECT_TIMEOUT_SECONDS)
        body = json.dumps(payload).encode("utf-8")
        with self._client(timeout) as client:
            response = client.post(path, content=body, headers=headers)
        if not response.is_success:
            self.warning(
                "Control plane answered %d to %s", response.status_code, path
            )
        return response

    def post_error(
        self,
        request_id: str,
        error_payload: Mapping[str, Any],
        error_type: Any,
        xray_cause: Optional[str] = None,
    ) -> httpx.Response:
        """
        Report a failed invocation.

        Raises:
            RuntimeCommunicationError: the report could not be delivered
        """
        path = "/runtime/invocation/{0}/error".format(request_id)
        headers = self.build_error_headers(_error_type_of(error_type), xray_cause)
        try:
            return self._post_json(path, error_payload, headers)
        except httpx.HTTPError as exc:
            raise ExceptionTranslator.as_runtime_error(exc) from exc

    def post_init_error(self, error_payload: Mapping[str, Any], error_type: Any) -> httpx.Response:
        """
        Report a failure that happened before the first poll.

        Raises:
            LambdaRuntimeInitError: the report could not be delivered
        """
        headers = self.build_error_headers(_error_type_of(error_type))
        try:
            return self._post_json("/runtime/init/error", error_payload, headers)
        except httpx.HTTPError as exc:
            raise ExceptionTranslator.as_init_error(exc) from exc
