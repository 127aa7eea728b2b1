#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Data model of the runtime loop: handler specs, invocations and results.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from ..utils.exceptions import ConfigurationError

JSON_CONTENT_TYPE = "application/json"
EVENT_STREAM_CONTENT_TYPE = "text/event-stream"
RAW_CONTENT_TYPE = "application/unknown"

_HANDLER_FORMAT_HELP = (
    "must be of form FILENAME.METHOD or FILENAME.CLASS.METHOD where FILENAME "
    "corresponds with an existing Python source file FILENAME.py, CLASS is an "
    "optional class namespace and METHOD is a callable. If using CLASS, METHOD "
    "must be a class-level method (staticmethod or classmethod)."
)


@dataclass(frozen=True)
class HandlerSpec:
    """
    Parsed handler identifier.
    """

    module_path: str
    method_name: str
    namespace: Optional[str] = None

    @classmethod
    def parse(cls, handler: str) -> "HandlerSpec":
        """
        Parse ``FILE.METHOD`` or ``FILE.CLASS.METHOD``.

        Raises:
            ConfigurationError: any other arity or an empty segment
        """
        if not isinstance(handler, str):
            raise ConfigurationError(
                message="Invalid handler {0!r}, {1}".format(handler, _HANDLER_FORMAT_HELP),
                setting="handler",
                value=handler,
            )

        # Empty segments are rejected as well, so "app..handle" never reaches lookup.
        parts = handler.strip().split(".")
        if len(parts) not in (2, 3) or not all(part.strip() for part in parts):
            raise ConfigurationError(
                message="Invalid handler {0}, {1}".format(parts, _HANDLER_FORMAT_HELP),
                setting="handler",
                value=handler,
            )

        if len(parts) == 2:
            return cls(module_path=parts[0], method_name=parts[1])
        return cls(module_path=parts[0], namespace=parts[1], method_name=parts[2])

    @property
    def identifier(self) -> str:
        if self.namespace:
            return "{0}.{1}.{2}".format(self.module_path, self.namespace, self.method_name)
        return "{0}.{1}".format(self.module_path, self.method_name)

    def __str__(self) -> str:
        return self.identifier


@dataclass
class Invocation:
    """
    One unit of work fetched from the control plane.
    """

    request_id: str
    payload: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_response(cls, request_id: str, response: Any) -> "Invocation":
        """
        Build an invocation from a ``next`` response (``content`` + ``headers``).
        """
        return cls(
            request_id=request_id,
            payload=bytes(response.content or b""),
            headers=normalize_headers(response.headers),
        )

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)


@dataclass
class Buffered:
    """
    Fully materialized response body, sent as a single chunk.
    """

    body: bytes
    content_type: str = JSON_CONTENT_TYPE


@dataclass
class Streamed:
    """
    Response produced incrementally; one chunk per element of ``chunks``.

    Handlers return this explicitly (or are registered with ``stream=True``)
    to opt into streaming.
    """

    chunks: Iterable[Any]
    content_type: str = EVENT_STREAM_CONTENT_TYPE


InvocationResult = Union[Buffered, Streamed]


def normalize_headers(headers: Mapping[str, Any]) -> Dict[str, str]:
    return {str(key).lower(): str(value) for key, value in headers.items()}
