#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
JSON marshalling of invocation payloads, handler results and stream chunks.
"""

import datetime
import decimal
import json
from typing import Any

from ..utils.exceptions import SerializationError
from .models import JSON_CONTENT_TYPE, RAW_CONTENT_TYPE, Buffered

_BYTES_LIKE = (bytes, bytearray, memoryview)


def _is_file_like(value: Any) -> bool:
    return callable(getattr(value, "read", None))


class JSONMarshaller:
    """
    JSON codec with raw pass-through for byte payloads and file-like objects.
    """

    def __init__(self, ensure_ascii: bool = False) -> None:
        self.ensure_ascii = ensure_ascii

    @staticmethod
    def _json_default(obj: Any) -> Any:
        """Encoder for common non-JSON-native handler return types."""
        if isinstance(obj, decimal.Decimal):
            return int(obj) if obj == obj.to_integral_value() else float(obj)
        if isinstance(obj, (datetime.datetime, datetime.date, datetime.time)):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return list(obj)
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

    def dumps(self, value: Any) -> bytes:
        try:
            return json.dumps(
                value, ensure_ascii=self.ensure_ascii, default=self._json_default
            ).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(
                operation="serialize",
                message=f"Unable to marshal response: {e}",
                data_type=type(value).__name__,
                cause=e,
            ) from e

    def unmarshal_request(self, payload: bytes) -> Any:
        """Decode an invocation payload; an empty payload decodes to ``None``."""
        if not payload:
            return None
        try:
            return json.loads(payload.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SerializationError(
                operation="deserialize",
                message=f"Unable to unmarshal input: {e}",
                data_type="bytes",
                cause=e,
            ) from e

    def marshal_response(self, value: Any) -> Buffered:
        """
        Turn a handler return value into a buffered body.

        Bytes-like values and file-like objects pass through untouched and
        are tagged ``application/unknown``; everything else is JSON.
        """
        if isinstance(value, _BYTES_LIKE):
            return Buffered(body=bytes(value), content_type=RAW_CONTENT_TYPE)
        if _is_file_like(value):
            data = value.read()
            if isinstance(data, str):
                data = data.encode("utf-8")
            return Buffered(body=bytes(data or b""), content_type=RAW_CONTENT_TYPE)
        return Buffered(body=self.dumps(value), content_type=JSON_CONTENT_TYPE)

    def to_chunk(self, element: Any) -> bytes:
        """Encode one streamed element; strings and bytes go out verbatim."""
        if isinstance(element, _BYTES_LIKE):
            return bytes(element)
        if isinstance(element, str):
            return element.encode("utf-8")
        return self.dumps(element)
