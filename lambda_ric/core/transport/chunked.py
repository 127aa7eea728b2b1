#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
HTTP/1.1 chunked transfer-coding over an arbitrary byte stream.

The encoder knows nothing about sockets: it writes framed bytes to any object
implementing ``ByteStream``, which keeps the framing and trailer logic
testable with an in-memory stream.
"""

import base64
from typing import Mapping, Protocol, Union, runtime_checkable

CRLF = b"\r\n"

ERROR_TYPE_TRAILER = "Lambda-Runtime-Function-Error-Type"
ERROR_BODY_TRAILER = "Lambda-Runtime-Function-Error-Body"
DECLARED_TRAILERS = "{0}, {1}".format(ERROR_TYPE_TRAILER, ERROR_BODY_TRAILER)
DEFAULT_TRAILER_ERROR_TYPE = "Unhandled"


@runtime_checkable
class ByteStream(Protocol):
    """Protocol for the duplex byte stream a request is written to"""

    def write(self, data: bytes) -> None:
        """Write all of ``data`` to the stream"""
        ...

    def close(self) -> None:
        """Release the underlying connection"""
        ...


class BufferByteStream:
    """In-memory byte stream."""

    def __init__(self) -> None:
        self.buffer = bytearray()
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.closed:
            raise ValueError("write to closed stream")
        self.buffer.extend(data)

    def close(self) -> None:
        self.closed = True

    def getvalue(self) -> bytes:
        return bytes(self.buffer)


def _to_bytes(data: Union[bytes, bytearray, memoryview, str]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


class ChunkedResponseEncoder:
    """
    Writes a request head followed by a chunk-framed body.
    """

    def __init__(self, stream: ByteStream) -> None:
        self.stream = stream
        self.chunks_written = 0
        self.finished = False

    def write_request_head(
        self, method: str, path: str, headers: Mapping[str, str]
    ) -> None:
        lines = ["{0} {1} HTTP/1.1".format(method, path)]
        lines.extend("{0}: {1}".format(key, value) for key, value in headers.items())
        head = "\r\n".join(lines) + "\r\n\r\n"
        self.stream.write(head.encode("latin-1"))

    def write_chunk(self, data: Union[bytes, bytearray, memoryview, str]) -> None:
        """
        Emit ``<hex-size>\\r\\n<data>\\r\\n``.

        Empty data is skipped: a zero-size chunk would end the body.
        """
        payload = _to_bytes(data)
        if not payload:
            return
        self.stream.write(format(len(payload), "x").encode("ascii") + CRLF)
        self.stream.write(payload + CRLF)
        self.chunks_written += 1

    def write_terminator(self) -> None:
        self.stream.write(b"0" + CRLF + CRLF)
        self.finished = True

    def write_error_trailer(self, error_type: str, message: str) -> None:
        """
        End the body with a zero-size chunk carrying the error trailers.
        """
        error_body = base64.b64encode(message.encode("utf-8")).decode("ascii")
        self.stream.write(b"0" + CRLF)
        self.stream.write(
            "{0}: {1}\r\n".format(ERROR_TYPE_TRAILER, error_type).encode("latin-1", "replace")
        )
        self.stream.write(
            "{0}: {1}\r\n".format(ERROR_BODY_TRAILER, error_body).encode("latin-1", "replace")
        )
        self.stream.write(CRLF)
        self.finished = True
