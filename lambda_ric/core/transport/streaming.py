#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Success-path sender: posts an invocation result as a chunked streaming request.

Each response owns one connection, obtained from a connection factory, and
closes it on every exit path. A fault raised while a streamed result produces
its elements is reported in-band through the declared error trailers and then
re-raised to the caller.
"""

import socket
import ssl
from typing import Any, Callable, Dict, Optional

from ..config import RuntimeConfig
from ..data.marshaller import JSONMarshaller
from ..data.models import InvocationResult, Streamed
from ..utils.exceptions import ExceptionTranslator, HandlerFault
from ..utils.logger import ModernLogger
from .chunked import (
    DECLARED_TRAILERS,
    DEFAULT_TRAILER_ERROR_TYPE,
    ByteStream,
    ChunkedResponseEncoder,
)

ConnectionFactory = Callable[[], ByteStream]


class SocketByteStream:
    """
    ``ByteStream`` over a connected (optionally TLS-wrapped) socket.
    """

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> "SocketByteStream":
        sock = socket.create_connection((host, port), timeout=timeout)
        if ssl_context is not None:
            try:
                sock = ssl_context.wrap_socket(sock, server_hostname=host)
            except BaseException:
                sock.close()
                raise
        return cls(sock)

    def write(self, data: bytes) -> None:
        self._sock.sendall(data)

    def close(self) -> None:
        self._sock.close()


def socket_connection_factory(
    config: RuntimeConfig, ssl_context: Optional[ssl.SSLContext] = None
) -> ConnectionFactory:
    """
    Connection factory targeting the configured runtime API address.

    With ``config.stream_tls`` the socket is wrapped using ``ssl_context`` (or
    the default trust store) and an address without a port means 443.
    """
    host, port = config.runtime_address
    context = ssl_context
    if config.stream_tls:
        if context is None:
            context = ssl.create_default_context()
        if ":" not in config.runtime_api:
            port = 443

    def connect() -> ByteStream:
        return SocketByteStream.connect(host, port, ssl_context=context)

    return connect


class StreamingResponseSender(ModernLogger):
    """
    Posts results to ``/runtime/invocation/{id}/response`` in streaming mode.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        connection_factory: Optional[ConnectionFactory] = None,
        user_agent: Optional[str] = None,
        marshaller: Optional[JSONMarshaller] = None,
    ) -> None:
        super().__init__(name="lambda_ric.StreamingResponseSender", level=config.log_level)
        self.config = config
        self.user_agent = user_agent
        self._connection_factory = connection_factory or socket_connection_factory(config)
        self._marshaller = marshaller or JSONMarshaller()

    def build_headers(self, content_type: str) -> Dict[str, str]:
        headers = {
            "Host": self.config.runtime_api,
            "Content-Type": content_type,
            "Lambda-Runtime-Function-Response-Mode": "streaming",
            "Transfer-Encoding": "chunked",
            "Connection": "close",
            "Trailer": DECLARED_TRAILERS,
        }
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        return headers

    def send_response(self, request_id: str, result: InvocationResult) -> None:
        """
        Transmit ``result`` for ``request_id``.

        Raises:
            HandlerFault: a streamed result failed while producing elements;
                the fault was already reported through the error trailers
            RuntimeCommunicationError: the connection failed
        """
        path = self.config.api_path("runtime/invocation/{0}/response".format(request_id))
        stream: Optional[ByteStream] = None
        try:
            stream = self._connection_factory()
            encoder = ChunkedResponseEncoder(stream)
            encoder.write_request_head("POST", path, self.build_headers(result.content_type))

            if isinstance(result, Streamed):
                self._send_streamed(encoder, result)
            else:
                encoder.write_chunk(result.body)
                encoder.write_terminator()

            self.debug(
                "Sent response for %s (%d chunk(s))", request_id, encoder.chunks_written
            )
        except HandlerFault:
            raise
        except Exception as exc:
            raise ExceptionTranslator.as_runtime_error(exc) from exc
        finally:
            if isinstance(result, Streamed):
                self._close_source(result.chunks)
            if stream is not None:
                self._close_stream(stream)

    def _send_streamed(self, encoder: ChunkedResponseEncoder, result: Streamed) -> None:
        chunks = iter(result.chunks)
        while True:
            try:
                data = self._marshaller.to_chunk(next(chunks))
            except StopIteration:
                break
            except Exception as exc:
                fault = ExceptionTranslator.classify(exc)
                self._write_trailer(encoder, fault)
                if fault is exc:
                    raise
                raise fault from exc
            encoder.write_chunk(data)
        encoder.write_terminator()

    def _write_trailer(self, encoder: ChunkedResponseEncoder, fault: HandlerFault) -> None:
        error_type = fault.runtime_error_type or DEFAULT_TRAILER_ERROR_TYPE
        self.warning("Streamed response failed mid-stream: %s", error_type)
        try:
            encoder.write_error_trailer(error_type, fault.error_message)
        except OSError as exc:
            # Headers are already on the wire; the trailer is best effort.
            self.warning("Could not write error trailer: %s", exc)

    def _close_source(self, chunks: Any) -> None:
        close = getattr(chunks, "close", None)
        if not callable(close):
            return
        try:
            close()
        except Exception as exc:
            self.warning("Closing streamed result raised %s", exc)

    def _close_stream(self, stream: ByteStream) -> None:
        try:
            stream.close()
        except OSError as exc:
            self.warning("Closing response connection raised %s", exc)
