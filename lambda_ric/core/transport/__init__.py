#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Transports to the control plane: polling/error reporting and response streaming.
"""

from .chunked import BufferByteStream, ByteStream, ChunkedResponseEncoder
from .control_plane import ControlPlaneClient, default_user_agent
from .streaming import (
    SocketByteStream,
    StreamingResponseSender,
    socket_connection_factory,
)

__all__ = [
    "BufferByteStream",
    "ByteStream",
    "ChunkedResponseEncoder",
    "ControlPlaneClient",
    "SocketByteStream",
    "StreamingResponseSender",
    "default_user_agent",
    "socket_connection_factory",
]
