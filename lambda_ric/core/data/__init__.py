#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Data structures exchanged between the loop, the invoker and the transports.
"""

from .models import (
    EVENT_STREAM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    RAW_CONTENT_TYPE,
    Buffered,
    HandlerSpec,
    Invocation,
    InvocationResult,
    Streamed,
)
from .context import LambdaContext
from .marshaller import JSONMarshaller

__all__ = [
    "EVENT_STREAM_CONTENT_TYPE",
    "JSON_CONTENT_TYPE",
    "RAW_CONTENT_TYPE",
    "Buffered",
    "HandlerSpec",
    "Invocation",
    "InvocationResult",
    "JSONMarshaller",
    "LambdaContext",
    "Streamed",
]
