#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Handler resolution and invocation.
"""

from .registry import HandlerRegistry, RegisteredHandler, default_registry
from .invoker import ClassifiedChunks, LambdaHandler

__all__ = [
    "ClassifiedChunks",
    "HandlerRegistry",
    "LambdaHandler",
    "RegisteredHandler",
    "default_registry",
]
