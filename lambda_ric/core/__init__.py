#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
lambda-ric core module exports (lazy-loaded).
"""

from importlib import import_module
from typing import Any, Dict, Tuple

_EXPORT_MAP: Dict[str, Tuple[str, str]] = {
    "ExecutionLoop": ("lambda_ric.core.nodes", "ExecutionLoop"),
    "ExitCode": ("lambda_ric.core.nodes", "ExitCode"),
    "RuntimeState": ("lambda_ric.core.nodes", "RuntimeState"),
    "LambdaHandler": ("lambda_ric.core.handlers", "LambdaHandler"),
    "HandlerRegistry": ("lambda_ric.core.handlers", "HandlerRegistry"),
    "ControlPlaneClient": ("lambda_ric.core.transport", "ControlPlaneClient"),
    "StreamingResponseSender": ("lambda_ric.core.transport", "StreamingResponseSender"),
    "ChunkedResponseEncoder": ("lambda_ric.core.transport", "ChunkedResponseEncoder"),
    "RuntimeConfig": ("lambda_ric.core.config", "RuntimeConfig"),
    "get_config": ("lambda_ric.core.config", "get_config"),
    "create_config": ("lambda_ric.core.config", "create_config"),
}

__all__ = sorted(_EXPORT_MAP.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORT_MAP:
        raise AttributeError("module 'lambda_ric.core' has no attribute '{0}'".format(name))

    module_name, attr_name = _EXPORT_MAP[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
