#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
lambda-ric public API with lazy imports.

Handler modules only need ``handler`` and ``Streamed``; the runtime pieces
(httpx client, loop, bootstrap) are imported on first access.
"""

from importlib import import_module
from typing import Any, Dict, Tuple

from ._version import __version__

_EXPORT_MAP: Dict[str, Tuple[str, str]] = {
    "handler": ("lambda_ric.decorators", "handler"),
    "Buffered": ("lambda_ric.core.data", "Buffered"),
    "Streamed": ("lambda_ric.core.data", "Streamed"),
    "HandlerSpec": ("lambda_ric.core.data", "HandlerSpec"),
    "LambdaContext": ("lambda_ric.core.data", "LambdaContext"),
    "HandlerRegistry": ("lambda_ric.core.handlers", "HandlerRegistry"),
    "LambdaHandler": ("lambda_ric.core.handlers", "LambdaHandler"),
    "default_registry": ("lambda_ric.core.handlers", "default_registry"),
    "ExecutionLoop": ("lambda_ric.core.nodes", "ExecutionLoop"),
    "ExitCode": ("lambda_ric.core.nodes", "ExitCode"),
    "RuntimeBootstrap": ("lambda_ric.bootstrap", "RuntimeBootstrap"),
    "start_runtime": ("lambda_ric.bootstrap", "start_runtime"),
    "RuntimeConfig": ("lambda_ric.core.config", "RuntimeConfig"),
}

__all__ = ["__version__", *sorted(_EXPORT_MAP.keys())]


def __getattr__(name: str) -> Any:
    """
    Resolve public API symbols lazily.
    """
    if name not in _EXPORT_MAP:
        raise AttributeError("module 'lambda_ric' has no attribute '{0}'".format(name))

    module_name, attr_name = _EXPORT_MAP[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
