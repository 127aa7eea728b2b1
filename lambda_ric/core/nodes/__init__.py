#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Runtime worker node: the execution loop.
"""

from .runtime_loop import ExecutionLoop, ExitCode, LoopMetrics, RuntimeState

__all__ = ["ExecutionLoop", "ExitCode", "LoopMetrics", "RuntimeState"]
