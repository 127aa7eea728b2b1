#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Utility exports for lambda-ric core.
"""

from .logger import ModernLogger
from .exceptions import *  # noqa: F401,F403
from .exceptions import ExceptionFormatter, ExceptionTranslator

# Common formatter shortcuts
format_stack_trace = ExceptionFormatter.format_stack_trace
format_exception_chain = ExceptionFormatter.format_exception_chain
format_exception_summary = ExceptionFormatter.format_exception_summary

__all__ = [
    "ModernLogger",
    "ExceptionFormatter",
    "ExceptionTranslator",
    "format_stack_trace",
    "format_exception_chain",
    "format_exception_summary",
]
