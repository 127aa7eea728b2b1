#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Console logging for lambda-ric components.

Components inherit from ``ModernLogger`` and log through ``self.info(...)``
and friends. Output goes to stderr through a rich handler so that it never
interleaves with anything a handler writes to stdout.
"""

import logging
import os
import threading
from typing import Any, Optional, Union

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "LAMBDA_RIC_LOG_LEVEL"

_HANDLER_LOCK = threading.Lock()
_SHARED_HANDLER: Optional[RichHandler] = None


def _resolve_level(level: Union[str, int, None]) -> int:
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "info")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def _shared_handler() -> RichHandler:
    global _SHARED_HANDLER

    with _HANDLER_LOCK:
        if _SHARED_HANDLER is None:
            _SHARED_HANDLER = RichHandler(
                console=Console(stderr=True),
                rich_tracebacks=True,
                show_path=False,
                markup=False,
            )
            _SHARED_HANDLER.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        return _SHARED_HANDLER


class ModernLogger:
    """
    Mixin that gives a component its own named logger.
    """

    def __init__(self, name: str = "lambda_ric", level: Union[str, int, None] = None) -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(_resolve_level(level))
        handler = _shared_handler()
        if handler not in self._logger.handlers:
            self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def set_log_level(self, level: Union[str, int]) -> None:
        self._logger.setLevel(_resolve_level(level))

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.error(message, *args, **kwargs)

    def critical(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.critical(message, *args, **kwargs)

    def exception(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.exception(message, *args, **kwargs)
