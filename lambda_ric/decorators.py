#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Decorator helpers for registering handlers.

Usage::

    from lambda_ric import Streamed, handler

    @handler
    def handle(event, context):
        return {"ok": True}

    @handler(stream=True)
    def tokens(event, context):
        yield "data: a\\n\\n"

    class Api:
        @staticmethod
        @handler
        def get(event, context):
            return event
"""

from typing import Any, Callable, Optional, TypeVar, Union, cast

from .core.handlers.registry import HANDLER_META_ATTR, HandlerRegistry, default_registry

T = TypeVar("T", bound=Callable[..., Any])


def _default_identifier(func: Callable[..., Any]) -> str:
    """
    ``FILE.METHOD`` / ``FILE.CLASS.METHOD`` derived from where ``func`` is defined.
    """
    module_file = str(getattr(func, "__module__", "") or "").rsplit(".", 1)[-1]
    qualname = str(getattr(func, "__qualname__", func.__name__))
    if "<locals>" in qualname:
        raise ValueError(
            "Cannot derive a handler identifier for nested function '{0}'; "
            "pass identifier= explicitly".format(qualname)
        )
    return "{0}.{1}".format(module_file, qualname)


def register(
    *,
    identifier: Optional[str] = None,
    stream: bool = False,
    content_type: Optional[str] = None,
    registry: Optional[HandlerRegistry] = None,
) -> Callable[[T], T]:
    """
    Decorate a function as a lambda-ric handler.
    """

    def decorator(func: T) -> T:
        setattr(func, HANDLER_META_ATTR, {
            "stream": bool(stream),
            "content_type": content_type,
        })
        target_registry = registry if registry is not None else default_registry()
        target_registry.register(
            identifier or _default_identifier(func),
            func,
            stream=stream,
            content_type=content_type,
        )
        return func

    return decorator


def handler(
    func: Optional[Callable[..., Any]] = None,
    *,
    identifier: Optional[str] = None,
    stream: bool = False,
    content_type: Optional[str] = None,
    registry: Optional[HandlerRegistry] = None,
) -> Union[Callable[[T], T], T]:
    """
    Public decorator entry supporting both:
    - @handler
    - @handler(...)
    """
    decorator = register(
        identifier=identifier,
        stream=stream,
        content_type=content_type,
        registry=registry,
    )

    if func is not None and callable(func):
        return decorator(cast(T, func))
    return decorator
