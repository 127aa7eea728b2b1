#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Handler invocation and result normalization.

``LambdaHandler`` is built from the configured handler identifier, resolves it
once through a ``HandlerRegistry`` and calls it with ``event`` and ``context``
keyword arguments. Whatever the handler returns is normalized into a
``Buffered`` or ``Streamed`` result, and whatever it raises is classified by
``ExceptionTranslator`` before it leaves this module.
"""

import asyncio
import inspect
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, Union

from ..data.marshaller import JSONMarshaller
from ..data.models import (
    EVENT_STREAM_CONTENT_TYPE,
    Buffered,
    HandlerSpec,
    Invocation,
    InvocationResult,
    Streamed,
)
from ..utils.exceptions import ExceptionTranslator
from ..utils.logger import ModernLogger
from .registry import HandlerRegistry, RegisteredHandler, default_registry


_SINGLE_ELEMENT_TYPES = (str, bytes, bytearray, memoryview)


def _as_elements(source: Any) -> Iterable[Any]:
    # A text or byte payload is one element, not a sequence of characters.
    if isinstance(source, _SINGLE_ELEMENT_TYPES):
        return [source]
    return source


class ClassifiedChunks(Iterator[bytes]):
    """
    Iterator over a streamed result that encodes each element and classifies
    any fault raised while producing it.
    """

    def __init__(self, source: Iterable[Any], encode: Callable[[Any], bytes]) -> None:
        self._source = source
        self._encode = encode
        self._iterator: Optional[Iterator[Any]] = None

    def __iter__(self) -> "ClassifiedChunks":
        return self

    def __next__(self) -> bytes:
        try:
            if self._iterator is None:
                self._iterator = iter(self._source)
            return self._encode(next(self._iterator))
        except StopIteration:
            raise
        except BaseException as exc:
            raise ExceptionTranslator.classify(exc) from exc

    def close(self) -> None:
        close = getattr(self._iterator, "close", None)
        if callable(close):
            close()


class LambdaHandler(ModernLogger):
    """
    Invoke the configured user handler.

    The handler identifier is parsed in the constructor, so a malformed value
    fails with ``ConfigurationError`` before any invocation happens.
    """

    def __init__(
        self,
        handler: Union[str, HandlerSpec],
        registry: Optional[HandlerRegistry] = None,
        marshaller: Optional[JSONMarshaller] = None,
        task_root: Optional[Union[str, Path]] = None,
    ) -> None:
        super().__init__(name="lambda_ric.LambdaHandler")
        self.spec = handler if isinstance(handler, HandlerSpec) else HandlerSpec.parse(handler)
        self._registry = registry if registry is not None else default_registry()
        self._marshaller = marshaller or JSONMarshaller()
        self._task_root = task_root
        self._resolved: Optional[RegisteredHandler] = None
        self._resolve_lock = threading.Lock()

    @property
    def handler_file_name(self) -> str:
        return self.spec.module_path

    @property
    def handler_class(self) -> Optional[str]:
        return self.spec.namespace

    @property
    def handler_method_name(self) -> str:
        return self.spec.method_name

    @property
    def marshaller(self) -> JSONMarshaller:
        return self._marshaller

    def resolve(self) -> RegisteredHandler:
        """
        Resolve the handler callable; only the first call does any lookup.
        """
        with self._resolve_lock:
            if self._resolved is None:
                self._resolved = self._registry.resolve(self.spec, task_root=self._task_root)
            return self._resolved

    def call_handler(self, request: Any, context: Any) -> InvocationResult:
        """
        Call the handler with an already decoded event.

        Raises:
            LambdaHandlerError: recoverable application fault
            LambdaHandlerCriticalError: lookup-style or non-standard fault
        """
        try:
            registered = self.resolve()
            response = registered.func(event=request, context=context)
            if inspect.iscoroutine(response):
                response = asyncio.run(response)
            return self._normalize(registered, response)
        except BaseException as exc:
            raise ExceptionTranslator.classify(exc) from exc

    def invoke(self, invocation: Invocation, context: Any) -> InvocationResult:
        """
        Decode the invocation payload and call the handler.
        """
        try:
            request = self._marshaller.unmarshal_request(invocation.payload)
        except BaseException as exc:
            raise ExceptionTranslator.classify(exc) from exc
        return self.call_handler(request=request, context=context)

    def _normalize(self, registered: RegisteredHandler, response: Any) -> InvocationResult:
        if isinstance(response, Streamed):
            return Streamed(
                chunks=ClassifiedChunks(_as_elements(response.chunks), self._marshaller.to_chunk),
                content_type=response.content_type,
            )
        if isinstance(response, Buffered):
            return response
        if registered.stream:
            return Streamed(
                chunks=ClassifiedChunks(_as_elements(response), self._marshaller.to_chunk),
                content_type=registered.content_type or EVENT_STREAM_CONTENT_TYPE,
            )

        buffered = self._marshaller.marshal_response(response)
        if registered.content_type:
            buffered.content_type = registered.content_type
        return buffered
