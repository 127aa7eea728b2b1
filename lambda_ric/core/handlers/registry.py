#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Handler registry: identifier -> callable, resolved once at startup.

Handlers are either registered explicitly (``registry.register(...)`` or the
``@handler`` decorator) or discovered by a single resolution step that loads
``FILE`` from the task root and looks up ``METHOD`` / ``CLASS.METHOD`` in it.
Either way the result is cached, so no string lookup happens per invocation.
"""

import importlib
import importlib.util
import inspect
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, List, Optional, Union

from ..data.models import HandlerSpec
from ..utils.exceptions import HandlerNotFoundError, LambdaRuntimeInitError
from ..utils.logger import ModernLogger

HANDLER_META_ATTR = "__lambda_ric_handler__"


@dataclass
class RegisteredHandler:
    """
    A resolved handler ready to be invoked.
    """

    spec: HandlerSpec
    func: Callable[..., Any]
    stream: bool = False
    content_type: Optional[str] = None

    @property
    def identifier(self) -> str:
        return self.spec.identifier


def _as_spec(handler: Union[str, HandlerSpec]) -> HandlerSpec:
    if isinstance(handler, HandlerSpec):
        return handler
    return HandlerSpec.parse(handler)


class HandlerRegistry(ModernLogger):
    """
    Registry of handler callables keyed by ``FILE.METHOD`` / ``FILE.CLASS.METHOD``.
    """

    def __init__(self, task_root: Optional[Union[str, Path]] = None) -> None:
        super().__init__(name="lambda_ric.HandlerRegistry")
        self.task_root = Path(task_root) if task_root is not None else None
        self._handlers: Dict[str, RegisteredHandler] = {}
        self._lock = threading.RLock()

    def register(
        self,
        identifier: Union[str, HandlerSpec],
        func: Optional[Callable[..., Any]] = None,
        *,
        stream: bool = False,
        content_type: Optional[str] = None,
    ) -> Any:
        """
        Register ``func`` under ``identifier``.

        Without ``func`` this returns a decorator.
        """
        spec = _as_spec(identifier)

        def decorator(target: Callable[..., Any]) -> Callable[..., Any]:
            if not callable(target):
                raise TypeError("handler '{0}' must be callable".format(spec.identifier))
            with self._lock:
                self._handlers[spec.identifier] = RegisteredHandler(
                    spec=spec,
                    func=target,
                    stream=bool(stream),
                    content_type=content_type,
                )
            self.debug("Registered handler %s", spec.identifier)
            return target

        if func is not None:
            return decorator(func)
        return decorator

    def unregister(self, identifier: Union[str, HandlerSpec]) -> bool:
        spec = _as_spec(identifier)
        with self._lock:
            return self._handlers.pop(spec.identifier, None) is not None

    def get(self, identifier: Union[str, HandlerSpec]) -> Optional[RegisteredHandler]:
        spec = _as_spec(identifier)
        with self._lock:
            return self._handlers.get(spec.identifier)

    def identifiers(self) -> List[str]:
        with self._lock:
            return sorted(self._handlers.keys())

    def __contains__(self, identifier: object) -> bool:
        if not isinstance(identifier, (str, HandlerSpec)):
            return False
        return self.get(identifier) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def resolve(
        self,
        handler: Union[str, HandlerSpec],
        task_root: Optional[Union[str, Path]] = None,
    ) -> RegisteredHandler:
        """
        Resolve a handler identifier to a callable, loading its module if needed.

        Raises:
            HandlerNotFoundError: module, class or method does not exist
            LambdaRuntimeInitError: the module failed while being imported
        """
        spec = _as_spec(handler)
        registered = self.get(spec)
        if registered is not None:
            return registered

        module = self._load_module(spec, task_root)

        # Importing the module may have registered the handler via decorator.
        registered = self.get(spec)
        if registered is not None:
            return registered

        func = self._lookup(module, spec)
        meta = getattr(func, HANDLER_META_ATTR, None) or {}
        registered = RegisteredHandler(
            spec=spec,
            func=func,
            stream=bool(meta.get("stream", False)),
            content_type=meta.get("content_type"),
        )
        with self._lock:
            self._handlers[spec.identifier] = registered
        self.info("Resolved handler %s", spec.identifier)
        return registered

    def _load_module(
        self, spec: HandlerSpec, task_root: Optional[Union[str, Path]]
    ) -> ModuleType:
        root = Path(task_root) if task_root is not None else self.task_root
        source = root / "{0}.py".format(spec.module_path) if root is not None else None
        # Sibling modules of the handler file must be importable.
        if root is not None and str(root) not in sys.path:
            sys.path.insert(0, str(root))

        try:
            if source is not None and source.is_file():
                return self._load_source_file(spec.module_path, source)
            return importlib.import_module(spec.module_path)
        except ModuleNotFoundError as exc:
            if exc.name != spec.module_path:
                raise LambdaRuntimeInitError(exc) from exc
            raise HandlerNotFoundError(
                message="Cannot load handler module '{0}'".format(spec.module_path),
                handler=spec.identifier,
                missing="module",
            ) from exc
        except Exception as exc:
            raise LambdaRuntimeInitError(exc) from exc

    @staticmethod
    def _load_source_file(module_name: str, source: Path) -> ModuleType:
        existing = sys.modules.get(module_name)
        if existing is not None and getattr(existing, "__file__", None) == str(source):
            return existing

        module_spec = importlib.util.spec_from_file_location(module_name, str(source))
        if module_spec is None or module_spec.loader is None:
            raise ModuleNotFoundError(
                "No module named '{0}'".format(module_name), name=module_name
            )
        module = importlib.util.module_from_spec(module_spec)
        sys.modules[module_name] = module
        try:
            module_spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        return module

    @staticmethod
    def _lookup(module: ModuleType, spec: HandlerSpec) -> Callable[..., Any]:
        owner: Any = module
        if spec.namespace:
            owner = getattr(module, spec.namespace, None)
            if owner is None:
                raise HandlerNotFoundError(
                    message="Handler class '{0}' not found in module '{1}'".format(
                        spec.namespace, spec.module_path
                    ),
                    handler=spec.identifier,
                    missing="class",
                )
            raw = inspect.getattr_static(owner, spec.method_name, None)
            if raw is not None and not isinstance(raw, (staticmethod, classmethod)):
                raise HandlerNotFoundError(
                    message="Handler '{0}' must be a class-level method".format(
                        spec.identifier
                    ),
                    handler=spec.identifier,
                    missing="method",
                )

        func = getattr(owner, spec.method_name, None)
        if func is None or not callable(func):
            raise HandlerNotFoundError(
                message="Handler method '{0}' not found in '{1}'".format(
                    spec.method_name, spec.namespace or spec.module_path
                ),
                handler=spec.identifier,
                missing="method",
            )
        return func


_DEFAULT_REGISTRY_LOCK = threading.Lock()
_DEFAULT_REGISTRY: Optional[HandlerRegistry] = None


def default_registry() -> HandlerRegistry:
    """
    Process-wide registry used by the ``@handler`` decorator and the bootstrap.
    """
    global _DEFAULT_REGISTRY

    with _DEFAULT_REGISTRY_LOCK:
        if _DEFAULT_REGISTRY is None:
            _DEFAULT_REGISTRY = HandlerRegistry()
        return _DEFAULT_REGISTRY
