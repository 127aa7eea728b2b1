#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Runtime configuration for lambda-ric.

Configuration is read once from the process environment provided by the
execution host. ``get_config()`` returns the process-wide instance and
``create_config()`` builds an instance with explicit overrides.
"""

import dataclasses
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

from .utils.exceptions import ConfigurationError

DEFAULT_RUNTIME_API = "127.0.0.1:9001"
RUNTIME_API_VERSION = "2018-06-01"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_int(name: str, value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(
            message="{0} must be an integer, got {1!r}".format(name, value),
            setting=name,
            value=value,
            cause=exc,
        ) from exc


@dataclass(frozen=True)
class RuntimeConfig:
    """
    Immutable view of the environment the runtime was started in.
    """

    runtime_api: str = DEFAULT_RUNTIME_API
    handler: Optional[str] = None
    task_root: str = field(default_factory=os.getcwd)
    function_name: Optional[str] = None
    function_version: Optional[str] = None
    memory_limit_in_mb: Optional[int] = None
    log_group_name: Optional[str] = None
    log_stream_name: Optional[str] = None
    log_level: str = "info"
    stream_tls: bool = False
    api_version: str = RUNTIME_API_VERSION

    def __post_init__(self) -> None:
        if not self.runtime_api or not self.runtime_api.strip():
            raise ConfigurationError(
                message="runtime_api cannot be empty",
                setting="runtime_api",
                value=self.runtime_api,
            )
        # Validates the port eagerly so a bad address fails at startup.
        self.runtime_address

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeConfig":
        env = os.environ if environ is None else environ
        return cls(
            runtime_api=env.get("AWS_LAMBDA_RUNTIME_API") or DEFAULT_RUNTIME_API,
            handler=env.get("_HANDLER") or None,
            task_root=env.get("LAMBDA_TASK_ROOT") or os.getcwd(),
            function_name=env.get("AWS_LAMBDA_FUNCTION_NAME"),
            function_version=env.get("AWS_LAMBDA_FUNCTION_VERSION"),
            memory_limit_in_mb=_parse_int(
                "AWS_LAMBDA_FUNCTION_MEMORY_SIZE",
                env.get("AWS_LAMBDA_FUNCTION_MEMORY_SIZE"),
            ),
            log_group_name=env.get("AWS_LAMBDA_LOG_GROUP_NAME"),
            log_stream_name=env.get("AWS_LAMBDA_LOG_STREAM_NAME"),
            log_level=env.get("LAMBDA_RIC_LOG_LEVEL", "info"),
            stream_tls=_parse_bool(env.get("LAMBDA_RIC_STREAM_TLS")),
        )

    @property
    def runtime_address(self) -> Tuple[str, int]:
        """
        ``(host, port)`` of the control plane; port 80 when none is given.
        """
        host, sep, port = self.runtime_api.strip().rpartition(":")
        if not sep:
            return self.runtime_api.strip(), 80
        try:
            return host, int(port)
        except ValueError as exc:
            raise ConfigurationError(
                message="Invalid runtime API address: {0}".format(self.runtime_api),
                setting="runtime_api",
                value=self.runtime_api,
                cause=exc,
            ) from exc

    @property
    def base_url(self) -> str:
        return "http://{0}/{1}".format(self.runtime_api.strip(), self.api_version)

    def api_path(self, suffix: str) -> str:
        """
        Versioned request path, e.g. ``/2018-06-01/runtime/invocation/next``.
        """
        return "/{0}/{1}".format(self.api_version, suffix.lstrip("/"))


_CONFIG_LOCK = threading.Lock()
_GLOBAL_CONFIG: Optional[RuntimeConfig] = None


def get_config() -> RuntimeConfig:
    """
    Return the process-wide configuration, reading the environment once.
    """
    global _GLOBAL_CONFIG

    with _CONFIG_LOCK:
        if _GLOBAL_CONFIG is None:
            _GLOBAL_CONFIG = RuntimeConfig.from_env()
        return _GLOBAL_CONFIG


def create_config(
    environ: Optional[Mapping[str, str]] = None, **overrides: Any
) -> RuntimeConfig:
    """
    Build a configuration from the environment with explicit overrides.
    """
    known = {item.name for item in dataclasses.fields(RuntimeConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigurationError(
            message="Unknown configuration keys: {0}".format(", ".join(unknown)),
            setting=unknown[0],
        )
    return dataclasses.replace(RuntimeConfig.from_env(environ), **overrides)


def reset_config() -> None:
    global _GLOBAL_CONFIG

    with _CONFIG_LOCK:
        _GLOBAL_CONFIG = None
