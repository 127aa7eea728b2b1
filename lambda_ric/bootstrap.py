#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Process bootstrap: configure, resolve the handler, run the loop.

Failures before the first poll (malformed handler identifier, missing or
broken handler module) are reported once through the init-error endpoint and
end the process with their own exit status.
"""

from typing import Optional, Union

from .core.config import RuntimeConfig, get_config
from .core.data.models import HandlerSpec
from .core.handlers.invoker import LambdaHandler
from .core.handlers.registry import HandlerRegistry, default_registry
from .core.nodes.runtime_loop import ExecutionLoop, ExitCode
from .core.transport.control_plane import ControlPlaneClient
from .core.transport.streaming import ConnectionFactory, StreamingResponseSender
from .core.utils.exceptions import (
    ConfigurationError,
    ExceptionFormatter,
    ExceptionTranslator,
    LambdaRuntimeInitError,
)
from .core.utils.logger import ModernLogger


class RuntimeBootstrap(ModernLogger):
    """
    Wire the runtime components together for one process.
    """

    def __init__(
        self,
        handler: Optional[Union[str, HandlerSpec]] = None,
        config: Optional[RuntimeConfig] = None,
        registry: Optional[HandlerRegistry] = None,
        client: Optional[ControlPlaneClient] = None,
        sender: Optional[StreamingResponseSender] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        max_invocations: Optional[int] = None,
    ) -> None:
        self.config = config if config is not None else get_config()
        super().__init__(name="lambda_ric.RuntimeBootstrap", level=self.config.log_level)

        self.handler_name = handler if handler is not None else self.config.handler
        self.registry = registry if registry is not None else default_registry()
        self.registry.set_log_level(self.config.log_level)
        self.client = client or ControlPlaneClient(self.config)
        self.sender = sender or StreamingResponseSender(
            self.config,
            connection_factory=connection_factory,
            user_agent=self.client.user_agent,
        )
        self.max_invocations = max_invocations

    def initialize(self) -> LambdaHandler:
        """
        Parse and resolve the handler.

        Raises:
            ConfigurationError: no handler or a malformed identifier
            HandlerNotFoundError: module, class or method does not exist
            LambdaRuntimeInitError: the handler module failed to import
        """
        if not self.handler_name:
            raise ConfigurationError(
                message="No handler configured; pass FILE.METHOD or set _HANDLER",
                setting="handler",
            )
        lambda_handler = LambdaHandler(
            self.handler_name,
            registry=self.registry,
            task_root=self.config.task_root,
        )
        lambda_handler.set_log_level(self.config.log_level)
        lambda_handler.resolve()
        return lambda_handler

    def report_init_error(self, exc: BaseException) -> None:
        init_error = ExceptionTranslator.as_init_error(exc)
        self.error(
            "Init error %s: %s",
            init_error.error_type,
            " <- ".join(ExceptionFormatter.format_exception_chain(init_error.original)),
        )
        try:
            self.client.post_init_error(init_error.to_lambda_response(), init_error)
        except LambdaRuntimeInitError as report_exc:
            self.error("Could not report init error: %s", report_exc.error_message)

    def run(self) -> ExitCode:
        try:
            lambda_handler = self.initialize()
        except ConfigurationError as exc:
            self.report_init_error(exc)
            return ExitCode.CONFIGURATION_ERROR
        except Exception as exc:
            self.report_init_error(exc)
            return ExitCode.INIT_ERROR

        loop = ExecutionLoop(
            lambda_handler,
            self.client,
            self.sender,
            config=self.config,
            max_invocations=self.max_invocations,
        )
        return loop.run()


def start_runtime(
    handler: Optional[str] = None,
    config: Optional[RuntimeConfig] = None,
    max_invocations: Optional[int] = None,
) -> ExitCode:
    """
    Run the runtime until it decides to exit and return its exit status.
    """
    return RuntimeBootstrap(
        handler=handler, config=config, max_invocations=max_invocations
    ).run()
