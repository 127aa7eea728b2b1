#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Error taxonomy for the lambda-ric runtime.

Every fault the runtime can observe is expressed as one of the classes below
before it reaches the control plane:

- ``ConfigurationError``: malformed handler identifier, raised before the loop.
- ``InvocationError``: the next invocation could not be fetched.
- ``LambdaHandlerError``: recoverable application fault, reported and survived.
- ``LambdaHandlerCriticalError``: fatal handler fault, reported then exit.
- ``RuntimeCommunicationError``: a response or error could not be delivered.
- ``LambdaRuntimeInitError``: fault while loading the handler or reporting it.

``ExceptionTranslator`` maps arbitrary exceptions into this taxonomy and
``ExceptionFormatter`` renders stack traces and X-Ray cause documents.
"""

import json
import os
import traceback
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type


class ErrorClassification(str, Enum):
    """
    Prefix of the error-type tag sent in ``Lambda-Runtime-Function-Error-Type``.
    """

    FUNCTION = "Function"
    RUNTIME = "Runtime"
    INIT = "Init"


class LambdaRuntimeClientError(Exception):
    """
    Base class for every error raised by lambda-ric itself.
    """

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        **context: Any
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context: Dict[str, Any] = dict(context)

    def __str__(self) -> str:
        return self.message


class ConfigurationError(LambdaRuntimeClientError, ValueError):
    """
    Raised when the runtime is configured with an unusable value.
    """

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
        value: Any = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message=message, cause=cause, setting=setting, value=value)
        self.setting = setting
        self.value = value


class InvocationError(LambdaRuntimeClientError):
    """
    Raised when the next invocation cannot be fetched from the control plane.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message=message, cause=cause, status_code=status_code)
        self.status_code = status_code


class SerializationError(LambdaRuntimeClientError):
    """
    Raised when a request payload or handler result cannot be (de)serialized.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        data_type: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message=message, cause=cause, operation=operation, data_type=data_type
        )
        self.operation = operation
        self.data_type = data_type


class HandlerNotFoundError(LambdaRuntimeClientError, LookupError):
    """
    Raised when the configured handler module, class or method does not exist.
    """

    def __init__(self, message: str, handler: str, missing: Optional[str] = None) -> None:
        super().__init__(message=message, handler=handler, missing=missing)
        self.handler = handler
        self.missing = missing


class LambdaError(LambdaRuntimeClientError):
    """
    Error wrapping an original exception, reportable to the control plane.
    """

    classification: ErrorClassification = ErrorClassification.FUNCTION

    def __init__(
        self,
        original: BaseException,
        classification: Optional[ErrorClassification] = None,
    ) -> None:
        if classification is not None:
            self.classification = classification
        self.original = original
        self.error_class = type(original).__name__
        self.error_type = "{0}<{1}>".format(
            self.classification.value, self.error_class
        )
        self.error_message = str(original)
        self.stack_trace = ExceptionFormatter.format_stack_trace(original)
        super().__init__(message=self.error_message, cause=original)

    def _is_allowed_error_class(self) -> bool:
        module = type(self.original).__module__
        return module == "builtins" or module == __name__

    @property
    def runtime_error_type(self) -> str:
        """
        Tag sent in the error-type header.

        User-defined exception classes are reported generically so that the
        header only ever names built-in or runtime error types.
        """
        if self.classification is not ErrorClassification.FUNCTION:
            return self.error_type
        if self._is_allowed_error_class():
            return self.error_type
        return "{0}<UserException>".format(self.classification.value)

    def to_lambda_response(self) -> Dict[str, Any]:
        return {
            "errorMessage": self.error_message,
            "errorType": self.error_type,
            "stackTrace": self.stack_trace,
        }


class HandlerFault(LambdaError):
    """
    Fault raised by user code, classified as recoverable or fatal.
    """

    recoverable: bool = True


class LambdaHandlerError(HandlerFault):
    """
    Recoverable application fault: the process keeps serving invocations.
    """

    recoverable = True


class LambdaHandlerCriticalError(HandlerFault):
    """
    Fatal handler fault: the process exits after reporting it.
    """

    recoverable = False


class RuntimeCommunicationError(LambdaError):
    """
    Raised when a response or an error report cannot be delivered.
    """

    classification = ErrorClassification.RUNTIME


class LambdaRuntimeInitError(LambdaError):
    """
    Raised for faults during process initialization.
    """

    classification = ErrorClassification.INIT


class ExceptionTranslator:
    """
    Map arbitrary exceptions into the lambda-ric error taxonomy.
    """

    FATAL_LOOKUP_ERRORS: Tuple[Type[BaseException], ...] = (
        NameError,
        AttributeError,
        HandlerNotFoundError,
    )

    @classmethod
    def classify(cls, exc: BaseException) -> HandlerFault:
        """
        Classify a fault raised while running user code.

        Lookup-style faults and anything that is not an ``Exception`` are
        fatal; every other exception is recoverable.
        """
        if isinstance(exc, HandlerFault):
            return exc
        if isinstance(exc, cls.FATAL_LOOKUP_ERRORS):
            return LambdaHandlerCriticalError(exc)
        if isinstance(exc, Exception):
            return LambdaHandlerError(exc)
        return LambdaHandlerCriticalError(exc)

    @staticmethod
    def as_runtime_error(exc: BaseException) -> RuntimeCommunicationError:
        if isinstance(exc, RuntimeCommunicationError):
            return exc
        return RuntimeCommunicationError(exc)

    @staticmethod
    def as_init_error(exc: BaseException) -> LambdaRuntimeInitError:
        if isinstance(exc, LambdaRuntimeInitError):
            return exc
        return LambdaRuntimeInitError(exc)


class ExceptionFormatter:
    """
    Render exceptions for error bodies, diagnostic headers and logs.
    """

    @staticmethod
    def format_stack_trace(exc: BaseException) -> List[str]:
        frames = traceback.extract_tb(exc.__traceback__)
        return [line.rstrip("\n") for line in traceback.format_list(frames)]

    @staticmethod
    def format_exception_summary(exc: BaseException) -> str:
        message = str(exc)
        if not message:
            return type(exc).__name__
        return "{0}: {1}".format(type(exc).__name__, message)

    @staticmethod
    def format_exception_chain(exc: BaseException) -> List[str]:
        chain: List[str] = []
        seen = set()
        current: Optional[BaseException] = exc
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            chain.append(ExceptionFormatter.format_exception_summary(current))
            current = current.__cause__ or current.__context__
        return chain

    @staticmethod
    def xray_cause(
        exc: BaseException, working_directory: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Build the X-Ray error cause document for a fault.
        """
        original = exc.original if isinstance(exc, LambdaError) else exc
        stack = [
            {"path": frame.filename, "line": frame.lineno, "label": frame.name}
            for frame in traceback.extract_tb(original.__traceback__)
        ]
        paths: List[str] = []
        for entry in stack:
            if entry["path"] not in paths:
                paths.append(entry["path"])

        return {
            "working_directory": working_directory or os.getcwd(),
            "exceptions": [
                {
                    "type": type(original).__name__,
                    "message": str(original),
                    "stack": stack,
                }
            ],
            "paths": paths,
        }

    @classmethod
    def xray_cause_json(
        cls, exc: BaseException, working_directory: Optional[str] = None
    ) -> str:
        return json.dumps(cls.xray_cause(exc, working_directory))
