"""
steplib - Step Function Discovery and Invocation

Discovers named step functions contributed by independent modules and invokes them
through one interface, whether they are written as a ``call()`` method, an
``apply(context)`` method or a set of ``@step`` marked methods.
"""

from steplib.application.adapter import InvocationContext
from steplib.domain.entity import ArgumentMetadata, StepMetadata, TypeRef
from steplib.domain.exception import (
    BindingError,
    ConfigurationError,
    FunctionNotFound,
    FunctionNotFoundForType,
    InvocationError,
    StepError,
)
from steplib.domain.port import StepFunction, StepSupport
from steplib.domain.value_object import Argument, DispatchKind, LoaderOptions, Result, Step, step
from steplib.factory import create, load, load_function
from steplib.registry import Registry
from steplib.source import SourceType

__all__ = [
    "create",
    "load",
    "load_function",
    "Registry",
    "SourceType",
    "LoaderOptions",
    "InvocationContext",
    "StepFunction",
    "StepSupport",
    "StepMetadata",
    "ArgumentMetadata",
    "TypeRef",
    "Step",
    "Argument",
    "step",
    "DispatchKind",
    "Result",
    "StepError",
    "ConfigurationError",
    "FunctionNotFound",
    "FunctionNotFoundForType",
    "BindingError",
    "InvocationError",
]
