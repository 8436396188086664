from typing import Any


class StepError(Exception):
    """Base class for all step library errors."""


class ConfigurationError(StepError, ValueError):
    """Raised when an implementation type or descriptor entry cannot be turned into a step function."""


class FunctionNotFound(StepError, KeyError):
    """Raised when no step function is registered under the requested name."""

    def __init__(self, function_name: str):
        super().__init__(f"No function called {function_name} could be found")
        self.function_name = function_name

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return self.args[0]


class FunctionNotFoundForType(FunctionNotFound):
    """Raised when a named step function cannot be found on a given implementation type."""

    def __init__(self, function_name: str, implementation_type: type):
        StepError.__init__(
            self,
            f"No function called {function_name} could be found on type {implementation_type.__qualname__}",
        )
        self.function_name = function_name
        self.implementation_type = implementation_type


class BindingError(StepError, ValueError):
    """Raised when a supplied argument cannot be bound to a step function.

    :param argument: The argument or property name that failed to bind
    :param implementation_type: The type the argument was being bound for
    :param value: The offending value
    :param reason: Human readable cause
    """

    def __init__(self, argument: str, implementation_type: Any, value: Any, reason: str):
        type_name = getattr(implementation_type, "__qualname__", repr(implementation_type))
        super().__init__(f"Could not set property {argument} on {type_name} to value {value!r}: {reason}")
        self.argument = argument
        self.implementation_type = implementation_type
        self.value = value
        self.reason = reason


class InvocationError(StepError, RuntimeError):
    """Raised when a step function entry point fails. The original exception is kept as ``__cause__``."""

    def __init__(self, function_name: str, entry_point: str, cause: BaseException):
        super().__init__(f"Could not invoke {entry_point} for function {function_name}: {cause}")
        self.function_name = function_name
        self.entry_point = entry_point
