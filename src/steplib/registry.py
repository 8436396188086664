from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Iterator

from steplib.application.adapter import InvocationContext
from steplib.domain.entity import StepMetadata
from steplib.domain.exception import FunctionNotFound
from steplib.domain.port import StepFunction


class Registry(Mapping):
    """
    Read-only registry of step functions keyed by name.

    The Registry is what callers interact with: it looks step functions up by name,
    invokes them and describes their metadata. It is built once per search scope and
    never changes afterwards, so lookups need no locking.
    """

    def __init__(self, functions: dict[str, StepFunction]):
        """
        Initialize the registry.

        Args:
            functions: The step functions by name
        """
        self._functions = MappingProxyType(dict(functions))

    def __getitem__(self, name: str) -> StepFunction:
        try:
            return self._functions[name]
        except KeyError:
            raise FunctionNotFound(name) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._functions)

    def __len__(self) -> int:
        return len(self._functions)

    def __repr__(self) -> str:
        return f"Registry({', '.join(self.names())})"

    def names(self) -> list[str]:
        """Returns the registered function names, sorted."""
        return sorted(self._functions)

    def metadata(self, name: str) -> StepMetadata:
        """
        Get the metadata of a step function.

        Raises:
            FunctionNotFound: If no function has that name
        """
        return self[name].metadata

    def invoke(
        self, name: str, arguments: dict[str, Any] | None = None, context: InvocationContext | None = None
    ) -> Any:
        """
        Invoke a step function on a fresh implementation instance.

        Args:
            name: The function name
            arguments: Arguments by name
            context: Ambient state for the instance; a default context is used when omitted

        Returns:
            Whatever the entry point returns

        Raises:
            FunctionNotFound: If no function has that name
            BindingError: If an argument cannot be bound
            InvocationError: If the entry point raises
        """
        return self[name].invoke(arguments, context if context is not None else InvocationContext())

    def describe_default_arguments(
        self, name: str, arguments: dict[str, Any] | None = None, context: InvocationContext | None = None
    ) -> dict[str, Any]:
        """
        Bind seed arguments like invoke() but return the resulting argument values instead of calling.

        Used to show default values, e.g. when rendering a form for the function.
        """
        return self[name].describe_default_arguments(
            arguments, context if context is not None else InvocationContext()
        )

    def prototypes(self) -> dict[str, str]:
        """Returns the textual signature of every function, by name."""
        return {name: self._functions[name].metadata.prototype() for name in self.names()}

    def describe(self) -> list[dict[str, Any]]:
        """Returns the metadata of every function as builtins, sorted by name."""
        return [self._functions[name].metadata.to_dict() for name in self.names()]
