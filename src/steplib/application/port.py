from abc import ABC, abstractmethod
from typing import Any

from steplib.domain.value_object import ArgumentSchema, DescriptorResource


class ResourceLocator(ABC):
    """Abstract interface for finding descriptor resources within a search scope."""

    @abstractmethod
    def find(self, name: str) -> list[DescriptorResource]:
        """
        Find every descriptor resource with the given relative name.

        :param name: The resource name relative to each search path entry, e.g. ``steplib.d/steps.properties``
        :type name: str
        :returns: The parsed resources in the order they should be merged
        :rtype: list[DescriptorResource]
        """


class TypeLoader(ABC):
    """Abstract interface for resolving type references to Python types."""

    @abstractmethod
    def load(self, reference: str) -> Any:
        """
        Resolve a type reference such as ``package.module:QualName``.

        :param reference: The type reference to resolve
        :type reference: str
        :returns: The resolved type
        :rtype: Any
        :raises: ConfigurationError if the reference cannot be resolved
        """


class Binder(ABC):
    """Abstract interface for binding caller arguments to step implementations."""

    @abstractmethod
    def assign(self, target: Any, schema: ArgumentSchema, arguments: dict[str, Any] | None) -> Any:
        """
        Assign each argument as an attribute of an existing object.

        :param target: The object receiving the arguments
        :type target: Any
        :param schema: The bindable fields of the target
        :type schema: ArgumentSchema
        :param arguments: The arguments by name
        :type arguments: dict[str, Any] | None
        :returns: The target
        :rtype: Any
        :raises: BindingError if a name is unknown or a value cannot be coerced
        """

    @abstractmethod
    def construct(self, schema: ArgumentSchema, arguments: dict[str, Any] | None) -> Any:
        """
        Create a fresh argument holder of the schema's owner type populated from the arguments.

        :param schema: The bindable fields of the holder type
        :type schema: ArgumentSchema
        :param arguments: The arguments by name
        :type arguments: dict[str, Any] | None
        :returns: The populated holder
        :rtype: Any
        :raises: BindingError if the holder cannot be created or populated
        """

    @abstractmethod
    def bind_parameters(
        self, schema: ArgumentSchema, arguments: dict[str, Any] | None
    ) -> tuple[list[Any], dict[str, Any]]:
        """
        Bind the arguments to the parameters of a method.

        :param schema: The parameters of the method, in declaration order
        :type schema: ArgumentSchema
        :param arguments: The arguments by name
        :type arguments: dict[str, Any] | None
        :returns: Positional and keyword arguments for the call
        :rtype: tuple[list[Any], dict[str, Any]]
        :raises: BindingError if a value cannot be coerced
        """
