import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from steplib.domain.entity import StepMetadata
from steplib.domain.value_object import DispatchKind

if TYPE_CHECKING:
    from steplib.application.adapter import InvocationContext


class StepFunction(ABC):
    """Uniform contract over every discovered step function, whatever its calling convention."""

    kind: DispatchKind

    @property
    @abstractmethod
    def metadata(self) -> StepMetadata:
        """Returns the merged metadata of the step function."""
        ...

    @property
    def name(self) -> str:
        return self.metadata.name

    @abstractmethod
    def invoke(self, arguments: dict[str, Any] | None, context: "InvocationContext | None" = None) -> Any:
        """
        Invokes the step function on a fresh implementation instance.

        :param arguments: Optional arguments by name
        :param context: The ambient state injected into the instance
        :returns: The result of the entry point
        :raises BindingError: If an argument cannot be bound
        :raises InvocationError: If the entry point fails
        """
        ...

    @abstractmethod
    def describe_default_arguments(
        self, arguments: dict[str, Any] | None, context: "InvocationContext | None" = None
    ) -> dict[str, Any]:
        """
        Binds the arguments like :meth:`invoke` but returns the bound values instead of calling the entry point.

        :param arguments: Seed arguments by name
        :param context: The ambient state injected into the instance
        :returns: Every known argument with its bound or default value
        """
        ...


class StepSupport:
    """Optional base class for step implementations that want the ambient logger and working directory."""

    logger: logging.Logger
    current_dir: Path

    def __init__(self):
        self.logger = logging.getLogger(f"{type(self).__module__}.{type(self).__qualname__}")
        self.current_dir = Path(".")

    def echo(self, message: str) -> None:
        self.logger.info(message)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        self.logger.error(message, exc_info=exc)

    def path(self, name: str) -> Path:
        """Resolves ``name`` against the current directory."""
        return self.current_dir / name
