"""
Example step functions for testing and demonstration purposes.

Each calling convention is represented: ``call()`` (hello, helloGoodbye),
``apply(context)`` (example, anotherFn) and ``@step`` marked methods (cheese, beer).
Their descriptors live in ``steplib.d`` next to this module.
"""

from typing import Annotated

import msgspec

from steplib import Argument, Result, StepSupport, step

__all__ = [
    "HelloFunction",
    "HelloGoodbyeFunction",
    "ExampleContext",
    "ExampleFunction",
    "AnotherContext",
    "AnotherFunction",
    "Functions",
]


class HelloFunction(StepSupport):
    """Greets someone; arguments are bound as attributes before ``call()``."""

    name: str | None = None

    def call(self) -> str:
        return f"Hello {self.name}"


@step(name="helloGoodbye")
class HelloGoodbyeFunction(HelloFunction):
    """Greets someone and says goodbye."""

    bye: str | None = None
    _dummy_regular_field: str | None = None

    def call(self) -> str:
        return f"{super().call()} {self.bye}"


class ExampleContext:
    """Arguments of the example step."""

    message: Annotated[str | None, Argument(description="The message to print", default="DefaultMessage")] = None


@step(name="example", display_name="Some example function")
class ExampleFunction(StepSupport):
    """Prints a message, failing when none was provided."""

    @step
    def apply(self, context: ExampleContext) -> Result:
        if context.message is None:
            self.error("<message> not provided")
            return Result.FAILURE
        self.echo(f"Hello, {context.message}")
        return Result.SUCCESS


class AnotherContext(msgspec.Struct):
    name: str = "DefaultName"


class AnotherFunction:
    def apply(self, context: AnotherContext) -> str:
        return f"Hello {context.name}"


@step
class Functions(StepSupport):
    """Several step functions implemented as methods of one class."""

    @step(display_name="Cheesey hello")
    def cheese(self, name: Annotated[str, Argument(name="name")], amount: Annotated[int, Argument(name="amount")]) -> str:
        """Greets someone with a number."""
        return f"Hello {name} #{amount}"

    @step(display_name="Finds the beer")
    def beer(self, location: Annotated[str, Argument(name="location")]) -> str:
        return f"beer:{location}"
