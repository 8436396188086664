from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, TypeVar

import msgspec

STEP_MARKER = "__step__"

T = TypeVar("T")


@dataclass
class LoaderOptions:
    resource_dir: str = "steplib.d"
    steps_resource: str = "steps.properties"
    arguments_suffix: str = "-arguments.properties"
    encoding: str = "utf-8"
    strict: bool = False

    @property
    def steps_path(self) -> str:
        return f"{self.resource_dir}/{self.steps_resource}"

    def arguments_path(self, function_name: str) -> str:
        return f"{self.resource_dir}/{function_name}{self.arguments_suffix}"


class DispatchKind(str, Enum):
    CALLABLE = "callable"
    CONTEXT = "context"
    METHOD = "method"


class Result(str, Enum):
    SUCCESS = "success"
    UNSTABLE = "unstable"
    FAILURE = "failure"


class Step(msgspec.Struct, frozen=True):
    """Declarative marker naming and describing a step function.

    Empty fields are treated as absent when layered over descriptor metadata.
    """

    name: str = ""
    display_name: str = ""
    description: str = ""


class Argument(msgspec.Struct, frozen=True):
    """Declarative marker for a step argument, attached with ``typing.Annotated``.

    ``default`` is only surfaced when describing arguments; it is never applied on invocation.
    """

    name: str = ""
    display_name: str = ""
    description: str = ""
    default: Any = None


class DescriptorResource(msgspec.Struct, frozen=True):
    """A parsed descriptor resource: where it came from and its ``key=value`` entries in file order."""

    location: str
    entries: tuple[tuple[str, str], ...] = ()


class ArgumentField(msgspec.Struct, frozen=True):
    """One bindable argument: the name callers use and where its value goes.

    ``attribute`` is the attribute or parameter name on the implementation side.
    """

    name: str
    attribute: str
    declared_type: Any = Any
    marker: Argument | None = None
    default: Any = None
    positional_only: bool = False
    optional: bool = False


class ArgumentSchema(msgspec.Struct, frozen=True):
    """The bindable arguments of a type or method, flattened once at discovery."""

    owner: Any
    fields: dict[str, ArgumentField]
    keyword_init: bool = False

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def values(self) -> list[ArgumentField]:
        return list(self.fields.values())


def step(
    target: T | None = None, *, name: str = "", display_name: str = "", description: str = ""
) -> T | Callable[[T], T]:
    """Marks a class or method as a step function.

    Usable bare (``@step``) or with keyword arguments (``@step(name="cheese")``).
    """

    marker = Step(name=name, display_name=display_name, description=description)

    def decorate(obj: T) -> T:
        setattr(obj, STEP_MARKER, marker)
        return obj

    if target is not None:
        return decorate(target)
    return decorate


def get_step_marker(obj: Any) -> Step | None:
    """Returns the marker attached directly to ``obj``, ignoring markers inherited from base classes."""
    if isinstance(obj, type):
        marker = obj.__dict__.get(STEP_MARKER)
    else:
        marker = getattr(obj, STEP_MARKER, None)
    return marker if isinstance(marker, Step) else None
