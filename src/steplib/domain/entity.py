import builtins
import inspect
from typing import Any

import msgspec


def type_name(tp: Any) -> str:
    """Renders a type the way it is shown in prototypes and exported metadata."""
    if tp is None or tp is inspect.Parameter.empty:
        return ""
    if tp is type(None):
        return "None"
    if tp is Any:
        return "Any"
    if isinstance(tp, type) and not getattr(tp, "__args__", None):
        if tp.__module__ == builtins.__name__:
            return tp.__qualname__
        return f"{tp.__module__}.{tp.__qualname__}"
    return repr(tp).replace("typing.", "")


def _enc_hook(obj: Any) -> Any:
    # types, typing constructs and arbitrary defaults are exported by name
    if isinstance(obj, type) or obj is Any or hasattr(obj, "__origin__"):
        return type_name(obj)
    return str(obj)


class TypeRef(msgspec.Struct, frozen=True):
    """A declared type: its rendered name and, when it could be resolved, the Python type itself."""

    name: str
    resolved: Any = None

    @classmethod
    def of(cls, tp: Any) -> "TypeRef":
        if tp is None or tp is inspect.Parameter.empty:
            return cls(name="")
        return cls(name=type_name(tp), resolved=tp)

    @property
    def is_resolved(self) -> bool:
        return self.resolved is not None


class ArgumentMetadata(msgspec.Struct, frozen=True):
    """Describes one argument of a step function."""

    name: str
    display_name: str = ""
    description: str = ""
    declared_type: TypeRef = msgspec.field(default_factory=lambda: TypeRef(name=""))
    default: Any = None

    def prototype(self) -> str:
        """Returns ``type name``, leaving out whichever part is empty."""
        return " ".join(part for part in (self.declared_type.name, self.name) if part)


class StepMetadata(msgspec.Struct, frozen=True):
    """Merged metadata of a discovered step function."""

    name: str
    display_name: str
    description: str = ""
    return_type: TypeRef = msgspec.field(default_factory=lambda: TypeRef(name=""))
    arguments: tuple[ArgumentMetadata, ...] = ()
    implementation_type: Any = None

    def __repr__(self) -> str:
        return f"StepMetadata({self.prototype()})"

    def prototype(self) -> str:
        """Returns the textual signature, e.g. ``cheese(str name, int amount) str``."""
        text = f"{self.name}({', '.join(arg.prototype() for arg in self.arguments)})"
        if self.return_type.name:
            text += f" {self.return_type.name}"
        return text

    def argument(self, name: str) -> ArgumentMetadata:
        """Returns the argument metadata with the given name, raises KeyError if absent."""
        for arg in self.arguments:
            if arg.name == name:
                return arg
        raise KeyError(f"Function {self.name} has no argument {name}")

    def argument_names(self) -> list[str]:
        return [arg.name for arg in self.arguments]

    def to_dict(self) -> dict[str, Any]:
        """Convert the metadata to a dictionary of builtins."""
        data = msgspec.to_builtins(self, enc_hook=_enc_hook)
        data["prototype"] = self.prototype()
        return data

    def to_json(self) -> str:
        """Convert the metadata to a JSON string."""
        return msgspec.json.encode(self.to_dict()).decode()

    def to_yaml(self) -> str:
        """Convert the metadata to a YAML string."""
        return msgspec.yaml.encode(self.to_dict()).decode()
