import collections.abc
import copy
import dataclasses
import inspect
import logging
import typing
from dataclasses import dataclass, field
from typing import Annotated, Any, Callable, ClassVar, Iterable, get_args, get_origin

import msgspec

from steplib.application.adapter import (
    AMBIENT_ATTRIBUTES,
    CallableStepFunction,
    ContextStepFunction,
    MethodStepFunction,
)
from steplib.application.port import Binder, ResourceLocator, TypeLoader
from steplib.domain.entity import ArgumentMetadata, StepMetadata, TypeRef
from steplib.domain.exception import ConfigurationError, FunctionNotFoundForType
from steplib.domain.port import StepFunction
from steplib.domain.service import validate_metadata
from steplib.domain.value_object import (
    Argument,
    ArgumentField,
    ArgumentSchema,
    DispatchKind,
    LoaderOptions,
    Step,
    get_step_marker,
)

logger = logging.getLogger(__name__)

CALL_METHOD = "call"
APPLY_METHOD = "apply"


@dataclass
class ArgumentProperties:
    """Accumulates the descriptor metadata of one argument."""

    name: str
    display_name: str | None = None
    description: str | None = None
    type_name: str | None = None
    default: str | None = None

    _properties: ClassVar[dict[str, str]] = {
        "displayName": "display_name",
        "description": "description",
        "type": "type_name",
        "default": "default",
    }

    def set_property(self, step_name: str, property_name: str, value: str) -> None:
        attribute = self._properties.get(property_name)
        if attribute is None:
            logger.warning(
                "Step %s argument %s has unknown property %s with value %s",
                step_name,
                self.name,
                property_name,
                value,
            )
            return
        setattr(self, attribute, value)

    def merge(self, other: "ArgumentProperties") -> None:
        """Overlays every field explicitly set on ``other``."""
        for attribute in self._properties.values():
            value = getattr(other, attribute)
            if value is not None:
                setattr(self, attribute, value)


@dataclass
class StepProperties:
    """Accumulates the metadata of one step function from descriptor resources and markers."""

    name: str
    display_name: str | None = None
    description: str | None = None
    type_name: str | None = None
    arguments: dict[str, ArgumentProperties] = field(default_factory=dict)

    _properties: ClassVar[dict[str, str]] = {
        "displayName": "display_name",
        "description": "description",
        "typeName": "type_name",
    }

    def set_property(self, property_name: str, value: str) -> None:
        attribute = self._properties.get(property_name)
        if attribute is None:
            logger.warning("Step %s has unknown property %s with value %s", self.name, property_name, value)
            return
        setattr(self, attribute, value)

    def argument(self, name: str) -> ArgumentProperties:
        """Returns the accumulator of the named argument, creating it on first use."""
        if name not in self.arguments:
            self.arguments[name] = ArgumentProperties(name)
        return self.arguments[name]

    def merge(self, other: "StepProperties") -> None:
        """Overlays every field explicitly set on ``other``, argument by argument."""
        for attribute in self._properties.values():
            value = getattr(other, attribute)
            if value is not None:
                setattr(self, attribute, value)
        for name, argument in other.arguments.items():
            self.argument(name).merge(argument)

    def configure(self, marker: Step | None) -> None:
        """Overrides fields with the non-empty fields of a marker; empty marker fields never blank a value."""
        if marker is None:
            return
        if marker.name:
            self.name = marker.name
        if marker.display_name:
            self.display_name = marker.display_name
        if marker.description:
            self.description = marker.description

    def copy(self) -> "StepProperties":
        return copy.deepcopy(self)


class StepPropertiesMerger:
    """Merges descriptor entries into per-function StepProperties accumulators.

    Keys are ``<function>.<property>`` or ``<function>.<argument>.<property>``. In a steps index a key
    without any ``.`` is shorthand for ``<function>.typeName``. Later entries overwrite earlier ones.
    """

    def merge(
        self,
        entries: Iterable[tuple[str, str]],
        into: dict[str, StepProperties] | None = None,
        index: bool = True,
    ) -> dict[str, StepProperties]:
        result = into if into is not None else {}
        for key, value in entries:
            function_name, sep, rest = key.partition(".")
            if not function_name:
                continue
            if not sep:
                if index and value:
                    self._properties(result, function_name).type_name = value
                continue
            argument_name, sep, property_name = rest.rpartition(".")
            if not property_name:
                continue
            properties = self._properties(result, function_name)
            if sep and argument_name:
                properties.argument(argument_name).set_property(function_name, property_name, value)
            elif not sep:
                properties.set_property(property_name, value)
        return result

    def merge_arguments(
        self, function_name: str, entries: Iterable[tuple[str, str]], into: StepProperties
    ) -> StepProperties:
        """Merges an argument resource whose keys are ``<argument>.<property>`` into a function's accumulator."""
        for key, value in entries:
            argument_name, sep, property_name = key.rpartition(".")
            if not sep or not argument_name or not property_name:
                continue
            into.argument(argument_name).set_property(function_name, property_name, value)
        return into

    @staticmethod
    def _properties(result: dict[str, StepProperties], name: str) -> StepProperties:
        if name not in result:
            result[name] = StepProperties(name)
        return result[name]


class MarkerResolver:
    """Layers declarative ``Step`` markers over descriptor metadata: the type's marker, then the entry point's."""

    def resolve(
        self, properties: StepProperties, implementation_type: type, entry_point: Callable[..., Any] | None = None
    ) -> StepProperties:
        resolved = properties.copy()
        resolved.configure(get_step_marker(implementation_type))
        if entry_point is not None:
            resolved.configure(get_step_marker(entry_point))
        return resolved


@dataclass(frozen=True)
class EntryPoint:
    """A classified entry point of an implementation type."""

    kind: DispatchKind
    function: Callable[..., Any]
    name: str | None = None


def _type_hints(obj: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(obj, include_extras=True)
    except Exception:
        # unresolvable forward references; fall back to the raw annotations
        if isinstance(obj, type):
            hints: dict[str, Any] = {}
            for klass in reversed(obj.__mro__):
                hints.update(getattr(klass, "__annotations__", {}))
            return hints
        return dict(getattr(obj, "__annotations__", {}))


def _split_annotated(hint: Any) -> tuple[Any, Argument | None]:
    if get_origin(hint) is Annotated:
        declared, *extras = get_args(hint)
        marker = next((extra for extra in extras if isinstance(extra, Argument)), None)
        return declared, marker
    return hint, None


def _positional_parameters(function: Callable[..., Any]) -> list[inspect.Parameter]:
    parameters = list(inspect.signature(function).parameters.values())[1:]
    return [
        p for p in parameters if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]


def is_mapping_type(tp: Any) -> bool:
    """True when a context parameter should receive the caller's mapping unchanged."""
    if tp in (Any, object, inspect.Parameter.empty):
        return True
    origin = get_origin(tp) or tp
    return isinstance(origin, type) and issubclass(origin, collections.abc.Mapping)


def ambient_attributes(implementation_type: type) -> tuple[str, ...]:
    """Returns the ambient attribute names an implementation type declares."""
    hints = _type_hints(implementation_type)
    return tuple(name for name in AMBIENT_ATTRIBUTES if name in hints or hasattr(implementation_type, name))


def schema_for_type(owner: type) -> ArgumentSchema:
    """Flattens the annotated attributes of a type and its bases into an ArgumentSchema.

    Private names, ClassVars and the ambient attributes are not bindable.
    """
    fields: dict[str, ArgumentField] = {}
    for attribute, hint in _type_hints(owner).items():
        if attribute.startswith("_") or attribute in AMBIENT_ATTRIBUTES:
            continue
        if hint is ClassVar or get_origin(hint) is ClassVar:
            continue
        declared, marker = _split_annotated(hint)
        name = marker.name if marker is not None and marker.name else attribute
        if name in fields:
            raise ConfigurationError(f"Duplicate argument name found on {owner.__qualname__}: {name}")
        fields[name] = ArgumentField(
            name=name,
            attribute=attribute,
            declared_type=declared,
            marker=marker,
            default=marker.default if marker is not None else None,
        )
    keyword_init = dataclasses.is_dataclass(owner) or issubclass(owner, msgspec.Struct)
    return ArgumentSchema(owner=owner, fields=fields, keyword_init=keyword_init)


def schema_for_method(owner: type, function: Callable[..., Any]) -> ArgumentSchema:
    """Describes the parameters of a method, skipping ``self``, in declaration order."""
    hints = _type_hints(function)
    fields: dict[str, ArgumentField] = {}
    parameters = list(inspect.signature(function).parameters.values())[1:]
    for parameter in parameters:
        if parameter.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        declared, marker = _split_annotated(hints.get(parameter.name, parameter.annotation))
        name = marker.name if marker is not None and marker.name else parameter.name
        if name in fields:
            raise ConfigurationError(f"Duplicate argument name found on {function.__qualname__}: {name}")
        optional = parameter.default is not inspect.Parameter.empty
        if marker is not None and marker.default is not None:
            default = marker.default
        else:
            default = parameter.default if optional else None
        fields[name] = ArgumentField(
            name=name,
            attribute=parameter.name,
            declared_type=declared,
            marker=marker,
            default=default,
            positional_only=parameter.kind is inspect.Parameter.POSITIONAL_ONLY,
            optional=optional,
        )
    return ArgumentSchema(owner=owner, fields=fields)


class DispatchSelector:
    """Classifies an implementation type into one of the three calling conventions.

    Precedence: a zero-argument ``call``, then the most derived single-argument ``apply`` in the MRO,
    then the ``@step`` marked methods of the class body. Results are cached per type.
    """

    def __init__(self):
        self._cache: dict[type, list[EntryPoint]] = {}

    def select(self, implementation_type: type) -> list[EntryPoint]:
        if implementation_type not in self._cache:
            self._cache[implementation_type] = self._select(implementation_type)
        return self._cache[implementation_type]

    def _select(self, implementation_type: type) -> list[EntryPoint]:
        if not isinstance(implementation_type, type):
            raise ConfigurationError(f"Step implementation {implementation_type!r} is not a class")
        call = self._find_call(implementation_type)
        if call is not None:
            return [EntryPoint(DispatchKind.CALLABLE, call)]
        apply = self._find_apply(implementation_type)
        if apply is not None:
            return [EntryPoint(DispatchKind.CONTEXT, apply)]
        methods = self._find_step_methods(implementation_type)
        if methods:
            return methods
        raise ConfigurationError(
            f"Step function class {implementation_type.__module__}.{implementation_type.__qualname__} does not have "
            f"a method {CALL_METHOD} or {APPLY_METHOD} nor has any methods marked with @step"
        )

    @staticmethod
    def _find_call(implementation_type: type) -> Callable[..., Any] | None:
        function = inspect.getattr_static(implementation_type, CALL_METHOD, None)
        if not inspect.isfunction(function):
            return None
        parameters = list(inspect.signature(function).parameters.values())[1:]
        required = [
            p
            for p in parameters
            if p.default is inspect.Parameter.empty
            and p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        ]
        return function if not required else None

    @staticmethod
    def _find_apply(implementation_type: type) -> Callable[..., Any] | None:
        # first class in the MRO defining a usable apply
        for klass in implementation_type.__mro__:
            if klass is object:
                break
            function = klass.__dict__.get(APPLY_METHOD)
            if inspect.isfunction(function) and len(_positional_parameters(function)) == 1:
                return function
        return None

    @staticmethod
    def _find_step_methods(implementation_type: type) -> list[EntryPoint]:
        methods: dict[str, EntryPoint] = {}
        for attribute, function in implementation_type.__dict__.items():
            if not inspect.isfunction(function):
                continue
            marker = get_step_marker(function)
            if marker is None:
                continue
            name = marker.name or attribute
            if name not in methods:
                methods[name] = EntryPoint(DispatchKind.METHOD, function, name)
        return list(methods.values())


class StepDiscovery:
    """Builds step functions from descriptor resources, declarative markers and the implementation types.

    Configuration errors skip the offending entry unless ``options.strict`` is set.
    """

    def __init__(
        self,
        locator: ResourceLocator,
        type_loader: TypeLoader,
        binder: Binder,
        options: LoaderOptions | None = None,
    ):
        self.locator = locator
        self.type_loader = type_loader
        self.binder = binder
        self.options = options if options is not None else LoaderOptions()
        self.merger = StepPropertiesMerger()
        self.markers = MarkerResolver()
        self.selector = DispatchSelector()

    def load_properties(self) -> dict[str, StepProperties]:
        """Merges every steps index resource in the search scope."""
        merged: dict[str, StepProperties] = {}
        for resource in self.locator.find(self.options.steps_path):
            logger.debug("Loading step descriptors from %s", resource.location)
            self.merger.merge(resource.entries, into=merged)
        return merged

    def load(self) -> dict[str, StepFunction]:
        """Returns every step function described in the search scope, keyed by name."""
        described = self.load_properties()
        functions: dict[str, StepFunction] = {}
        for name, properties in described.items():
            if not properties.type_name:
                continue
            try:
                implementation_type = self.type_loader.load(properties.type_name)
                functions.update(self.functions_for_type(properties, implementation_type, described))
            except ConfigurationError as e:
                if self.options.strict:
                    raise
                logger.error("Skipping step %s: %s", name, e)
        # fragments of @step methods have no typeName of their own
        for name, properties in described.items():
            if not properties.type_name and name not in functions:
                logger.warning("No typeName for step: %s", name)
        logger.debug("Loaded %d step functions", len(functions))
        return functions

    def load_types(self, implementation_types: Iterable[tuple[str, type]]) -> dict[str, StepFunction]:
        """Returns the step functions of types registered in code, merged with any descriptors for their names."""
        described = self.load_properties()
        functions: dict[str, StepFunction] = {}
        for name, implementation_type in implementation_types:
            properties = described.get(name, StepProperties(name))
            try:
                functions.update(self.functions_for_type(properties, implementation_type, described))
            except ConfigurationError as e:
                if self.options.strict:
                    raise
                logger.error("Skipping step %s: %s", name, e)
        return functions

    def load_function(self, name: str, implementation_type: type) -> StepFunction:
        """Returns the named step function of a known type; every failure is fatal."""
        described = self.load_properties()
        properties = described.get(name, StepProperties(name))
        functions = self.functions_for_type(properties, implementation_type, described)
        if name not in functions:
            raise FunctionNotFoundForType(name, implementation_type)
        return functions[name]

    def functions_for_type(
        self,
        properties: StepProperties,
        implementation_type: type,
        described: dict[str, StepProperties] | None = None,
    ) -> dict[str, StepFunction]:
        """Classifies a type and builds its step functions; ``@step`` methods yield one function each."""
        described = described or {}
        ambient = ambient_attributes(implementation_type)
        name = properties.name
        functions: dict[str, StepFunction] = {}
        for entry in self.selector.select(implementation_type):
            if entry.kind is DispatchKind.CALLABLE:
                schema = schema_for_type(implementation_type)
                metadata = self.build_metadata(name, properties, implementation_type, entry.function, schema)
                functions[name] = CallableStepFunction(metadata, entry.function, schema, self.binder, ambient)
            elif entry.kind is DispatchKind.CONTEXT:
                context_type = self._context_type(entry.function)
                schema = None if is_mapping_type(context_type) else schema_for_type(context_type)
                metadata = self.build_metadata(name, properties, implementation_type, entry.function, schema)
                functions[name] = ContextStepFunction(metadata, entry.function, schema, self.binder, ambient)
            else:
                # the type's own metadata, then whatever is described under the method's name
                method_properties = dataclasses.replace(properties.copy(), arguments={})
                if entry.name in described:
                    method_properties.merge(described[entry.name])
                schema = schema_for_method(implementation_type, entry.function)
                metadata = self.build_metadata(entry.name, method_properties, implementation_type, entry.function, schema)
                functions[entry.name] = MethodStepFunction(metadata, entry.function, schema, self.binder, ambient)
        return functions

    def build_metadata(
        self,
        name: str,
        properties: StepProperties,
        implementation_type: type,
        entry_point: Callable[..., Any],
        schema: ArgumentSchema | None,
    ) -> StepMetadata:
        """Merges descriptor and marker metadata for one entry point and validates the result."""
        resolved = self.markers.resolve(properties, implementation_type, entry_point)
        for resource in self.locator.find(self.options.arguments_path(name)):
            self.merger.merge_arguments(name, resource.entries, into=resolved)
        returns = _type_hints(entry_point).get("return", inspect.Parameter.empty)
        metadata = StepMetadata(
            name=name,
            display_name=resolved.display_name or name,
            description=resolved.description or "",
            return_type=TypeRef.of(returns),
            arguments=self._merge_arguments(name, schema, resolved.arguments),
            implementation_type=implementation_type,
        )
        validate_metadata(metadata)
        return metadata

    def resolve_type(self, reference: str) -> TypeRef:
        """Resolves a supplemental type reference, keeping only its name when it cannot be loaded."""
        try:
            return TypeRef.of(self.type_loader.load(reference))
        except ConfigurationError as e:
            logger.warning("Failed to resolve type %s: %s", reference, e)
            return TypeRef(name=reference)

    @staticmethod
    def _context_type(function: Callable[..., Any]) -> Any:
        parameter = _positional_parameters(function)[0]
        declared, _ = _split_annotated(_type_hints(function).get(parameter.name, parameter.annotation))
        if not is_mapping_type(declared) and not isinstance(declared, type):
            raise ConfigurationError(f"Cannot bind arguments to the context type {declared!r} of {function.__qualname__}")
        return declared

    def _merge_arguments(
        self,
        function_name: str,
        schema: ArgumentSchema | None,
        fragments: dict[str, ArgumentProperties],
    ) -> tuple[ArgumentMetadata, ...]:
        remaining = dict(fragments)
        arguments = []
        for arg in schema.values() if schema is not None else ():
            arguments.append(self._argument_metadata(arg, remaining.pop(arg.name, None)))
        for name in sorted(remaining):
            fragment = remaining[name]
            if not fragment.type_name:
                logger.debug("Ignoring argument %s of step %s without a type", name, function_name)
                continue
            arguments.append(
                ArgumentMetadata(
                    name=name,
                    display_name=fragment.display_name or name,
                    description=fragment.description or "",
                    declared_type=self.resolve_type(fragment.type_name),
                    default=fragment.default,
                )
            )
        return tuple(arguments)

    def _argument_metadata(self, arg: ArgumentField, fragment: ArgumentProperties | None) -> ArgumentMetadata:
        display_name = description = None
        declared_type = TypeRef.of(arg.declared_type)
        default = arg.default
        if fragment is not None:
            display_name = fragment.display_name
            description = fragment.description
            if default is None:
                default = fragment.default
            if fragment.type_name:
                supplemental = self.resolve_type(fragment.type_name)
                if supplemental.is_resolved:
                    declared_type = supplemental
        if arg.marker is not None:
            display_name = arg.marker.display_name or display_name
            description = arg.marker.description or description
        return ArgumentMetadata(
            name=arg.name,
            display_name=display_name or arg.name,
            description=description or "",
            declared_type=declared_type,
            default=default,
        )
