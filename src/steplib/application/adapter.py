import inspect
import logging
from pathlib import Path
from typing import Any, Callable

import msgspec

from steplib.application.port import Binder
from steplib.domain.entity import StepMetadata, type_name
from steplib.domain.exception import BindingError, InvocationError
from steplib.domain.port import StepFunction
from steplib.domain.value_object import ArgumentField, ArgumentSchema, DispatchKind

AMBIENT_ATTRIBUTES = ("logger", "current_dir")


class InvocationContext:
    """Holds the ambient state injected into every freshly created step implementation."""

    def __init__(self, logger: logging.Logger | None = None, current_dir: Path | str | None = None):
        self.logger = logger if logger is not None else logging.getLogger("steplib.step")
        self.current_dir = Path(current_dir) if current_dir is not None else Path(".")

    def ambient(self, name: str) -> Any:
        """Returns the ambient value injected under the given attribute name."""
        if name == "logger":
            return self.logger
        if name == "current_dir":
            return self.current_dir
        raise KeyError(f"Unknown ambient attribute: {name}")


class ArgumentBinder(Binder):
    """Binds caller arguments (accepting mixed types) to step implementations with type coercion.

    Values are converted to the declared type of the field they bind to, so strings coming from
    forms or command lines become ints, floats and bools where the implementation asks for them.
    """

    def assign(self, target: Any, schema: ArgumentSchema, arguments: dict[str, Any] | None) -> Any:
        """Assigns each argument to the attribute the schema maps it to; unknown names are an error."""
        for name, value in (arguments or {}).items():
            field = schema.fields.get(name)
            if field is None:
                raise BindingError(name, schema.owner, value, "no such property")
            coerced = self.coerce(field, value, schema.owner)
            try:
                setattr(target, field.attribute, coerced)
            except (AttributeError, TypeError) as e:
                raise BindingError(name, schema.owner, value, str(e)) from e
        return target

    def construct(self, schema: ArgumentSchema, arguments: dict[str, Any] | None) -> Any:
        """Creates a fresh holder of ``schema.owner``.

        Dataclasses and msgspec Structs are created with keyword arguments so required fields are honoured;
        any other class is created without arguments and then populated attribute by attribute.
        """
        holder_type = schema.owner
        if not schema.keyword_init:
            try:
                holder = holder_type()
            except Exception as e:
                raise BindingError(holder_type.__name__, holder_type, arguments, f"could not instantiate: {e}") from e
            return self.assign(holder, schema, arguments)

        bound: dict[str, Any] = {}
        for name, value in (arguments or {}).items():
            field = schema.fields.get(name)
            if field is None:
                raise BindingError(name, holder_type, value, "no such property")
            bound[field.attribute] = self.coerce(field, value, holder_type)
        try:
            return holder_type(**bound)
        except (TypeError, ValueError) as e:
            raise BindingError(holder_type.__name__, holder_type, arguments, f"could not instantiate: {e}") from e

    def bind_parameters(
        self, schema: ArgumentSchema, arguments: dict[str, Any] | None
    ) -> tuple[list[Any], dict[str, Any]]:
        """Binds arguments to method parameters by name.

        Parameters without a supplied value are passed as ``None`` unless the signature gives them a default,
        in which case they are left out of the call. Arguments matching no parameter are ignored.
        """
        arguments = arguments or {}
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for field in schema.values():
            if field.name in arguments:
                value = self.coerce(field, arguments[field.name], schema.owner)
            elif field.optional and not field.positional_only:
                continue
            else:
                value = None
            if field.positional_only:
                args.append(value)
            else:
                kwargs[field.attribute] = value
        return args, kwargs

    def coerce(self, field: ArgumentField, value: Any, owner: Any) -> Any:
        """Coerces a value to the field's declared type, raising BindingError when it cannot."""
        try:
            return self._coerce(value, field.declared_type)
        except (msgspec.ValidationError, TypeError, ValueError) as e:
            raise BindingError(field.name, owner, value, str(e)) from e

    def _coerce(self, value: Any, target_type: Any) -> Any:
        """Coerces a value to the target type, handling Optional and Union types through msgspec."""
        if value is None or target_type in (Any, object, None, inspect.Parameter.empty):
            return value
        if isinstance(value, bool) and target_type in (int, float):
            raise msgspec.ValidationError(f"Expected `{type_name(target_type)}`, got `bool`")
        # If already the right type, return as-is
        if isinstance(target_type, type) and isinstance(value, target_type):
            return value
        try:
            return msgspec.convert(value, type=target_type, strict=False)
        except msgspec.ValidationError:
            raise
        except TypeError:
            # msgspec cannot describe this type; fall back to an instance check
            if isinstance(target_type, type):
                raise msgspec.ValidationError(
                    f"Expected `{type_name(target_type)}`, got `{type(value).__name__}`"
                ) from None
            return value


class StepFunctionSupport(StepFunction):
    """Shared creation, injection and invocation logic of the dispatch variants."""

    def __init__(
        self,
        metadata: StepMetadata,
        entry_point: Callable[..., Any],
        schema: ArgumentSchema | None,
        binder: Binder,
        ambient: tuple[str, ...] = (),
    ):
        self._metadata = metadata
        self.implementation_type = metadata.implementation_type
        self.entry_point = entry_point
        self.schema = schema
        self.binder = binder
        self.ambient = ambient

    def __repr__(self) -> str:
        owner = getattr(self.implementation_type, "__qualname__", "")
        prefix = f"{owner}::" if owner else ""
        return f"{type(self).__name__}{{{prefix}{self.name}()}}"

    @property
    def metadata(self) -> StepMetadata:
        return self._metadata

    @property
    def entry_point_name(self) -> str:
        return f"{self.implementation_type.__module__}.{self.entry_point.__qualname__}"

    def invoke(self, arguments: dict[str, Any] | None, context: "InvocationContext | None" = None) -> Any:
        instance = self.create_instance(context)
        args, kwargs = self.bind(instance, arguments)
        try:
            return self.entry_point(instance, *args, **kwargs)
        except Exception as e:
            raise InvocationError(self.name, self.entry_point_name, e) from e

    def describe_default_arguments(
        self, arguments: dict[str, Any] | None, context: "InvocationContext | None" = None
    ) -> dict[str, Any]:
        instance = self.create_instance(context)
        holder = self.create_arguments_object(instance, arguments)
        return self.describe(holder)

    def create_instance(self, context: "InvocationContext | None") -> Any:
        """Creates a fresh implementation instance and injects the ambient state into it."""
        context = context if context is not None else InvocationContext()
        try:
            instance = self.implementation_type()
        except Exception as e:
            raise InvocationError(self.name, f"{self.implementation_type.__qualname__}()", e) from e
        for attribute in self.ambient:
            value = context.ambient(attribute)
            if value is None:
                continue
            try:
                setattr(instance, attribute, value)
            except (AttributeError, TypeError) as e:
                raise BindingError(attribute, self.implementation_type, value, str(e)) from e
        return instance

    def describe(self, holder: Any) -> dict[str, Any]:
        """Returns the values of every schema field on the holder, using presentation defaults for unset ones."""
        values: dict[str, Any] = {}
        for field in self.schema.values() if self.schema is not None else ():
            value = getattr(holder, field.attribute, None)
            values[field.name] = value if value is not None else field.default
        return values

    def bind(self, instance: Any, arguments: dict[str, Any] | None) -> tuple[list[Any], dict[str, Any]]:
        """Returns the positional and keyword arguments the entry point is called with."""
        raise NotImplementedError

    def create_arguments_object(self, instance: Any, arguments: dict[str, Any] | None) -> Any:
        """Returns the object holding the bound arguments."""
        raise NotImplementedError


class CallableStepFunction(StepFunctionSupport):
    """A step implemented by a zero-argument ``call`` method; arguments become attributes of the instance."""

    kind = DispatchKind.CALLABLE

    def bind(self, instance, arguments):
        self.binder.assign(instance, self.schema, arguments)
        return [], {}

    def create_arguments_object(self, instance, arguments):
        return self.binder.assign(instance, self.schema, arguments)


class ContextStepFunction(StepFunctionSupport):
    """A step implemented by a single-argument ``apply`` method.

    The argument is either the caller's mapping itself or a holder object built from it,
    depending on what ``apply`` declares. ``schema`` is None in the mapping case.
    """

    kind = DispatchKind.CONTEXT

    def bind(self, instance, arguments):
        return [self.create_arguments_object(instance, arguments)], {}

    def create_arguments_object(self, instance, arguments):
        if self.schema is None:
            return arguments if arguments is not None else {}
        return self.binder.construct(self.schema, arguments)

    def describe(self, holder):
        if self.schema is None:
            return dict(holder)
        return super().describe(holder)


class MethodStepFunction(StepFunctionSupport):
    """A step implemented by an ordinary method marked with ``@step``; arguments bind to its parameters."""

    kind = DispatchKind.METHOD

    def bind(self, instance, arguments):
        return self.binder.bind_parameters(self.schema, arguments)

    def create_arguments_object(self, instance, arguments):
        args, kwargs = self.binder.bind_parameters(self.schema, arguments)
        positional = iter(args)
        values: dict[str, Any] = {}
        for field in self.schema.values():
            if field.positional_only:
                values[field.name] = next(positional)
            else:
                values[field.name] = kwargs.get(field.attribute)
        return values

    def describe(self, holder):
        return {
            field.name: holder[field.name] if holder[field.name] is not None else field.default
            for field in self.schema.values()
        }
