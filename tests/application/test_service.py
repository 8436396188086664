"""
Tests for application services.

This module tests the application layer services including:
- StepPropertiesMerger
- MarkerResolver
- DispatchSelector
- Schema flattening
- StepDiscovery
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Any, ClassVar

import pytest

from steplib.application.adapter import (
    ArgumentBinder,
    CallableStepFunction,
    ContextStepFunction,
    MethodStepFunction,
)
from steplib.application.service import (
    DispatchSelector,
    MarkerResolver,
    StepDiscovery,
    StepProperties,
    StepPropertiesMerger,
    ambient_attributes,
    is_mapping_type,
    schema_for_method,
    schema_for_type,
)
from steplib.domain.exception import ConfigurationError, FunctionNotFoundForType
from steplib.domain.value_object import Argument, DispatchKind, LoaderOptions, step
from steplib.infrastructure.adapter.in_memory.resource_locator import InMemoryResourceLocator
from steplib.infrastructure.adapter.in_memory.type_loader import InMemoryTypeLoader


class Greeter:
    logger: logging.Logger
    name: Annotated[str | None, Argument(display_name="Name")] = None
    _secret: str = "hidden"
    registry: ClassVar[dict] = {}

    def call(self) -> str:
        return f"Hello {self.name}"


class LoudGreeter(Greeter):
    volume: int = 0


@dataclass
class Order:
    item: str
    amount: int = 1


class Ordering:
    def apply(self, context: Order) -> str:
        return f"{context.amount} x {context.item}"


class Passthrough:
    def apply(self, context) -> Any:
        return context


class GenericBase:
    def apply(self, context: dict) -> Any:
        return "generic"


class Specific(GenericBase):
    def apply(self, context: Order) -> str:
        return "specific"


class TypedBase:
    def apply(self, context: dict) -> str:
        return "base"


class UntypedOverride(TypedBase):
    def apply(self, context: dict):
        return "child"


class Both:
    def call(self) -> str:
        return "call"

    def apply(self, context: dict) -> str:
        return "apply"


@step(display_name="Shop functions", description="Things to buy")
class Shop:
    @step(display_name="Cheesey hello")
    def cheese(self, name: str, amount: Annotated[int, Argument(description="How much")]) -> str:
        return f"Hello {name} #{amount}"

    @step(name="ale")
    def beer(self, location: str) -> str:
        return f"beer:{location}"

    @step(name="ale")
    def stout(self, location: str) -> str:
        return "stout"

    def helper(self) -> None:
        pass


class Nothing:
    def run(self) -> None:
        pass


class TestStepPropertiesMerger:
    """Test cases for StepPropertiesMerger."""

    def setup_method(self):
        """Setup test fixtures."""
        self.merger = StepPropertiesMerger()

    def test_function_properties(self):
        """Test function-level properties are collected per function."""
        result = self.merger.merge(
            [("hello.typeName", "samples:HelloFunction"), ("hello.displayName", "Hello"), ("hello.description", "Hi")]
        )

        assert result["hello"].type_name == "samples:HelloFunction"
        assert result["hello"].display_name == "Hello"
        assert result["hello"].description == "Hi"

    def test_argument_properties(self):
        """Test three part keys become argument fragments."""
        result = self.merger.merge([("cheese.amount.displayName", "Amount"), ("cheese.amount.type", "int")])

        argument = result["cheese"].arguments["amount"]
        assert argument.display_name == "Amount"
        assert argument.type_name == "int"

    def test_dotted_argument_name(self):
        """Test the function ends at the first dot and the property starts after the last."""
        result = self.merger.merge([("cheese.size.unit.displayName", "Unit")])

        assert set(result) == {"cheese"}
        assert result["cheese"].arguments["size.unit"].display_name == "Unit"

    def test_index_shorthand(self):
        """Test a key without a property is a type reference in the steps index."""
        result = self.merger.merge([("anotherFn", "samples:AnotherFunction")])

        assert result["anotherFn"].type_name == "samples:AnotherFunction"

    def test_shorthand_ignored_outside_index(self):
        """Test keys without a property are ignored when not merging an index."""
        assert self.merger.merge([("anotherFn", "samples:AnotherFunction")], index=False) == {}

    def test_malformed_keys_ignored(self):
        """Test keys with an empty function or property are ignored."""
        assert self.merger.merge([(".displayName", "x"), ("hello.", "x")]) == {}

    def test_unknown_property_warns(self, caplog):
        """Test unknown property names are logged and ignored."""
        with caplog.at_level(logging.WARNING):
            result = self.merger.merge([("hello.colour", "blue"), ("hello.name.colour", "red")])

        assert result["hello"].display_name is None
        assert "unknown property colour" in caplog.text

    def test_later_entries_win(self):
        """Test later entries for the same key overwrite earlier ones."""
        result = self.merger.merge([("hello.displayName", "First"), ("hello.displayName", "Second")])

        assert result["hello"].display_name == "Second"

    def test_merge_order_independent_for_disjoint_fields(self):
        """Test merging disjoint fragments in either order gives the same result."""
        a = [("hello.displayName", "Hello"), ("hello.name.description", "Who")]
        b = [("hello.description", "Greets"), ("hello.name.type", "str")]

        first = self.merger.merge(b, into=self.merger.merge(a))
        second = self.merger.merge(a, into=self.merger.merge(b))

        assert first == second

    def test_merge_is_idempotent(self):
        """Test merging the same fragment twice changes nothing."""
        entries = [("hello.displayName", "Hello"), ("hello.name.type", "str")]

        once = self.merger.merge(entries)
        twice = self.merger.merge(entries, into=self.merger.merge(entries))

        assert once == twice

    def test_merge_arguments(self):
        """Test argument resources use two part keys."""
        properties = StepProperties("cheese")

        self.merger.merge_arguments(
            "cheese", [("amount.displayName", "Amount"), ("amount.default", "1"), ("orphan", "x")], properties
        )

        assert properties.arguments["amount"].display_name == "Amount"
        assert properties.arguments["amount"].default == "1"
        assert "orphan" not in properties.arguments


class TestStepProperties:
    """Test cases for StepProperties."""

    def test_merge_never_blanks(self):
        """Test unset fields of the overlay keep existing values."""
        base = StepProperties("hello", display_name="Hello", description="Hi")
        base.merge(StepProperties("hello", description="Greets"))

        assert base.display_name == "Hello"
        assert base.description == "Greets"

    def test_copy_is_deep(self):
        """Test copies do not share argument fragments."""
        base = StepProperties("hello")
        base.argument("name").display_name = "Name"

        copied = base.copy()
        copied.argument("name").display_name = "Other"

        assert base.arguments["name"].display_name == "Name"


class TestMarkerResolver:
    """Test cases for MarkerResolver."""

    def setup_method(self):
        """Setup test fixtures."""
        self.resolver = MarkerResolver()

    def test_type_marker_overrides(self):
        """Test non-empty type marker fields override descriptor values."""
        properties = StepProperties("shop", display_name="From file", description="From file")

        resolved = self.resolver.resolve(properties, Shop)

        assert resolved.display_name == "Shop functions"
        assert resolved.description == "Things to buy"
        assert properties.display_name == "From file"

    def test_empty_marker_fields_never_blank(self):
        """Test empty marker fields keep descriptor values."""

        @step(display_name="Marked")
        class Marked:
            pass

        resolved = self.resolver.resolve(StepProperties("m", description="From file"), Marked)

        assert resolved.display_name == "Marked"
        assert resolved.description == "From file"

    def test_entry_point_marker_applied_last(self):
        """Test the method marker wins over the type marker."""
        resolved = self.resolver.resolve(StepProperties("cheese"), Shop, Shop.cheese)

        assert resolved.display_name == "Cheesey hello"
        assert resolved.description == "Things to buy"

    def test_unmarked_type(self):
        """Test an unmarked type leaves descriptor values alone."""
        resolved = self.resolver.resolve(StepProperties("hello", display_name="Hello"), Greeter)

        assert resolved.display_name == "Hello"


class TestSchemas:
    """Test cases for schema flattening."""

    def test_schema_for_type_skips_private_classvar_and_ambient(self):
        """Test only public instance attributes are bindable."""
        schema = schema_for_type(Greeter)

        assert list(schema.fields) == ["name"]
        assert schema.fields["name"].marker.display_name == "Name"
        assert schema.keyword_init is False

    def test_schema_for_type_includes_bases(self):
        """Test attributes of base classes are flattened in."""
        assert set(schema_for_type(LoudGreeter).fields) == {"name", "volume"}

    def test_schema_for_dataclass_uses_keywords(self):
        """Test dataclass holders are constructed with keywords."""
        assert schema_for_type(Order).keyword_init is True

    def test_schema_for_method(self):
        """Test method parameters in declaration order, without self."""
        schema = schema_for_method(Shop, Shop.cheese)

        assert [field.name for field in schema.values()] == ["name", "amount"]
        assert schema.fields["amount"].declared_type is int
        assert schema.fields["amount"].marker.description == "How much"

    def test_ambient_attributes(self):
        """Test declared ambient attributes are detected."""
        assert ambient_attributes(Greeter) == ("logger",)
        assert ambient_attributes(Order) == ()

    def test_is_mapping_type(self):
        """Test which context types receive the caller mapping."""
        assert is_mapping_type(dict)
        assert is_mapping_type(dict[str, Any])
        assert is_mapping_type(Any)
        assert not is_mapping_type(Order)


class TestDispatchSelector:
    """Test cases for DispatchSelector."""

    def setup_method(self):
        """Setup test fixtures."""
        self.selector = DispatchSelector()

    def test_callable(self):
        """Test a zero-argument call method."""
        [entry] = self.selector.select(Greeter)

        assert entry.kind is DispatchKind.CALLABLE
        assert entry.function is Greeter.call

    def test_call_wins_over_apply(self):
        """Test call takes precedence over apply."""
        [entry] = self.selector.select(Both)

        assert entry.kind is DispatchKind.CALLABLE

    def test_context(self):
        """Test a single-argument apply method."""
        [entry] = self.selector.select(Ordering)

        assert entry.kind is DispatchKind.CONTEXT

    def test_apply_most_derived_wins(self):
        """Test an overriding apply is chosen over the inherited one."""
        [entry] = self.selector.select(Specific)

        assert entry.function is Specific.apply

    def test_apply_override_without_annotations_wins(self):
        """Test an unannotated override still replaces an annotated base apply."""
        [entry] = self.selector.select(UntypedOverride)

        assert entry.function is UntypedOverride.apply

    def test_methods(self):
        """Test marked methods, first duplicate name kept."""
        entries = self.selector.select(Shop)

        assert [(entry.kind, entry.name) for entry in entries] == [
            (DispatchKind.METHOD, "cheese"),
            (DispatchKind.METHOD, "ale"),
        ]
        assert entries[1].function is Shop.beer

    def test_no_entry_point(self):
        """Test a type without any calling convention."""
        with pytest.raises(ConfigurationError, match="does not have a method call or apply"):
            self.selector.select(Nothing)

    def test_not_a_class(self):
        """Test non-class implementations are rejected."""
        with pytest.raises(ConfigurationError):
            self.selector.select(len)

    def test_results_cached(self):
        """Test the classification is computed once per type."""
        assert self.selector.select(Shop) is self.selector.select(Shop)


class TestStepDiscovery:
    """Test cases for StepDiscovery."""

    def make_discovery(self, steps: str = "", options: LoaderOptions | None = None, **arguments: str):
        locator = InMemoryResourceLocator()
        locator.add("steplib.d/steps.properties", steps)
        for function_name, content in arguments.items():
            locator.add(f"steplib.d/{function_name}-arguments.properties", content)
        types = InMemoryTypeLoader(
            {
                "Greeter": Greeter,
                "Ordering": Ordering,
                "Passthrough": Passthrough,
                "Shop": Shop,
                "Nothing": Nothing,
                "UntypedOverride": UntypedOverride,
            }
        )
        return StepDiscovery(locator, types, ArgumentBinder(), options)

    def test_load_all_variants(self):
        """Test each calling convention yields its step function variant."""
        discovery = self.make_discovery(
            "greet.typeName=Greeter\norder=Ordering\npass=Passthrough\nshop.typeName=Shop\n"
        )

        functions = discovery.load()

        assert isinstance(functions["greet"], CallableStepFunction)
        assert isinstance(functions["order"], ContextStepFunction)
        assert isinstance(functions["pass"], ContextStepFunction)
        assert isinstance(functions["cheese"], MethodStepFunction)
        assert isinstance(functions["ale"], MethodStepFunction)
        assert "shop" not in functions

    def test_callable_metadata(self):
        """Test descriptor, marker and argument resource metadata are merged."""
        discovery = self.make_discovery(
            "greet.typeName=Greeter\ngreet.description=Says hello\n",
            greet="name.description=Who to greet\n",
        )

        metadata = discovery.load()["greet"].metadata

        assert metadata.display_name == "greet"
        assert metadata.description == "Says hello"
        assert metadata.return_type.resolved is str
        assert metadata.argument("name").display_name == "Name"
        assert metadata.argument("name").description == "Who to greet"
        assert metadata.prototype() == "greet(str | None name) str"

    def test_context_metadata_from_holder(self):
        """Test the holder fields describe the arguments of an apply function."""
        metadata = self.make_discovery("order=Ordering").load()["order"].metadata

        assert metadata.argument_names() == ["item", "amount"]
        assert metadata.prototype() == "order(str item, int amount) str"

    def test_mapping_context_arguments_from_descriptors(self):
        """Test typed argument fragments describe mapping contexts; untyped ones are dropped."""
        discovery = self.make_discovery(
            "pass=Passthrough\npass.size.type=int\npass.size.displayName=Size\npass.colour.displayName=Colour\n"
        )

        metadata = discovery.load()["pass"].metadata

        assert metadata.argument_names() == ["size"]
        assert metadata.argument("size").declared_type.resolved is int

    def test_unresolvable_argument_type_kept_by_name(self):
        """Test an argument type that cannot be loaded keeps its textual name."""
        discovery = self.make_discovery("pass=Passthrough\npass.when.type=com.acme.Missing\n")

        argument = discovery.load()["pass"].metadata.argument("when")

        assert argument.declared_type.name == "com.acme.Missing"
        assert not argument.declared_type.is_resolved

    def test_method_metadata(self):
        """Test method functions take the class metadata then their own."""
        discovery = self.make_discovery(
            "shop.typeName=Shop\n",
            cheese="amount.displayName=Amount\n",
            ale="location.description=Where to look\n",
        )

        functions = discovery.load()

        cheese = functions["cheese"].metadata
        assert cheese.display_name == "Cheesey hello"
        assert cheese.description == "Things to buy"
        assert cheese.argument("amount").display_name == "Amount"
        assert cheese.argument("amount").description == "How much"
        assert cheese.prototype() == "cheese(str name, int amount) str"
        assert functions["ale"].metadata.argument("location").description == "Where to look"
        assert functions["ale"].metadata.display_name == "Shop functions"

    def test_invalid_entries_skipped(self, caplog):
        """Test entries that cannot be loaded are logged and skipped."""
        discovery = self.make_discovery("greet.typeName=Greeter\nbroken.typeName=Nothing\nmissing.typeName=no.such.Type\n")

        with caplog.at_level(logging.ERROR):
            functions = discovery.load()

        assert set(functions) == {"greet"}
        assert "Skipping step broken" in caplog.text
        assert "Skipping step missing" in caplog.text

    def test_invokes_overriding_apply(self):
        """Test the loaded function runs the subclass apply."""
        function = self.make_discovery("child=UntypedOverride\n").load()["child"]

        assert function.invoke({}) == "child"

    def test_module_failing_at_import_skipped(self, tmp_path, monkeypatch, caplog):
        """Test a type whose module raises at import is skipped and the rest still load."""
        (tmp_path / "steplib_broken_step.py").write_text('raise RuntimeError("boom at import")\n', encoding="utf-8")
        monkeypatch.syspath_prepend(tmp_path)
        discovery = self.make_discovery("greet.typeName=Greeter\nbad.typeName=steplib_broken_step.Bad\n")

        with caplog.at_level(logging.ERROR):
            functions = discovery.load()

        assert set(functions) == {"greet"}
        assert "Skipping step bad" in caplog.text

    def test_strict_raises(self):
        """Test strict loading fails on the first bad entry."""
        discovery = self.make_discovery("broken.typeName=Nothing\n", options=LoaderOptions(strict=True))

        with pytest.raises(ConfigurationError):
            discovery.load()

    def test_fragment_without_type_warns(self, caplog):
        """Test a described name that is neither typed nor a method is reported."""
        discovery = self.make_discovery("orphan.displayName=Orphan\n")

        with caplog.at_level(logging.WARNING):
            assert discovery.load() == {}

        assert "No typeName for step: orphan" in caplog.text

    def test_load_types(self):
        """Test types registered in code merge descriptors under their name."""
        discovery = self.make_discovery("greet.displayName=Greeting\n")

        functions = discovery.load_types([("greet", Greeter)])

        assert functions["greet"].metadata.display_name == "Greeting"

    def test_load_function(self):
        """Test loading one named function of a known type."""
        function = self.make_discovery().load_function("cheese", Shop)

        assert function.invoke({"name": "James", "amount": 69}) == "Hello James #69"

    def test_load_function_missing_name(self):
        """Test a name the type does not provide."""
        with pytest.raises(FunctionNotFoundForType):
            self.make_discovery().load_function("wine", Shop)

    def test_load_function_configuration_error(self):
        """Test configuration errors are always fatal for load_function."""
        with pytest.raises(ConfigurationError):
            self.make_discovery().load_function("nothing", Nothing)

    def test_duplicate_argument_names_rejected(self):
        """Test two parameters bound under the same name are a configuration error."""

        class Clash:
            @step
            def clash(self, a: Annotated[str, Argument(name="x")], b: Annotated[str, Argument(name="x")]) -> str:
                return a + b

        with pytest.raises(ConfigurationError, match="Duplicate argument name"):
            self.make_discovery().load_function("clash", Clash)
