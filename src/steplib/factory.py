from pathlib import Path
from typing import Iterable

from steplib.application.adapter import ArgumentBinder
from steplib.application.service import StepDiscovery
from steplib.domain.port import StepFunction
from steplib.domain.service import default_step_name
from steplib.domain.value_object import LoaderOptions
from steplib.infrastructure.adapter.filesystem.resource_locator import SearchPathResourceLocator
from steplib.infrastructure.adapter.importer.type_loader import ImportlibTypeLoader
from steplib.infrastructure.adapter.in_memory.resource_locator import InMemoryResourceLocator
from steplib.infrastructure.adapter.in_memory.type_loader import InMemoryTypeLoader
from steplib.infrastructure.provider import default_search_path
from steplib.registry import Registry
from steplib.source import SourceType


def _discovery(search_path: Iterable[str | Path] | None, options: LoaderOptions) -> StepDiscovery:
    locator = SearchPathResourceLocator(
        search_path if search_path is not None else default_search_path(), encoding=options.encoding
    )
    return StepDiscovery(locator, ImportlibTypeLoader(), ArgumentBinder(), options)


def create(
    source: SourceType,
    steps: list[type] | None = None,
    search_path: Iterable[str | Path] | None = None,
    options: LoaderOptions | None = None,
) -> Registry:
    """
    Factory function to create a Registry from the specified source.

    Args:
        source: Where step functions come from
        steps: Implementation types to register directly (IN_MEMORY only)
        search_path: Directories holding descriptor resources
        options: Resource names and error policy

    Returns:
        A read-only Registry

    Raises:
        ValueError: If the source type is unsupported
    """
    options = options if options is not None else LoaderOptions()

    if source == SourceType.SEARCH_PATH:
        return Registry(_discovery(search_path, options).load())

    elif source == SourceType.IN_MEMORY:
        steps = steps or []
        named = [(default_step_name(cls), cls) for cls in steps]
        locator = (
            SearchPathResourceLocator(search_path, encoding=options.encoding)
            if search_path is not None
            else InMemoryResourceLocator()
        )
        type_loader = InMemoryTypeLoader({f"{cls.__module__}:{cls.__qualname__}": cls for cls in steps})
        discovery = StepDiscovery(locator, type_loader, ArgumentBinder(), options)
        return Registry(discovery.load_types(named))

    else:
        raise ValueError(f"Unsupported source: {source}")


def load(search_path: Iterable[str | Path] | None = None, options: LoaderOptions | None = None) -> Registry:
    """Loads every step function described by the descriptor resources on the search path."""
    return create(SourceType.SEARCH_PATH, search_path=search_path, options=options)


def load_function(
    name: str,
    implementation_type: type,
    search_path: Iterable[str | Path] | None = None,
    options: LoaderOptions | None = None,
) -> StepFunction:
    """
    Loads a single named step function of a known implementation type.

    Unlike load(), configuration errors are raised rather than skipped.

    Raises:
        ConfigurationError: If the type matches no calling convention
        FunctionNotFoundForType: If the type provides no function with that name
    """
    options = options if options is not None else LoaderOptions()
    return _discovery(search_path, options).load_function(name, implementation_type)
