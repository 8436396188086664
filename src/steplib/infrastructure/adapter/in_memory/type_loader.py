from typing import Any

from steplib.application.port import TypeLoader
from steplib.infrastructure.adapter.importer.type_loader import ImportlibTypeLoader, strip_generics


class InMemoryTypeLoader(TypeLoader):
    """Resolves references from an in-memory table, falling back to importing them."""

    def __init__(self, types: dict[str, Any] | None = None, fallback: TypeLoader | None = None):
        self._registry: dict[str, Any] = dict(types or {})
        self.fallback = fallback if fallback is not None else ImportlibTypeLoader()

    def register(self, reference: str, tp: Any) -> "InMemoryTypeLoader":
        self._registry[reference] = tp
        return self

    def load(self, reference: str) -> Any:
        name = strip_generics(reference)
        if name in self._registry:
            return self._registry[name]
        return self.fallback.load(reference)
