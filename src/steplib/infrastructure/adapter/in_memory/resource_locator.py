from typing import Mapping

from steplib.application.port import ResourceLocator
from steplib.domain.value_object import DescriptorResource
from steplib.infrastructure.adapter.filesystem.properties import parse_properties


class InMemoryResourceLocator(ResourceLocator):
    """Serves descriptor resources held in memory, keyed by resource name.

    Each resource is either properties text or a mapping of entries.
    """

    def __init__(self, resources: Mapping[str, list[str | Mapping[str, str]]] | None = None):
        self._resources: dict[str, list[str | Mapping[str, str]]] = {
            name: list(contents) for name, contents in (resources or {}).items()
        }

    def add(self, name: str, content: str | Mapping[str, str]) -> "InMemoryResourceLocator":
        self._resources.setdefault(name, []).append(content)
        return self

    def find(self, name: str) -> list[DescriptorResource]:
        resources = []
        for idx, content in enumerate(self._resources.get(name, [])):
            if isinstance(content, str):
                entries = parse_properties(content)
            else:
                entries = [(str(key), str(value)) for key, value in content.items()]
            resources.append(DescriptorResource(location=f"memory:{name}[{idx}]", entries=tuple(entries)))
        return resources
