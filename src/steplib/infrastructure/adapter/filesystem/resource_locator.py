import logging
from pathlib import Path
from typing import Iterable

from steplib.application.port import ResourceLocator
from steplib.domain.exception import ConfigurationError
from steplib.domain.value_object import DescriptorResource
from steplib.infrastructure.adapter.filesystem.properties import parse_properties

logger = logging.getLogger(__name__)


class SearchPathResourceLocator(ResourceLocator):
    """Finds descriptor resources under every directory of a search path.

    Resources are returned in lexicographic order of their resolved path so the merge order
    does not depend on the order of the search path; later resources win.
    """

    def __init__(self, search_path: Iterable[str | Path], encoding: str = "utf-8"):
        self.search_path = [Path(entry) for entry in search_path]
        self.encoding = encoding

    def find(self, name: str) -> list[DescriptorResource]:
        found: dict[str, Path] = {}
        for directory in self.search_path:
            candidate = directory / name
            if candidate.is_file():
                found.setdefault(str(candidate.resolve()), candidate)
        return [self._read(location) for location in sorted(found)]

    def _read(self, location: str) -> DescriptorResource:
        try:
            text = Path(location).read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Failed to load {location} due to: {e}") from e
        entries = parse_properties(text)
        logger.debug("Read %d entries from %s", len(entries), location)
        return DescriptorResource(location=location, entries=tuple(entries))
