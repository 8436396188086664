from enum import Enum


class SourceType(Enum):
    """Supported sources of step functions."""

    SEARCH_PATH = "search_path"
    IN_MEMORY = "in_memory"
