import sys
from pathlib import Path
from types import ModuleType


def default_search_path() -> list[Path]:
    """Returns the directories on ``sys.path``, the scope descriptor resources are looked up in by default."""
    return [Path(entry) for entry in sys.path if entry and Path(entry).is_dir()]


def package_search_path(*packages: ModuleType) -> list[Path]:
    """Returns the directories of the given imported packages."""
    directories = []
    for package in packages:
        for location in getattr(package, "__path__", []):
            directories.append(Path(location))
    return directories
