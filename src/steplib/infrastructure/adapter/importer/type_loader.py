import builtins
import importlib
import re
from typing import Any

from steplib.application.port import TypeLoader
from steplib.domain.exception import ConfigurationError

_GENERICS = re.compile(r"\s*[\[<].*$")


def strip_generics(reference: str) -> str:
    """Removes a generic suffix: ``list[str]`` becomes ``list``, ``java.util.List<String>`` becomes ``java.util.List``."""
    return _GENERICS.sub("", reference.strip())


class ImportlibTypeLoader(TypeLoader):
    """Resolves ``package.module:QualName`` or ``package.module.QualName`` references by importing them."""

    def load(self, reference: str) -> Any:
        name = strip_generics(reference)
        if not name:
            raise ConfigurationError(f"Empty type reference: {reference!r}")
        builtin = getattr(builtins, name, None)
        if isinstance(builtin, type):
            return builtin
        if ":" in name:
            module_name, _, qualname = name.partition(":")
            return self._resolve(self._import(module_name, reference), qualname, reference)
        # try the longest importable module prefix first
        parts = name.split(".")
        for idx in range(len(parts) - 1, 0, -1):
            module_name = ".".join(parts[:idx])
            try:
                module = importlib.import_module(module_name)
            except ModuleNotFoundError as e:
                # only a missing prefix means a shorter one may still be the module
                if e.name and (module_name == e.name or module_name.startswith(e.name + ".")):
                    continue
                raise ConfigurationError(f"Failed to load type {reference}: {e}") from e
            except Exception as e:
                raise ConfigurationError(f"Failed to load type {reference}: {e}") from e
            return self._resolve(module, ".".join(parts[idx:]), reference)
        raise ConfigurationError(f"Failed to load type {reference}: no importable module")

    @staticmethod
    def _import(module_name: str, reference: str) -> Any:
        try:
            return importlib.import_module(module_name)
        except Exception as e:
            raise ConfigurationError(f"Failed to load type {reference}: {e}") from e

    @staticmethod
    def _resolve(module: Any, qualname: str, reference: str) -> Any:
        target = module
        for attribute in qualname.split("."):
            try:
                target = getattr(target, attribute)
            except AttributeError as e:
                raise ConfigurationError(f"Failed to load type {reference}: {e}") from e
        return target
