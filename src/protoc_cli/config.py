"""Generator configuration.

A GeneratorConfig is built once per protoc invocation and handed to the
resolver and the synthesizer. It is frozen and hashable so the naming
tables derived from it can be cached and shared between files.
"""

from __future__ import annotations

import keyword
from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, Tuple

from protoc_cli.models import GenerationError


@dataclass(frozen=True)
class SupportPackage:
    key: str
    import_path: str


# Modules every generated client imports, keyed by the concern they cover.
DEFAULT_SUPPORT_PACKAGES: Tuple[SupportPackage, ...] = (
    SupportPackage("argparse", "argparse"),  # command tree
    SupportPackage("auth", "protoc_cli.auth"),  # token and JWT credentials
    SupportPackage("grpc", "grpc"),  # transport and channel credentials
    SupportPackage("iocodec", "protoc_cli.iocodec"),  # request/response codecs
    SupportPackage("os", "os"),  # file paths
    SupportPackage("pydantic_settings", "pydantic_settings"),  # config from environment
    SupportPackage("ssl", "ssl"),  # server certificate fetch
    SupportPackage("sys", "sys"),  # process I/O
)

# Module-level names the templates define in every generated file.
GENERATED_NAMES: FrozenSet[str] = frozenset({"main", "_run"})

RESERVED_NAMES: FrozenSet[str] = frozenset(keyword.kwlist) | GENERATED_NAMES

_TRUE_VALUES = ("", "1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass(frozen=True)
class GeneratorConfig:
    support_packages: Tuple[SupportPackage, ...] = DEFAULT_SUPPORT_PACKAGES
    reserved_names: FrozenSet[str] = RESERVED_NAMES
    # Prepended to the module path of every generated pb2 import.
    import_prefix: str = ""
    # Treat a cross-package input type with no defining file as an error.
    strict_imports: bool = False

    @classmethod
    def from_parameter(cls, parameter: str) -> GeneratorConfig:
        """Build a config from a protoc parameter string such as
        ``import_prefix=gen.,strict_imports=true``.
        """
        config = cls()
        for key, value in _parse_parameter_string(parameter).items():
            if key == "import_prefix":
                config = replace(config, import_prefix=value)
            elif key == "strict_imports":
                config = replace(config, strict_imports=_parse_bool(key, value))
            else:
                raise GenerationError(f"unknown plugin parameter: {key!r}")
        return config


def _parse_parameter_string(parameter: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    if not parameter:
        return values
    for chunk in parameter.split(","):
        if not chunk:
            continue
        key, _, value = chunk.partition("=")
        key = key.strip()
        if not key:
            continue
        values[key] = value.strip()
    return values


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise GenerationError(f"invalid boolean for plugin parameter {key!r}: {value!r}")
