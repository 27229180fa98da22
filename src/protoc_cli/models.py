from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple


class GenerationError(Exception):
    """Raised when a proto file cannot be turned into a client module."""


def import_statement(import_path: str, alias: str) -> str:
    """Build the Python import statement that binds ``import_path`` to ``alias``."""
    parent, _, name = import_path.rpartition(".")
    if parent:
        line = f"from {parent} import {name}"
    else:
        line = f"import {name}"
    if name != alias:
        line += f" as {alias}"
    return line


@dataclass(frozen=True)
class MethodUnit:
    name: str
    input_type: str
    output_type: str = ""
    client_streaming: bool = False
    server_streaming: bool = False


@dataclass(frozen=True)
class ServiceUnit:
    name: str
    file_name: str
    methods: Tuple[MethodUnit, ...] = ()


@dataclass(frozen=True)
class FileUnit:
    name: str
    package: str
    services: Tuple[ServiceUnit, ...] = ()
    message_types: Tuple[str, ...] = ()
    imports: Tuple[FileUnit, ...] = ()

    def defines(self, full_name: str) -> bool:
        return full_name in self.message_types


@dataclass(frozen=True)
class TypeReference:
    """A method input type split into import alias, package and bare name."""

    alias: str
    package: str
    type_name: str


@dataclass(frozen=True)
class ImportBinding:
    key: str
    import_path: str
    alias: str

    @property
    def statement(self) -> str:
        return import_statement(self.import_path, self.alias)


@dataclass(frozen=True)
class CrossPackageImport:
    alias: str
    package: str
    module: str

    @property
    def statement(self) -> str:
        return import_statement(self.module, self.alias)


@dataclass(frozen=True)
class FileImports:
    """Every name a generated module needs, resolved for one FileUnit."""

    support: Tuple[ImportBinding, ...]
    messages: ImportBinding
    services: ImportBinding
    cross_package: Tuple[CrossPackageImport, ...] = ()
    input_types: Dict[Tuple[str, str], str] = field(default_factory=dict)

    def alias(self, key: str) -> str:
        for binding in self.support:
            if binding.key == key:
                return binding.alias
        raise KeyError(key)

    def input_type(self, service: ServiceUnit, method: MethodUnit) -> str:
        return self.input_types[(service.name, method.name)]


@dataclass(frozen=True)
class GeneratedFile:
    name: str
    content: str
