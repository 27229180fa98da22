"""Identifier and import naming for generated client modules.

Support modules get aliases that depend only on the GeneratorConfig, so the
table is computed once and shared by every file of a run. Message modules
referenced by method input types get aliases derived from their package
path, assigned in sorted module order so regenerated output never depends
on the order services or methods were declared in.
"""

from __future__ import annotations

import functools
import logging
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from protoc_cli.config import GeneratorConfig
from protoc_cli.models import (
    CrossPackageImport,
    FileImports,
    FileUnit,
    GenerationError,
    ImportBinding,
    TypeReference,
)

logger = logging.getLogger(__name__)

MESSAGES_SUFFIX = "_pb2"
SERVICES_SUFFIX = "_pb2_grpc"
CLIENT_SUFFIX = "_pb2_cli"


def camel_case(name: str) -> str:
    """Convert a proto name to CamelCase the way protoc-gen-go does.

    An interior underscore followed by a lower case letter is dropped and the
    letter upper-cased; a leading underscore becomes ``X``:
    ``_my_field_name_2`` -> ``XMyFieldName_2``.
    """
    if not name:
        return name
    out: List[str] = []
    i = 0
    if name[0] == "_":
        out.append("X")
        i = 1
    while i < len(name):
        c = name[i]
        if c == "_" and i + 1 < len(name) and name[i + 1].islower():
            i += 1
            continue
        if c.isdigit():
            out.append(c)
            i += 1
            continue
        out.append(c.upper())
        i += 1
        while i < len(name) and name[i].islower():
            out.append(name[i])
            i += 1
    return "".join(out)


def to_snake(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case."""
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    s2 = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1)
    return re.sub(r"_+", "_", s2).strip("_").lower()


def to_kebab(name: str) -> str:
    """Convert names to kebab-case for command names.

    SayHello -> say-hello, GetHTTPInfo -> get-http-info, say_hello -> say-hello.
    """
    if not name:
        return name
    if "_" in name or "-" in name:
        parts = re.split(r"[_\-]+", name)
        return "-".join(to_kebab(p) for p in parts if p)
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1-\2", name)
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", s)
    s = re.sub(r"-{2,}", "-", s)
    return s.lower()


def unique_name(name: str, taken: Set[str]) -> str:
    """Claim ``name`` in ``taken``, appending 1, 2, ... until it is free."""
    candidate = name
    n = 0
    while candidate in taken:
        n += 1
        candidate = f"{name}{n}"
    taken.add(candidate)
    return candidate


@functools.lru_cache(maxsize=None)
def assign_support_names(config: GeneratorConfig) -> Tuple[ImportBinding, ...]:
    """Give every support package a unique alias, in sorted key order."""
    taken: Set[str] = set(config.reserved_names)
    bindings: List[ImportBinding] = []
    for package in sorted(config.support_packages, key=lambda p: p.key):
        base = package.import_path.rpartition(".")[2]
        bindings.append(ImportBinding(package.key, package.import_path, unique_name(base, taken)))
    return tuple(bindings)


def split_type_name(type_path: str, file_package: str = "") -> TypeReference:
    """Split a ``.pkg.subpkg.Type`` reference.

    ``.cache.v2.sub.GetRequest`` -> (``cache_v2_sub_pb``, ``cache.v2.sub``,
    ``GetRequest``). References in ``file_package`` and references with no
    package part get an empty alias.
    """
    name = type_path.rpartition("/")[2]
    if name.startswith("."):
        name = name[1:]
    segments = name.split(".")
    if any(not s for s in segments):
        raise GenerationError(f"malformed type reference {type_path!r}")
    if len(segments) < 2:
        return TypeReference(alias="", package="", type_name=segments[0])
    package = ".".join(segments[:-1])
    alias = "" if package == file_package else "_".join(segments[:-1]) + "_pb"
    return TypeReference(alias=alias, package=package, type_name=segments[-1])


def module_path(file_name: str, suffix: str, prefix: str = "") -> str:
    """``bank/v1/bank.proto`` -> ``bank.v1.bank_pb2`` (for suffix ``_pb2``)."""
    stem = file_name[: -len(".proto")] if file_name.endswith(".proto") else file_name
    return prefix + stem.replace("/", ".").replace("-", "_") + suffix


def _relative_name(full_name: str, package: str) -> str:
    if package and full_name.startswith(package + "."):
        return full_name[len(package) + 1:]
    return full_name


def _module_alias_base(unit: FileUnit) -> str:
    if unit.package:
        return unit.package.replace(".", "_") + "_pb"
    stem = module_path(unit.name, "").rpartition(".")[2]
    return stem + "_pb"


def _locate(
    full_name: str,
    ref: TypeReference,
    imports: Iterable[FileUnit],
) -> Tuple[Optional[FileUnit], str]:
    """Find the imported file defining ``full_name``.

    Falls back to the first file (by name) declaring the reference's package.
    """
    imports = list(imports)
    for unit in imports:
        if unit.defines(full_name):
            return unit, _relative_name(full_name, unit.package)
    same_package = sorted((u for u in imports if u.package == ref.package), key=lambda u: u.name)
    if same_package:
        return same_package[0], ref.type_name
    return None, ref.type_name


def resolve_file_imports(file: FileUnit, config: GeneratorConfig) -> FileImports:
    """Resolve every module alias and input type expression for ``file``."""
    support = assign_support_names(config)
    taken: Set[str] = set(config.reserved_names) | {b.alias for b in support}

    messages_path = module_path(file.name, MESSAGES_SUFFIX, config.import_prefix)
    services_path = module_path(file.name, SERVICES_SUFFIX, config.import_prefix)
    messages = ImportBinding(
        "messages", messages_path, unique_name(messages_path.rpartition(".")[2], taken)
    )
    services = ImportBinding(
        "services", services_path, unique_name(services_path.rpartition(".")[2], taken)
    )

    # (service, method) -> (defining module or None for the file's own, type path)
    located: Dict[Tuple[str, str], Tuple[Optional[FileUnit], str]] = {}
    for service in file.services:
        for method in service.methods:
            key = (service.name, method.name)
            ref = split_type_name(method.input_type, file.package)
            full_name = method.input_type.lstrip(".")
            if file.defines(full_name):
                located[key] = (None, _relative_name(full_name, file.package))
                continue
            unit, type_path = _locate(full_name, ref, file.imports)
            if unit is None and ref.alias:
                if config.strict_imports:
                    raise GenerationError(
                        f"{file.name}: no imported file defines package {ref.package!r} "
                        f"for {service.name}.{method.name} input {method.input_type!r}"
                    )
                logger.warning(
                    "%s: cannot resolve package %r for %s.%s; leaving %s unaliased",
                    file.name, ref.package, service.name, method.name, ref.type_name,
                )
            located[key] = (unit, type_path)

    referenced: Dict[str, FileUnit] = {}
    for unit, _ in located.values():
        if unit is not None:
            referenced[module_path(unit.name, MESSAGES_SUFFIX, config.import_prefix)] = unit

    aliases: Dict[str, str] = {}
    cross_package: List[CrossPackageImport] = []
    for path in sorted(referenced, key=lambda p: (referenced[p].package, p)):
        unit = referenced[path]
        alias = unique_name(_module_alias_base(unit), taken)
        aliases[unit.name] = alias
        cross_package.append(CrossPackageImport(alias=alias, package=unit.package, module=path))

    input_types: Dict[Tuple[str, str], str] = {}
    for key, (unit, type_path) in located.items():
        module_alias = messages.alias if unit is None else aliases[unit.name]
        input_types[key] = f"{module_alias}.{type_path}"

    return FileImports(
        support=support,
        messages=messages,
        services=services,
        cross_package=tuple(sorted(cross_package, key=lambda c: c.alias)),
        input_types=input_types,
    )
