from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from google.protobuf import descriptor_pb2 as d2

from protoc_cli.models import FileUnit, GenerationError, MethodUnit, ServiceUnit


def build_file_units(proto_files: Iterable[d2.FileDescriptorProto]) -> Dict[str, FileUnit]:
    """Project a descriptor set into FileUnits keyed by file name.

    Every file's ``imports`` holds its transitive dependencies, so the files
    must be self-contained (protoc always sends dependencies along).
    """
    protos: Dict[str, d2.FileDescriptorProto] = {fd.name: fd for fd in proto_files}
    units: Dict[str, FileUnit] = {}
    for name in protos:
        _build_unit(name, protos, units)
    return units


def _build_unit(
    name: str,
    protos: Dict[str, d2.FileDescriptorProto],
    units: Dict[str, FileUnit],
) -> FileUnit:
    if name in units:
        return units[name]
    fd = protos.get(name)
    if fd is None:
        raise GenerationError(f"dependency {name!r} missing from descriptor set")

    imports: List[FileUnit] = []
    seen = set()
    for dep in fd.dependency:
        dep_unit = _build_unit(dep, protos, units)
        for unit in (dep_unit, *dep_unit.imports):
            if unit.name not in seen:
                seen.add(unit.name)
                imports.append(unit)

    unit = parse_file(fd, tuple(imports))
    units[name] = unit
    return unit


def parse_file(fd: d2.FileDescriptorProto, imports: Tuple[FileUnit, ...] = ()) -> FileUnit:
    """Project one FileDescriptorProto, keeping declaration order."""
    return FileUnit(
        name=fd.name,
        package=fd.package,
        services=tuple(_parse_service(svc, fd.name) for svc in fd.service),
        message_types=tuple(_message_names(fd.message_type, fd.package)),
        imports=imports,
    )


def check_package(unit: FileUnit) -> None:
    """Reject a package-less file whose services take package-qualified inputs
    that neither the file nor its imports define.

    Such a reference has no package to be resolved against, so no module can
    be chosen for it.
    """
    if unit.package or not unit.services:
        return
    for svc in unit.services:
        for method in svc.methods:
            full_name = method.input_type.lstrip(".")
            if "." not in full_name or unit.defines(full_name):
                continue
            if not any(dep.defines(full_name) for dep in unit.imports):
                raise GenerationError(
                    f"{unit.name}: services declared without a package, "
                    f"cannot resolve input type {method.input_type!r} of {svc.name}.{method.name}"
                )


def _parse_service(svc: d2.ServiceDescriptorProto, file_name: str) -> ServiceUnit:
    methods = tuple(
        MethodUnit(
            name=m.name,
            input_type=m.input_type,
            output_type=m.output_type,
            client_streaming=m.client_streaming,
            server_streaming=m.server_streaming,
        )
        for m in svc.method
    )
    return ServiceUnit(name=svc.name, file_name=file_name, methods=methods)


def _message_names(messages: Iterable[d2.DescriptorProto], scope: str) -> List[str]:
    names: List[str] = []
    for msg in messages:
        # map entries are synthesized by protoc and never used as method inputs
        if msg.options.map_entry:
            continue
        full_name = f"{scope}.{msg.name}" if scope else msg.name
        names.append(full_name)
        names.extend(_message_names(msg.nested_type, full_name))
    return names
