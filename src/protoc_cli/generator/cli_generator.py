from __future__ import annotations

import enum
import functools
import logging
from pathlib import Path
from typing import Dict, Optional, Set

from jinja2 import Environment, FileSystemLoader

from protoc_cli.config import GeneratorConfig
from protoc_cli.models import FileImports, FileUnit, GeneratedFile, MethodUnit, ServiceUnit
from protoc_cli.naming import (
    CLIENT_SUFFIX,
    camel_case,
    module_path,
    resolve_file_imports,
    to_kebab,
    to_snake,
    unique_name,
)

logger = logging.getLogger(__name__)


class StreamingShape(enum.Enum):
    UNARY = "unary"
    CLIENT_STREAM = "client streaming"
    SERVER_STREAM = "server streaming"
    BIDI_STREAM = "bidirectional streaming"


# (client_streaming, server_streaming) -> shape
_SHAPES: Dict[tuple, StreamingShape] = {
    (False, False): StreamingShape.UNARY,
    (True, False): StreamingShape.CLIENT_STREAM,
    (False, True): StreamingShape.SERVER_STREAM,
    (True, True): StreamingShape.BIDI_STREAM,
}

SHAPE_TEMPLATES: Dict[StreamingShape, str] = {
    StreamingShape.UNARY: "shapes/unary.py.j2",
    StreamingShape.CLIENT_STREAM: "shapes/client_stream.py.j2",
    StreamingShape.SERVER_STREAM: "shapes/server_stream.py.j2",
    StreamingShape.BIDI_STREAM: "shapes/bidi_stream.py.j2",
}


def select_shape(method: MethodUnit) -> StreamingShape:
    return _SHAPES[(bool(method.client_streaming), bool(method.server_streaming))]


@functools.lru_cache(maxsize=None)
def _get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _support_aliases(imports: FileImports) -> Dict[str, str]:
    return {binding.key: binding.alias for binding in imports.support}


def render_method(method: MethodUnit, input_type: str, aliases: Dict[str, str]) -> str:
    """Render the body of one method's call, chosen by its streaming shape."""
    template = _get_template_env().get_template(SHAPE_TEMPLATES[select_shape(method)])
    return template.render(input_type=input_type, rpc=method.name, m=aliases).rstrip("\n")


def render_service(
    service: ServiceUnit,
    imports: FileImports,
    snake: str,
    name: str,
    command: str,
) -> str:
    """Render the config class, dial helpers and command tree of one service."""
    aliases = _support_aliases(imports)
    taken: Set[str] = set()
    commands: Set[str] = set()
    methods = []
    for method in service.methods:
        input_type = imports.input_type(service, method)
        methods.append({
            "name": method.name,
            "snake": unique_name(to_snake(method.name), taken),
            "command": unique_name(to_kebab(method.name), commands),
            "shape_label": select_shape(method).value,
            "input_type": input_type,
            "body": render_method(method, input_type, aliases),
        })

    template = _get_template_env().get_template("service.py.j2")
    return template.render(
        name=name,
        snake=snake,
        command=command,
        service_name=service.name,
        services_module=imports.services.alias,
        m=aliases,
        methods=methods,
    ).rstrip("\n")


def client_file_name(file: FileUnit) -> str:
    """``bank/v1/bank.proto`` -> ``bank/v1/bank_pb2_cli.py``."""
    directory, _, _ = file.name.rpartition("/")
    stem = module_path(file.name, CLIENT_SUFFIX).rpartition(".")[2]
    return f"{directory}/{stem}.py" if directory else f"{stem}.py"


def generate_file(file: FileUnit, config: Optional[GeneratorConfig] = None) -> Optional[GeneratedFile]:
    """Generate the client module for ``file``; None when it has no services."""
    if not file.services:
        logger.debug("%s: no services, nothing to generate", file.name)
        return None
    config = config or GeneratorConfig()
    imports = resolve_file_imports(file, config)

    snakes: Set[str] = set()
    classes: Set[str] = set()
    commands: Set[str] = set()
    services = []
    command_adders = []
    for service in file.services:
        snake = unique_name(to_snake(service.name), snakes)
        name = unique_name(camel_case(service.name), classes)
        command = unique_name(to_kebab(service.name), commands)
        services.append(render_service(service, imports, snake, name, command))
        command_adders.append(f"add_{snake}_client_command")

    template = _get_template_env().get_template("cli.py.j2")
    content = template.render(
        source=file.name,
        support_imports=[binding.statement for binding in imports.support],
        messages_import=imports.messages.statement,
        services_import=imports.services.statement,
        cross_imports=[c.statement for c in imports.cross_package],
        services=services,
        command_adders=command_adders,
        m=_support_aliases(imports),
    )
    name = client_file_name(file)
    logger.info("%s: generated %s (%d service(s))", file.name, name, len(file.services))
    return GeneratedFile(name=name, content=content)
