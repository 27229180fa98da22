"""protoc plugin entry point: CodeGeneratorRequest on stdin, response on stdout."""
from __future__ import annotations

import logging
import sys
from typing import List, Optional

from google.protobuf.compiler import plugin_pb2

from protoc_cli.config import GeneratorConfig
from protoc_cli.generator.cli_generator import generate_file
from protoc_cli.models import GenerationError
from protoc_cli.parser.descriptor_parser import build_file_units, check_package

logger = logging.getLogger(__name__)


def generate_code(
    request: plugin_pb2.CodeGeneratorRequest,
    config: Optional[GeneratorConfig] = None,
) -> plugin_pb2.CodeGeneratorResponse:
    """Generate a client module for every file protoc asked for.

    A file that fails is reported in ``response.error``; the remaining files
    are still generated.
    """
    response = plugin_pb2.CodeGeneratorResponse()
    response.supported_features = plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL

    try:
        config = config or GeneratorConfig.from_parameter(request.parameter)
        units = build_file_units(request.proto_file)
    except GenerationError as e:
        response.error = str(e)
        return response

    errors: List[str] = []
    for file_name in request.file_to_generate:
        unit = units.get(file_name)
        if unit is None:
            errors.append(f"file not found in request: {file_name}")
            continue
        try:
            check_package(unit)
            generated = generate_file(unit, config)
        except GenerationError as e:
            logger.error("%s: %s", file_name, e)
            errors.append(f"{file_name}: {e}")
            continue
        if generated is None:
            continue
        out = response.file.add()
        out.name = generated.name
        out.content = generated.content

    if errors:
        response.error = "\n".join(errors)
    return response


def main() -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.WARNING,
        format="protoc-gen-pycli: %(levelname)s %(name)s: %(message)s",
    )
    request_payload = sys.stdin.buffer.read()

    request = plugin_pb2.CodeGeneratorRequest()
    if request_payload:
        request.ParseFromString(request_payload)

    response = generate_code(request)
    sys.stdout.buffer.write(response.SerializeToString())


if __name__ == "__main__":
    main()
