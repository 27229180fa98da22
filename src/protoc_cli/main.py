from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
import tempfile
from typing import List, Sequence

from google.protobuf import descriptor_pb2 as d2
from google.protobuf.compiler import plugin_pb2

from protoc_cli.config import GeneratorConfig
from protoc_cli.plugin import generate_code

logger = logging.getLogger(__name__)


def _find_proto_files(root: str) -> List[str]:
    files: List[str] = []
    for dirpath, _, filenames in os.walk(root):
        for fn in filenames:
            if fn.lower().endswith(".proto"):
                files.append(os.path.join(dirpath, fn))
    # Sort for deterministic output
    files.sort()
    return files


def load_descriptor_set(proto_paths: Sequence[str], include_dir: str) -> d2.FileDescriptorSet:
    """Run protoc over ``proto_paths`` and return the descriptor set, imports included."""
    with tempfile.TemporaryDirectory() as td:
        desc_path = os.path.join(td, "descriptor_set.pb")
        cmd = ["protoc", "--include_imports", f"--descriptor_set_out={desc_path}", "-I", include_dir]
        cmd.extend(proto_paths)
        logger.debug("running %s", " ".join(cmd))
        try:
            subprocess.run(cmd, check=True, capture_output=True)
        except FileNotFoundError as e:
            raise RuntimeError("'protoc' not found. Please install Protocol Buffers compiler and ensure it is in PATH.") from e
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"protoc failed: {e.stderr.decode('utf-8', errors='ignore')}") from e

        fds = d2.FileDescriptorSet()
        with open(desc_path, "rb") as f:
            fds.ParseFromString(f.read())
    return fds


def build_request(fds: d2.FileDescriptorSet, file_names: Sequence[str]) -> plugin_pb2.CodeGeneratorRequest:
    request = plugin_pb2.CodeGeneratorRequest()
    request.proto_file.extend(fds.file)
    request.file_to_generate.extend(file_names)
    return request


def generate(proto: str, out_dir: str, config: GeneratorConfig) -> List[str]:
    """Generate client modules for a .proto file or a directory of them.

    Returns the paths written under ``out_dir``.
    """
    if os.path.isdir(proto):
        include_dir = os.path.abspath(proto)
        inputs = _find_proto_files(proto)
    else:
        include_dir = os.path.dirname(os.path.abspath(proto))
        inputs = [proto]
    if not inputs:
        return []

    fds = load_descriptor_set([os.path.abspath(p) for p in inputs], include_dir)
    names = [os.path.relpath(os.path.abspath(p), include_dir).replace(os.sep, "/") for p in inputs]
    response = generate_code(build_request(fds, names), config)
    if response.error:
        raise RuntimeError(response.error)

    written: List[str] = []
    for generated in response.file:
        out_path = os.path.join(out_dir, *generated.name.split("/"))
        os.makedirs(os.path.dirname(out_path), exist_ok=True)
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(generated.content)
        written.append(out_path)
    return written


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate argparse command line clients for the gRPC services in .proto files")
    parser.add_argument("--proto", required=True, help="Path to a .proto file or a directory containing .proto files (recursively)")
    parser.add_argument("--out", required=True, help="Output directory for generated *_pb2_cli.py file(s)")
    parser.add_argument("--import-prefix", default="", help="Package prefix of the generated *_pb2 modules, e.g. 'gen.'")
    parser.add_argument("--strict-imports", action="store_true", help="Fail when an input type's defining file cannot be found")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log each generated file")
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = GeneratorConfig(import_prefix=args.import_prefix, strict_imports=args.strict_imports)

    try:
        generated = generate(args.proto, args.out, config)
    except RuntimeError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(1)

    if not generated:
        print(f"No services found under: {args.proto}")
        return
    print("Generated:\n" + "\n".join(generated))


if __name__ == "__main__":
    main()
