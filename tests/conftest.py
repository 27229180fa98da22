import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from google.protobuf import descriptor_pb2 as d2

from protoc_cli.parser.descriptor_parser import build_file_units

_STRING = d2.FieldDescriptorProto.TYPE_STRING
_DOUBLE = d2.FieldDescriptorProto.TYPE_DOUBLE
_INT64 = d2.FieldDescriptorProto.TYPE_INT64
_BOOL = d2.FieldDescriptorProto.TYPE_BOOL


def make_message(name, fields=()):
    msg = d2.DescriptorProto(name=name)
    for number, (field_name, field_type) in enumerate(fields, start=1):
        msg.field.add(
            name=field_name,
            number=number,
            type=field_type,
            label=d2.FieldDescriptorProto.LABEL_OPTIONAL,
        )
    return msg


def make_file(name, package, messages=(), services=(), dependencies=()):
    """Build a FileDescriptorProto.

    ``services`` is a list of (name, [(method, input, output, client_streaming,
    server_streaming), ...]).
    """
    fd = d2.FileDescriptorProto(name=name, package=package, syntax="proto3")
    fd.dependency.extend(dependencies)
    fd.message_type.extend(messages)
    for svc_name, methods in services:
        svc = fd.service.add(name=svc_name)
        for method_name, input_type, output_type, cs, ss in methods:
            svc.method.add(
                name=method_name,
                input_type=input_type,
                output_type=output_type,
                client_streaming=cs,
                server_streaming=ss,
            )
    return fd


@pytest.fixture
def bank_proto():
    return make_file(
        "bank/v1/bank.proto",
        "bank.v1",
        messages=[
            make_message("DepositRequest", [("parent", _STRING), ("amount", _DOUBLE)]),
            make_message("DepositReply", [("account", _STRING), ("balance", _DOUBLE)]),
        ],
        services=[
            ("Bank", [
                ("Deposit", ".bank.v1.DepositRequest", ".bank.v1.DepositReply", False, False),
            ]),
        ],
    )


@pytest.fixture
def cache_types_proto():
    return make_file(
        "cache/v2/sub/types.proto",
        "cache.v2.sub",
        messages=[
            make_message("SetRequest", [("key", _STRING), ("value", _STRING)]),
            make_message("SetResponse"),
            make_message("GetRequest", [("key", _STRING)]),
            make_message("GetResponse", [("value", _STRING)]),
        ],
    )


@pytest.fixture
def cache_proto():
    return make_file(
        "cache/v2/cache.proto",
        "cache.v2",
        services=[
            ("Cache", [
                ("Set", ".cache.v2.sub.SetRequest", ".cache.v2.sub.SetResponse", False, False),
                ("Get", ".cache.v2.sub.GetRequest", ".cache.v2.sub.GetResponse", False, False),
                ("MultiSet", ".cache.v2.sub.SetRequest", ".cache.v2.sub.SetResponse", True, False),
                ("MultiGet", ".cache.v2.sub.GetRequest", ".cache.v2.sub.GetResponse", True, True),
            ]),
        ],
        dependencies=["cache/v2/sub/types.proto"],
    )


@pytest.fixture
def timer_proto():
    tick = make_message("TickRequest", [("interval", _INT64)])
    tick.nested_type.add(name="Options").field.add(
        name="verbose", number=1, type=_BOOL, label=d2.FieldDescriptorProto.LABEL_OPTIONAL,
    )
    return make_file(
        "timer.proto",
        "timer",
        messages=[tick, make_message("TickResponse", [("time", _STRING)])],
        services=[
            ("Timer", [
                ("Tick", ".timer.TickRequest", ".timer.TickResponse", False, True),
                ("TickWith", ".timer.TickRequest.Options", ".timer.TickResponse", False, True),
            ]),
        ],
    )


@pytest.fixture
def all_protos(bank_proto, cache_types_proto, cache_proto, timer_proto):
    return [bank_proto, cache_types_proto, cache_proto, timer_proto]


@pytest.fixture
def units(all_protos):
    return build_file_units(all_protos)


def self_signed_pem(common_name, dns_names=()):
    """A PEM certificate for ``common_name``, signed by its own fresh key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
    )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in dns_names]), critical=False,
        )
    cert = builder.sign(key, hashes.SHA256())
    return cert.public_bytes(serialization.Encoding.PEM)
