"""Encoders and decoders for protobuf messages, keyed by format name.

Generated clients pick a decoder for the request source and an encoder for
the response sink from DEFAULT_DECODERS and DEFAULT_ENCODERS. Every codec
wraps a text stream:

    encoder = DEFAULT_ENCODERS["prettyjson"](sys.stdout)
    encoder.encode(response)

    decoder = DEFAULT_DECODERS["json"](sys.stdin)
    while decoder.decode(request):
        ...

``decode`` returns False once the source is exhausted; malformed input
raises CodecError.
"""

from __future__ import annotations

import collections
import json
import re
import xml.etree.ElementTree as ET
from typing import Any, Callable, Dict, Iterator, List, Optional, TextIO

import yaml
from google.protobuf import json_format
from google.protobuf.descriptor import Descriptor, FieldDescriptor
from google.protobuf.message import Message

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'

_XML_DECLARATION = re.compile(r"<\?xml[^>]*\?>")
_END = object()


class CodecError(ValueError):
    """Raised when a payload cannot be encoded or decoded."""


def _to_dict(message: Message) -> Dict[str, Any]:
    return json_format.MessageToDict(message, preserving_proto_field_name=True)


def _from_value(value: Any, message: Message, fmt: str) -> None:
    message.Clear()
    if value is None:
        return
    if not isinstance(value, dict) and not _is_well_known(message.DESCRIPTOR):
        raise CodecError(
            f"{fmt}: expected an object for {message.DESCRIPTOR.full_name}, got {type(value).__name__}"
        )
    try:
        json_format.ParseDict(value, message, ignore_unknown_fields=True)
    except json_format.ParseError as e:
        raise CodecError(f"{fmt}: {message.DESCRIPTOR.full_name}: {e}") from e


class JsonEncoder:
    """Writes one JSON document per line, or tab-indented when pretty."""

    def __init__(self, sink: TextIO, pretty: bool = False):
        self._sink = sink
        self._pretty = pretty

    def encode(self, message: Message) -> None:
        value = _to_dict(message)
        if self._pretty:
            text = json.dumps(value, indent="\t")
        else:
            text = json.dumps(value, separators=(",", ":"))
        self._sink.write(text + "\n")
        self._sink.flush()


class JsonDecoder:
    """Reads successive JSON documents, one per line or spread over lines."""

    def __init__(self, source: TextIO):
        self._source = source
        self._buffer = ""
        self._decoder = json.JSONDecoder()

    def decode(self, message: Message) -> bool:
        value = self._next_value()
        if value is _END:
            return False
        _from_value(value, message, "json")
        return True

    def _next_value(self) -> Any:
        while True:
            text = self._buffer.lstrip()
            if not text:
                line = self._source.readline()
                if not line:
                    return _END
                self._buffer = line
                continue
            try:
                value, end = self._decoder.raw_decode(text)
            except json.JSONDecodeError as e:
                # an unterminated document continues on the next line
                line = self._source.readline()
                if not line:
                    raise CodecError(f"json: {e}") from e
                self._buffer = text + line
                continue
            self._buffer = text[end:]
            return value


class YamlEncoder:
    """Writes each message as its own ``---`` document."""

    def __init__(self, sink: TextIO):
        self._sink = sink

    def encode(self, message: Message) -> None:
        yaml.safe_dump(
            _to_dict(message),
            self._sink,
            explicit_start=True,
            default_flow_style=False,
            sort_keys=False,
        )
        self._sink.flush()


class YamlDecoder:
    def __init__(self, source: TextIO):
        self._documents: Optional[Iterator[Any]] = None
        self._source = source

    def decode(self, message: Message) -> bool:
        if self._documents is None:
            self._documents = yaml.safe_load_all(self._source)
        try:
            value = next(self._documents)
        except StopIteration:
            return False
        except yaml.YAMLError as e:
            raise CodecError(f"yaml: {e}") from e
        _from_value(value, message, "yaml")
        return True


# Well-known types whose JSON mapping is not a plain field mapping;
# in XML they are carried as JSON text.
_WELL_KNOWN_TYPES = frozenset(
    "google.protobuf." + name
    for name in (
        "Any", "Duration", "FieldMask", "ListValue", "Struct", "Timestamp", "Value",
        "BoolValue", "BytesValue", "DoubleValue", "FloatValue",
        "Int32Value", "Int64Value", "StringValue", "UInt32Value", "UInt64Value",
    )
)


def _is_well_known(descriptor: Descriptor) -> bool:
    return descriptor.full_name in _WELL_KNOWN_TYPES


def _is_map(field: FieldDescriptor) -> bool:
    return field.message_type is not None and field.message_type.GetOptions().map_entry


def _is_repeated(field: FieldDescriptor) -> bool:
    return field.label == FieldDescriptor.LABEL_REPEATED


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _scalar_value(text: str, field: FieldDescriptor) -> Any:
    if field.cpp_type == FieldDescriptor.CPPTYPE_BOOL:
        return text.strip() == "true"
    if field.cpp_type in (
        FieldDescriptor.CPPTYPE_INT32,
        FieldDescriptor.CPPTYPE_INT64,
        FieldDescriptor.CPPTYPE_UINT32,
        FieldDescriptor.CPPTYPE_UINT64,
    ):
        try:
            return int(text)
        except ValueError as e:
            raise CodecError(f"xml: {field.full_name}: {e}") from e
    if field.cpp_type in (FieldDescriptor.CPPTYPE_FLOAT, FieldDescriptor.CPPTYPE_DOUBLE):
        if text in ("NaN", "Infinity", "-Infinity"):
            return text
        try:
            return float(text)
        except ValueError as e:
            raise CodecError(f"xml: {field.full_name}: {e}") from e
    return text


def _put(parent: ET.Element, tag: str, value: Any, field: Optional[FieldDescriptor]) -> None:
    child = ET.SubElement(parent, tag)
    if field is not None and field.message_type is not None:
        if _is_well_known(field.message_type):
            child.text = json.dumps(value)
        else:
            _fill_element(child, value, field.message_type)
    else:
        child.text = _scalar_text(value)


def _fill_element(element: ET.Element, value: Dict[str, Any], descriptor: Descriptor) -> None:
    for name, item in value.items():
        field = descriptor.fields_by_name.get(name)
        if field is not None and _is_map(field):
            value_field = field.message_type.fields_by_name["value"]
            for key, entry_value in item.items():
                entry = ET.SubElement(element, name)
                ET.SubElement(entry, "key").text = _scalar_text(key)
                _put(entry, "value", entry_value, value_field)
        elif isinstance(item, list):
            for each in item:
                _put(element, name, each, field)
        else:
            _put(element, name, item, field)


def _field_value(element: ET.Element, field: FieldDescriptor) -> Any:
    if field.message_type is None:
        return _scalar_value(element.text or "", field)
    if _is_well_known(field.message_type):
        try:
            return json.loads(element.text or "null")
        except json.JSONDecodeError as e:
            raise CodecError(f"xml: {field.full_name}: {e}") from e
    return _element_to_dict(element, field.message_type)


def _element_to_dict(element: ET.Element, descriptor: Descriptor) -> Dict[str, Any]:
    value: Dict[str, Any] = {}
    by_json_name = {f.json_name: f for f in descriptor.fields}
    for child in element:
        field = descriptor.fields_by_name.get(child.tag) or by_json_name.get(child.tag)
        if field is None:
            continue
        if _is_map(field):
            entry_type = field.message_type
            key = child.findtext("key", default="")
            entry = child.find("value")
            entries = value.setdefault(field.name, {})
            if entry is None:
                entries[key] = None
            else:
                entries[key] = _field_value(entry, entry_type.fields_by_name["value"])
        elif _is_repeated(field):
            value.setdefault(field.name, []).append(_field_value(child, field))
        else:
            value[field.name] = _field_value(child, field)
    return value


class XmlEncoder:
    """Writes an XML declaration and one element per message."""

    def __init__(self, sink: TextIO):
        self._sink = sink

    def encode(self, message: Message) -> None:
        descriptor = message.DESCRIPTOR
        root = ET.Element(descriptor.name)
        if _is_well_known(descriptor):
            root.text = json.dumps(_to_dict(message))
        else:
            _fill_element(root, _to_dict(message), descriptor)
        ET.indent(root, space="\t")
        self._sink.write(XML_HEADER)
        self._sink.write(ET.tostring(root, encoding="unicode"))
        self._sink.write("\n")
        self._sink.flush()


class XmlDecoder:
    """Reads successive top-level elements, ignoring XML declarations."""

    def __init__(self, source: TextIO):
        self._source = source
        self._parser = ET.XMLPullParser(events=("start", "end"))
        self._parser.feed("<stream>")
        self._root: Optional[ET.Element] = None
        self._depth = 0
        self._pending: collections.deque = collections.deque()

    def decode(self, message: Message) -> bool:
        element = self._next_element()
        if element is None:
            return False
        descriptor = message.DESCRIPTOR
        if _is_well_known(descriptor):
            try:
                value = json.loads(element.text or "null")
            except json.JSONDecodeError as e:
                raise CodecError(f"xml: {descriptor.full_name}: {e}") from e
        else:
            value = _element_to_dict(element, descriptor)
        _from_value(value, message, "xml")
        return True

    def _next_element(self) -> Optional[ET.Element]:
        while not self._pending:
            line = self._source.readline()
            if not line:
                if self._depth > 1:
                    raise CodecError("xml: unexpected end of input inside an element")
                return None
            try:
                self._parser.feed(_XML_DECLARATION.sub("", line))
                events = list(self._parser.read_events())
            except ET.ParseError as e:
                raise CodecError(f"xml: {e}") from e
            for event, element in events:
                if event == "start":
                    if self._root is None:
                        self._root = element
                    self._depth += 1
                    continue
                self._depth -= 1
                if self._depth == 1:
                    self._pending.append(element)
        element = self._pending.popleft()
        self._root.remove(element)
        return element


EncoderMaker = Callable[[TextIO], Any]
DecoderMaker = Callable[[TextIO], Any]

DEFAULT_ENCODERS: Dict[str, EncoderMaker] = {
    "json": JsonEncoder,
    "prettyjson": lambda sink: JsonEncoder(sink, pretty=True),
    "xml": XmlEncoder,
    "yaml": YamlEncoder,
}

DEFAULT_DECODERS: Dict[str, DecoderMaker] = {
    "json": JsonDecoder,
    "xml": XmlDecoder,
    "yaml": YamlDecoder,
}


def formats(group: Dict[str, Any]) -> List[str]:
    return sorted(group)
