"""Body codecs: serializers and deserializers for request and response bodies.

A Serializer turns any object into bytes. A Deserializer parses bytes and
populates a caller-supplied destination in place. Both signal failure by
raising. The executor never inspects the format; it only calls whichever
pair was selected when the request was configured.

XML is mapped to and from plain dicts:

- the root element tag is the single top-level key,
- attributes become ``@name`` keys and mixed text becomes ``#text``,
- repeated child tags become lists, empty elements become None,
- namespace URIs are stripped from tag names.
"""

from __future__ import annotations

import dataclasses
import json
import xml.etree.ElementTree as ET
from typing import Any, Callable

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

Serializer = Callable[[Any], bytes]
Deserializer = Callable[[bytes, Any], None]

JSON_CONTENT_TYPE = "application/json"
XML_CONTENT_TYPE = "application/xml"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_ATTR_PREFIX = "@"
_TEXT_KEY = "#text"


# ---------------------------------------------------------------------------
# Destinations
# ---------------------------------------------------------------------------


def populate(destination: Any, value: Any) -> None:
    """Copy a decoded value into ``destination`` in place.

    Supported destinations:
    - dict: contents replaced by the decoded mapping
    - list: contents replaced by the decoded sequence
    - bytearray: contents replaced by the raw bytes
    - pydantic model instance: value validated against the model's class,
      then every field assigned onto the instance
    - dataclass instance: matching keys assigned as attributes

    Raises:
        TypeError: If the decoded value does not fit the destination.
        pydantic.ValidationError: If the value fails model validation.
    """
    if isinstance(destination, dict):
        if not isinstance(value, dict):
            raise TypeError(f"cannot decode {type(value).__name__} into a dict")
        destination.clear()
        destination.update(value)
    elif isinstance(destination, bytearray):
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"cannot decode {type(value).__name__} into a bytearray")
        destination[:] = value
    elif isinstance(destination, list):
        if not isinstance(value, list):
            raise TypeError(f"cannot decode {type(value).__name__} into a list")
        destination[:] = value
    elif isinstance(destination, BaseModel):
        validated = type(destination).model_validate(value)
        for name in type(destination).model_fields:
            setattr(destination, name, getattr(validated, name))
    elif dataclasses.is_dataclass(destination) and not isinstance(destination, type):
        if not isinstance(value, dict):
            raise TypeError(
                f"cannot decode {type(value).__name__} into {type(destination).__name__}"
            )
        for field in dataclasses.fields(destination):
            if field.name in value:
                setattr(destination, field.name, value[field.name])
    else:
        raise TypeError(f"unsupported destination type {type(destination).__name__}")


# ---------------------------------------------------------------------------
# Raw
# ---------------------------------------------------------------------------


def serialize_raw(value: Any) -> bytes:
    """Pass bytes through; str is UTF-8 encoded."""
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"raw bodies must be bytes or str, got {type(value).__name__}")


def deserialize_raw(body: bytes, destination: Any) -> None:
    populate(destination, body)


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def serialize_json(value: Any) -> bytes:
    """Compact JSON encoding. Pydantic models and dataclasses are supported."""
    return json.dumps(to_jsonable_python(value), separators=(",", ":")).encode("utf-8")


def decode_json(body: bytes) -> Any:
    """Parse a JSON body into plain Python values."""
    return json.loads(body)


def deserialize_json(body: bytes, destination: Any) -> None:
    populate(destination, decode_json(body))


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------


def serialize_xml(value: Any) -> bytes:
    """Encode a value as XML bytes with an XML declaration.

    Dicts must have exactly one top-level key naming the root element.
    Pydantic models and dataclasses use their class name as the root.

    Raises:
        ValueError: If a dict does not have exactly one top-level key.
    """
    if isinstance(value, BaseModel) or (
        dataclasses.is_dataclass(value) and not isinstance(value, type)
    ):
        value = {type(value).__name__: to_jsonable_python(value)}

    if not isinstance(value, dict) or len(value) != 1:
        raise ValueError(
            "XML bodies need a dict with exactly one top-level key (the root element), "
            f"got {type(value).__name__}"
            + (f" with {len(value)} keys" if isinstance(value, dict) else "")
        )

    root_tag, root_value = next(iter(value.items()))
    root = _build_element(root_tag, to_jsonable_python(root_value))
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def decode_xml(body: bytes, force_list: set[str] | None = None) -> dict[str, Any]:
    """Parse an XML body into a dict keyed by the root tag.

    Args:
        body: Raw XML bytes.
        force_list: Tags that always decode to a list, even with one child.

    Raises:
        xml.etree.ElementTree.ParseError: If the body is not well-formed XML.
    """
    root = ET.fromstring(body)
    return {_local_name(root.tag): _read_element(root, force_list or set())}


def deserialize_xml(body: bytes, destination: Any) -> None:
    """Decode XML into ``destination``.

    Dict destinations receive the root-keyed mapping. Model and dataclass
    destinations receive the root element's content, mirroring how the
    serializer wraps them.
    """
    decoded = decode_xml(body)
    if isinstance(destination, (dict, list)):
        populate(destination, decoded)
        return
    content = next(iter(decoded.values()))
    populate(destination, content if content is not None else {})


def _local_name(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _read_element(element: ET.Element, force_list: set[str]) -> dict[str, Any] | str | None:
    """Map one element to a string, a dict, or None.

    Text is gathered from the element and from the tails of its children, so
    mixed content such as ``<p>a <b>x</b> c</p>`` keeps both halves under
    ``#text``. Namespaced attributes keep their local name.
    """
    value: dict[str, Any] = {
        _ATTR_PREFIX + _local_name(name): attr
        for name, attr in element.attrib.items()
        if not name.startswith("xmlns")
    }

    listed = set(force_list)
    segments = [element.text]
    for child in element:
        tag = _local_name(child.tag)
        decoded = _read_element(child, force_list)
        if tag not in value:
            value[tag] = [decoded] if tag in listed else decoded
        elif tag in listed:
            value[tag].append(decoded)
        else:
            value[tag] = [value[tag], decoded]
            listed.add(tag)
        segments.append(child.tail)

    text = " ".join(segment.strip() for segment in segments if segment and segment.strip())
    if not value:
        return text or None
    if text:
        value[_TEXT_KEY] = text
    return value


def _build_element(tag: str, value: Any) -> ET.Element:
    element = ET.Element(tag)
    if value is None:
        return element

    if isinstance(value, dict):
        for key, child in value.items():
            if key == _TEXT_KEY:
                element.text = _text(child)
            elif key.startswith(_ATTR_PREFIX):
                element.set(key[len(_ATTR_PREFIX):], _text(child))
            elif isinstance(child, list):
                for item in child:
                    element.append(_build_element(key, item))
            else:
                element.append(_build_element(key, child))
    elif isinstance(value, list):
        for item in value:
            element.append(_build_element("item", item))
    else:
        element.text = _text(value)
    return element


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ---------------------------------------------------------------------------
# Deserializer factories
# ---------------------------------------------------------------------------


def bind(deserializer: Deserializer, destination: Any) -> Callable[[bytes], None]:
    """Close a deserializer over its destination."""

    def handler(body: bytes) -> None:
        deserializer(body, destination)

    return handler
