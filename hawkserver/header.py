from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from .errors import MalformedHeaderError

DEFAULT_SCHEME = "Hawk"

# key="value" with backslash escapes inside the quotes
_ATTR_RE = re.compile(r'\s*([A-Za-z0-9_]+)="((?:[^"\\]|\\.)*)"\s*')
_SCHEME_RE = re.compile(r"^\s*([A-Za-z0-9_\-]+)(?:\s+(.*))?$", re.DOTALL)
_UNESCAPE_RE = re.compile(r"\\(.)")


class Header:
    """
    A parsed or generated Hawk credential header.

    `field_name` is the HTTP header name (Authorization, Server-Authorization,
    WWW-Authenticate); `attributes` preserves insertion order.
    """

    def __init__(
        self,
        field_name: str,
        attributes: Mapping[str, Any],
        field_value: Optional[str] = None,
        scheme: str = DEFAULT_SCHEME,
    ):
        self.field_name = field_name
        self.scheme = scheme
        self._attributes: Dict[str, str] = {
            str(k): str(v) for k, v in attributes.items() if v is not None
        }
        self._field_value = field_value

    @property
    def field_value(self) -> str:
        if self._field_value is None:
            self._field_value = serialize(self.scheme, self._attributes)
        return self._field_value

    @property
    def attributes(self) -> Dict[str, str]:
        return dict(self._attributes)

    def attribute(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._attributes.get(name, default)

    def __contains__(self, name: object) -> bool:
        return name in self._attributes

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._attributes.items())

    def __str__(self) -> str:
        return self.field_value

    def __repr__(self) -> str:
        return f"Header({self.field_name!r}, {list(self._attributes)!r})"


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def serialize(scheme: str, attributes: Mapping[str, Any]) -> str:
    """
    'Hawk k1="v1", k2="v2"'. Attributes that are None or empty are omitted;
    order follows the mapping.
    """
    parts = [
        f'{k}="{_escape(str(v))}"'
        for k, v in attributes.items()
        if v is not None and str(v) != ""
    ]
    if not parts:
        return scheme
    return f"{scheme} " + ", ".join(parts)


def parse_attributes(text: str) -> Optional[Dict[str, str]]:
    """
    Tokenize 'k1="v1", k2="v2"' into an ordered dict.

    Returns None when the text is not a clean comma-separated list of quoted
    pairs or when an attribute is repeated.
    """
    out: Dict[str, str] = {}
    text = text.strip()
    pos = 0
    while pos < len(text):
        m = _ATTR_RE.match(text, pos)
        if m is None:
            return None
        name, raw = m.group(1), m.group(2)
        if name in out:
            return None
        out[name] = _UNESCAPE_RE.sub(r"\1", raw)
        pos = m.end()
        if pos < len(text):
            if text[pos] != ",":
                return None
            pos += 1
            if pos >= len(text):
                # trailing comma
                return None
    return out


def _fail(on_error: Optional[Callable[[str], Any]], message: str) -> None:
    if on_error is not None:
        on_error(message)
    raise MalformedHeaderError(message)


def parse(
    field_name: str,
    value: Any,
    on_error: Optional[Callable[[str], Any]] = None,
    scheme: str = DEFAULT_SCHEME,
) -> Header:
    """
    Build a Header from a raw field value or an already-split representation.

    Accepted inputs:
      - Header instance (returned as-is)
      - mapping of attribute name -> value
      - raw string: '<scheme> k1="v1", k2="v2"'

    A scheme mismatch or an untokenizable attribute list calls
    `on_error(message)`, which is expected to raise; if it returns (or is
    None), MalformedHeaderError is raised.
    """
    if isinstance(value, Header):
        return value
    if isinstance(value, Mapping):
        return Header(field_name, value, scheme=scheme)
    if isinstance(value, bytes):
        value = value.decode("latin-1")
    if not isinstance(value, str):
        _fail(on_error, f"unsupported {field_name} header type: {type(value).__name__}")

    m = _SCHEME_RE.match(value)
    if m is None or m.group(1).lower() != scheme.lower():
        _fail(on_error, f"invalid {field_name} header scheme")
    attributes = parse_attributes(m.group(2) or "")
    if attributes is None:
        _fail(on_error, f"invalid {field_name} header attributes")
    return Header(field_name, attributes, field_value=value, scheme=scheme)


def create(field_name: str, attributes: Mapping[str, Any], scheme: str = DEFAULT_SCHEME) -> Header:
    return Header(field_name, attributes, scheme=scheme)
