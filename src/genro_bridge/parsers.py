# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Request body parsers and their registry.

A parser is anything with ``parse(raw_body: bytes, content_type: str)``
returning the structured body (usually a dict). The registry maps media
types to parsers, plus one optional wildcard key ``"*"`` used when no exact
match exists. Unregistered media types pass through unparsed.

Parser definitions accepted by ``ParserRegistry``:

- a parser instance (has a ``parse`` method)
- a parser class, instantiated without arguments
- an import path ``"package.module:ClassName"`` (or dotted ``package.module.ClassName``)

Anything else raises ``ConfigurationError`` when the registry is built.

Form encoding
=============
``parse_query()`` decodes ``application/x-www-form-urlencoded`` data with
bracket notation into nested structures::

    parse_query("a=1&tags[]=x&tags[]=y&user[name]=jo")
    # {"a": "1", "tags": ["x", "y"], "user": {"name": "jo"}}

Example::

    registry = ParserRegistry({"application/json": JsonParser, "*": FormParser()})
    registry.resolve("application/json; charset=utf-8")   # JsonParser instance
    registry.resolve("text/plain")                         # FormParser (wildcard)
"""

from __future__ import annotations

import importlib
import json
import re
from typing import Any, Mapping, Protocol, runtime_checkable
from urllib.parse import parse_qsl

from .exceptions import ConfigurationError

__all__ = [
    "BodyParser",
    "DEFAULT_PARSERS",
    "FormParser",
    "JsonParser",
    "ParserRegistry",
    "WILDCARD",
    "media_type",
    "parse_query",
]

WILDCARD = "*"

_KEY_RE = re.compile(r"\[([^\]]*)\]")


@runtime_checkable
class BodyParser(Protocol):
    def parse(self, raw_body: bytes, content_type: str) -> Any: ...


def media_type(content_type: str | None) -> str:
    """Media type without parameters, lowercased: ``"text/html; q=1"`` -> ``"text/html"``."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _charset(content_type: str, default: str = "utf-8") -> str:
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            return value.strip().strip('"')
    return default


def parse_query(query: str) -> dict[str, Any]:
    """Decode a urlencoded string honoring ``a[b][]`` bracket notation."""
    result: dict[str, Any] = {}
    for name, value in parse_qsl(query, keep_blank_values=True):
        head, _, rest = name.partition("[")
        if not rest:
            result[head] = value
            continue
        keys = [head] + _KEY_RE.findall("[" + rest)
        _assign(result, keys, value)
    return result


def _assign(target: dict[str, Any], keys: list[str], value: str) -> None:
    node: Any = target
    for index, key in enumerate(keys):
        last = index == len(keys) - 1
        if isinstance(node, list):
            if key == "":
                if last:
                    node.append(value)
                    return
                node.append({})
                node = node[-1]
                continue
            # mixed list and keyed entries under one name are not supported
            return
        if last:
            if key == "":
                return
            node[key] = value
            return
        next_is_append = keys[index + 1] == ""
        child = node.get(key)
        if next_is_append:
            if not isinstance(child, list):
                child = node[key] = []
        elif not isinstance(child, dict):
            child = node[key] = {}
        node = child


class JsonParser:
    """Parse ``application/json`` bodies. An empty body parses to ``{}``."""

    __slots__ = ()

    def parse(self, raw_body: bytes, content_type: str) -> Any:
        if not raw_body:
            return {}
        text = raw_body.decode(_charset(content_type))
        return json.loads(text)


class FormParser:
    """Parse ``application/x-www-form-urlencoded`` bodies."""

    __slots__ = ()

    def parse(self, raw_body: bytes, content_type: str) -> Any:
        return parse_query(raw_body.decode(_charset(content_type)))


DEFAULT_PARSERS: dict[str, Any] = {
    "application/json": JsonParser,
    "application/x-www-form-urlencoded": FormParser,
}


def _import_string(path: str) -> Any:
    module_name, sep, attr = path.partition(":")
    if not sep:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise ConfigurationError(f"Invalid parser import path '{path}'.")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(f"Unable to import parser '{path}'.") from exc


class ParserRegistry:
    """Media type -> parser map with one optional wildcard entry."""

    __slots__ = ("_parsers",)

    def __init__(self, parsers: Mapping[str, Any] | None = None) -> None:
        self._parsers: dict[str, BodyParser] = {}
        for key, definition in (parsers or {}).items():
            self.register(key, definition)

    def register(self, key: str, definition: Any) -> None:
        name = WILDCARD if key == WILDCARD else media_type(key)
        self._parsers[name] = self._build(name, definition)

    @staticmethod
    def _build(key: str, definition: Any) -> BodyParser:
        if isinstance(definition, str):
            definition = _import_string(definition)
        if isinstance(definition, type):
            definition = definition()
        if not isinstance(definition, BodyParser):
            raise ConfigurationError(
                f"The '{key}' request parser is invalid. It must implement parse(raw_body, content_type)."
            )
        return definition

    def resolve(self, content_type: str | None) -> BodyParser | None:
        """Exact media type first, then the wildcard; ``None`` when neither exists."""
        parser = self._parsers.get(media_type(content_type))
        if parser is None:
            parser = self._parsers.get(WILDCARD)
        return parser

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and (key if key == WILDCARD else media_type(key)) in self._parsers

    def __len__(self) -> int:
        return len(self._parsers)

    def __repr__(self) -> str:
        return f"ParserRegistry({sorted(self._parsers)!r})"
