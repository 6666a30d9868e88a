from __future__ import annotations

import json
import operator
import re
from typing import Any, Callable, Dict, Mapping, Optional
import collections.abc

import yaml

from stepwise.stepwise_datatypes import CLOSE, close
from stepwise.stepwise_interpreter import STEPS
from stepwise.stepwise_runtime import Process


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        enc = encoding or 'utf-8'
        try:
            return data.decode(enc, errors='replace')
        except LookupError:
            return data.decode('utf-8', errors='replace')
    if isinstance(data, str):
        return data
    return str(data)


def _encoding_from_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    m = re.search(r'charset\s*=\s*([^\s;]+)', content_type, re.IGNORECASE)
    if m:
        return m.group(1).strip('"').strip("'")
    return None


def _to_builtin(obj: Any) -> Any:
    # Tuples (e.g. the pairs ManyStep yields) and mappings become plain lists/dicts
    if isinstance(obj, (list, tuple)):
        return [_to_builtin(x) for x in obj]
    if isinstance(obj, collections.abc.Mapping):
        return {k: _to_builtin(v) for k, v in obj.items()}
    return obj


def detect_format(content_type: Optional[str] = None,
                  data_hint: Optional[str] = None,
                  filename: Optional[str] = None) -> Optional[str]:
    """
    Returns a canonical format name, 'json' or 'yaml'.
    Uses Content-Type first, then the file suffix, then simple data sniffing.
    """
    ct = (content_type or "").lower()
    if 'json' in ct:
        return 'json'
    if 'yaml' in ct or 'x-yaml' in ct:
        return 'yaml'

    name = (filename or "").lower()
    if name.endswith('.json'):
        return 'json'
    if name.endswith(('.yaml', '.yml')):
        return 'yaml'

    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith('{') or s.startswith('['):
            # Try JSON first; YAML is a superset
            return 'json'
        if s:
            return 'yaml'
    return None


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str,
                *,
                content_type: Optional[str] = None,
                fmt: Optional[str] = None) -> Any:
    """
    Convert text (or bytes) to native Python structures.
    Supported fmt: 'json', 'yaml'. If fmt is None, uses content_type, then sniffing.
    Unknown formats return the raw text.
    """
    enc = _encoding_from_content_type(content_type)
    text = _norm_text(data, encoding=enc)
    f = (fmt or detect_format(content_type, text))
    if f == 'json':
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # Declared JSON that is really YAML (flow style with bare words, etc.)
            return yaml.safe_load(text)
    if f == 'yaml':
        return yaml.safe_load(text)
    return text


def serialize(value: Any,
              *,
              fmt: str,
              pretty: bool = True) -> str:
    """
    Convert a native Python value into a textual representation.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    built = _to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None, default=repr)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False, default_flow_style=None if pretty else True)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


# --------------------------
# Process documents
# --------------------------

# Callables available to documents by name, e.g. "$len" or "$add".
BUILTINS: Dict[str, Callable] = {
    "add": operator.add,
    "sub": operator.sub,
    "mul": operator.mul,
    "div": operator.truediv,
    "floordiv": operator.floordiv,
    "mod": operator.mod,
    "pow": operator.pow,
    "neg": operator.neg,
    "not": operator.not_,
    "eq": operator.eq,
    "lt": operator.lt,
    "gt": operator.gt,
    "abs": abs,
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "sum": sum,
    "min": min,
    "max": max,
    "sorted": sorted,
    "list": list,
    "upper": str.upper,
    "lower": str.lower,
    "print": print,
}


def _resolve_name(text: str, table: Mapping[str, Any]) -> Any:
    if text == "$":
        return CLOSE
    if text.startswith("$$"):
        return text[1:]
    if text.startswith("$/"):
        target = text[2:]
        if target not in STEPS:
            raise KeyError(f"Unknown step in document: {target!r}")
        return close(STEPS[target])
    name = text[1:]
    if name not in table:
        raise KeyError(f"Unknown name in document: {name!r}")
    return table[name]


def load_tokens(document: Any, names: Optional[Mapping[str, Any]] = None) -> Any:
    """
    Turns a deserialized document into tokens.

    Strings starting with ``$`` are references: ``"$"`` is the unaddressed
    Closer, ``"$/G"`` a Closer addressed to step G, ``"$G"`` the built-in
    step named G and ``"$name"`` an entry of ``names`` or of BUILTINS.
    ``"$$text"`` stands for the literal string ``"$text"``.
    """
    table = {**BUILTINS, **STEPS, **(names or {})}

    def convert(value):
        if isinstance(value, str) and value.startswith("$"):
            return _resolve_name(value, table)
        if isinstance(value, list):
            return [convert(v) for v in value]
        if isinstance(value, collections.abc.Mapping):
            return {k: convert(v) for k, v in value.items()}
        return value

    return convert(document)


def load_process(data: bytes | bytearray | str,
                 *,
                 content_type: Optional[str] = None,
                 fmt: Optional[str] = None,
                 names: Optional[Mapping[str, Any]] = None,
                 list_scope: bool = False) -> Process:
    """Deserializes a process document (a list or a mapping of tokens) into a Process."""
    document = deserialize(data, content_type=content_type, fmt=fmt)
    if not isinstance(document, (list, collections.abc.Mapping)):
        raise ValueError("A process document must be a list or a mapping of tokens")
    return Process(load_tokens(document, names), list_scope)


__all__ = [
    "deserialize",
    "serialize",
    "detect_format",
    "BUILTINS",
    "load_tokens",
    "load_process",
]
