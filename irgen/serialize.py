"""
serialize.py — JSON codec for the IR graph (result.json)

The artifact is a JSON array. Element i is an object describing node i:

    {"$type": "Function", "index": 2, "name": "Foo",
     "location": {"file": "...", "line": 1, "column": 6},
     "returnQualifiedType": 1, "access": "public", ...}

Keys are the camelCase form of the dataclass field names and enums are
written as their values, so the codec is driven entirely by the dataclasses
in ir.py.
"""

import dataclasses
import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, get_args, get_origin, get_type_hints

from .ir import NODE_TYPES, IRGraph, Node

TYPE_TAG = "$type"


class GraphFormatError(ValueError):
    """The serialized artifact does not describe a valid IR graph."""


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _encode_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value):
        return {
            _camel(f.name): _encode_value(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, (list, tuple)):
        return [_encode_value(v) for v in value]
    return value


def node_to_dict(node: Node) -> Dict[str, Any]:
    """Encode one node, tag first."""
    data = {TYPE_TAG: type(node).__name__}
    data.update(_encode_value(node))
    return data


def graph_to_json(graph: IRGraph, pretty: bool = True) -> str:
    """Serialize the graph to a JSON string."""
    return json.dumps(
        [node_to_dict(n) for n in graph],
        indent=2 if pretty else None,
        ensure_ascii=False,
    )


def write_graph(graph: IRGraph, out_path: str | Path) -> Path:
    """Write the graph JSON to a file and return the path."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(graph_to_json(graph), encoding="utf-8")
    return out_path


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _decode_value(hint: Any, value: Any) -> Any:
    origin = get_origin(hint)
    if origin in (list, List):
        (item_hint,) = get_args(hint)
        if not isinstance(value, list):
            raise GraphFormatError(f"Expected a list, got {value!r}")
        return [_decode_value(item_hint, v) for v in value]
    if isinstance(hint, type) and issubclass(hint, Enum):
        try:
            return hint(value)
        except ValueError as exc:
            raise GraphFormatError(str(exc)) from exc
    if dataclasses.is_dataclass(hint):
        return _decode_dataclass(hint, value)
    return value


def _decode_dataclass(cls: type, data: Any) -> Any:
    if not isinstance(data, dict):
        raise GraphFormatError(f"Expected an object for {cls.__name__}, got {data!r}")
    hints = get_type_hints(cls)
    kwargs = {}
    for f in dataclasses.fields(cls):
        key = _camel(f.name)
        if key in data:
            kwargs[f.name] = _decode_value(hints[f.name], data[key])
    return cls(**kwargs)


def node_from_dict(data: Dict[str, Any]) -> Node:
    """Decode one tagged node object."""
    if not isinstance(data, dict):
        raise GraphFormatError(f"Expected a node object, got {data!r}")
    tag = data.get(TYPE_TAG)
    cls = NODE_TYPES.get(tag)
    if cls is None:
        raise GraphFormatError(f"Unknown node type {tag!r}")
    return _decode_dataclass(cls, data)


def graph_from_json(text: str) -> IRGraph:
    """Parse a JSON string into a frozen IRGraph."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GraphFormatError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise GraphFormatError("IR artifact must be a JSON array")
    nodes = [node_from_dict(item) for item in data]
    try:
        return IRGraph.from_nodes(nodes)
    except ValueError as exc:
        raise GraphFormatError(str(exc)) from exc


def read_graph(path: str | Path) -> IRGraph:
    """Load a graph previously written by write_graph."""
    return graph_from_json(Path(path).read_text(encoding="utf-8"))
