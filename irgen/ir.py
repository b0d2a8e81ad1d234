"""
ir.py — Intermediate Representation for irgen

This module defines the IR graph that the C++ lowering pass produces and that
later code-generation phases consume.  It is deliberately free of any libclang
types so that a serialized graph can be loaded and inspected without a C++
parser installed.

The IR consists of:
  - Closed enumerations shared with the serialized artifact
  - A closed set of node dataclasses (Message, Record, Function, Variable,
    QualifiedType and the DataType variants)
  - IRGraph, the append-only node list with its interning maps

Nodes reference each other only through integer indices into the graph.
NO_INDEX (-1) means "absent / external / unresolved".
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Hashable, Iterator, List, Optional, Sequence, Tuple, Type, TypeVar, Union


NO_INDEX = -1


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Access(Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"


class Modifier(Enum):
    CONST = "const"
    VOLATILE = "volatile"
    STATIC = "static"
    VIRTUAL = "virtual"
    PURE_VIRTUAL = "pureVirtual"


class Qualifier(Enum):
    """Type qualifiers, recorded in peel order (outermost first)."""

    CONST = "const"
    REFERENCE = "reference"
    OUTPUT = "output"  # reserved for annotation-driven marking
    POINTER = "pointer"


class DiagnosticSeverity(IntEnum):
    IGNORED = 0
    NOTE = 1
    WARNING = 2
    ERROR = 3
    FATAL = 4


class BuiltinKind(Enum):
    VOID = "void"
    NULLPTR = "nullptr"
    UNSUPPORTED = "unsupported"
    BOOL = "bool"
    INT8 = "int8"
    UINT8 = "uInt8"
    INT16 = "int16"
    UINT16 = "uInt16"
    INT32 = "int32"
    UINT32 = "uInt32"
    INT64 = "int64"
    UINT64 = "uInt64"
    INT128 = "int128"
    UINT128 = "uInt128"
    FLOAT = "float"
    FLOAT16 = "float16"
    BFLOAT16 = "bFloat16"
    DOUBLE = "double"
    LONG_DOUBLE = "longDouble"
    FLOAT128 = "float128"


class TemplateArgumentKind(Enum):
    UNKNOWN = "unknown"
    TYPE = "type"
    INTEGRAL = "integral"


# ---------------------------------------------------------------------------
# Node payloads
# ---------------------------------------------------------------------------


@dataclass
class Location:
    file: str = ""
    line: int = 0
    column: int = 0


@dataclass
class Annotation:
    """A user annotation, e.g. from __attribute__((annotate("name=a,b")))."""

    name: str = ""
    attributes: List[str] = field(default_factory=list)


@dataclass
class Field:
    name: str = ""
    qualified_type: int = NO_INDEX
    offset: int = 0  # in bytes, NO_INDEX if unknown
    access: Access = Access.PUBLIC


@dataclass
class Parameter:
    name: str = ""
    qualified_type: int = NO_INDEX


@dataclass
class EnumeratorField:
    name: str = ""
    value: int = 0  # signed 64-bit


@dataclass
class TemplateArgument:
    """
    A positional template argument.

    value is a DataType index for TYPE, the literal for INTEGRAL and
    NO_INDEX for UNKNOWN.
    """

    kind: TemplateArgumentKind = TemplateArgumentKind.UNKNOWN
    value: int = NO_INDEX


@dataclass
class RecordBase:
    base_record: int = NO_INDEX
    is_virtual: bool = False
    access: Access = Access.PUBLIC


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass
class Node:
    """Fields shared by every node in the graph."""

    index: int = NO_INDEX
    name: str = ""
    location: Location = field(default_factory=Location)


@dataclass
class Message(Node):
    """A parser diagnostic."""

    message: str = ""
    category: str = ""
    severity: DiagnosticSeverity = DiagnosticSeverity.IGNORED


@dataclass
class Record(Node):
    fields: List[Field] = field(default_factory=list)
    functions: List[int] = field(default_factory=list)
    bases: List[RecordBase] = field(default_factory=list)
    is_anonymous: bool = False
    annotations: List[Annotation] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)


@dataclass
class Function(Node):
    return_qualified_type: int = NO_INDEX
    access: Access = Access.PUBLIC
    parameters: List[Parameter] = field(default_factory=list)
    modifiers: List[Modifier] = field(default_factory=list)
    annotations: List[Annotation] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)


@dataclass
class Variable(Node):
    value: str = ""
    qualified_type: int = NO_INDEX
    access: Access = Access.PUBLIC
    comments: List[str] = field(default_factory=list)


@dataclass
class DataType(Node):
    """Base of the unqualified, canonical data type variants."""


@dataclass
class UnknownDataType(DataType):
    pass


@dataclass
class BuiltinDataType(DataType):
    builtin_kind: BuiltinKind = BuiltinKind.VOID


@dataclass
class RecordDataType(DataType):
    record_type: int = NO_INDEX
    template_args: List[TemplateArgument] = field(default_factory=list)

    @property
    def is_external(self) -> bool:
        return self.record_type == NO_INDEX


@dataclass
class EnumDataType(DataType):
    underlying_type: int = NO_INDEX
    enumerators: List[EnumeratorField] = field(default_factory=list)


@dataclass
class FunctionDataType(DataType):
    return_type: int = NO_INDEX
    argument_types: List[int] = field(default_factory=list)
    is_variadic: bool = False


@dataclass
class QualifiedType(Node):
    data_type: int = NO_INDEX
    qualifiers: List[Qualifier] = field(default_factory=list)
    annotations: List[Annotation] = field(default_factory=list)


# IRNode is the closed union of everything that can live in an IRGraph
IRNode = Union[
    Message,
    Record,
    Function,
    Variable,
    UnknownDataType,
    BuiltinDataType,
    RecordDataType,
    EnumDataType,
    FunctionDataType,
    QualifiedType,
]

# Tag written into the serialized artifact -> node class
NODE_TYPES: Dict[str, Type[Node]] = {
    cls.__name__: cls
    for cls in (
        Message,
        Record,
        Function,
        Variable,
        QualifiedType,
        UnknownDataType,
        BuiltinDataType,
        RecordDataType,
        EnumDataType,
        FunctionDataType,
    )
}


def annotation_key(annotations: Sequence[Annotation]) -> Tuple[Tuple[str, Tuple[str, ...]], ...]:
    """Hashable, structural form of an annotation list."""
    return tuple((a.name, tuple(a.attributes)) for a in annotations)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class ExtractConfig:
    """Configuration for one extraction run."""

    directories: List[str]
    compiler_args: List[str] = field(default_factory=list)
    header_extensions: Tuple[str, ...] = (".h", ".hpp")
    define: str = "IRGEN"  # defined at the top of the synthesized unit


# ---------------------------------------------------------------------------
# IR Graph - the central node list
# ---------------------------------------------------------------------------


class GraphFrozenError(RuntimeError):
    """Raised when a frozen IRGraph is modified."""


N = TypeVar("N", bound=Node)


class IRGraph:
    """
    Append-only list of IR nodes.

    A node's index is its position in the list and is assigned on insertion.
    Interning keys (any hashable, conventionally a tuple whose first element
    names the node family) map to the index of the node created for them, so
    structurally identical entities are only created once.

    reserve() hands out an index before the node exists; this is how a record
    referring back to itself resolves without recursion.
    """

    def __init__(self):
        self._nodes: List[Optional[Node]] = []
        self._interned: Dict[Hashable, int] = {}
        self._frozen = False

    @classmethod
    def from_nodes(cls, nodes: Sequence[Node]) -> "IRGraph":
        """Build a frozen graph from already-indexed nodes (e.g. deserialized)."""
        graph = cls()
        for position, node in enumerate(nodes):
            if node.index != position:
                raise ValueError(
                    f"Node {node.name!r} has index {node.index}, expected {position}"
                )
            graph._nodes.append(node)
        graph.freeze()
        return graph

    def _check_writable(self):
        if self._frozen:
            raise GraphFrozenError("IR graph is frozen")

    def add(self, node: Node, key: Optional[Hashable] = None) -> int:
        """Append a node, assign its index, and optionally intern it under key."""
        self._check_writable()
        node.index = len(self._nodes)
        self._nodes.append(node)
        if key is not None:
            self._interned[key] = node.index
        return node.index

    def reserve(self, key: Optional[Hashable] = None) -> int:
        """Reserve the next index for a node that will be filled in later."""
        self._check_writable()
        index = len(self._nodes)
        self._nodes.append(None)
        if key is not None:
            self._interned[key] = index
        return index

    def fill(self, index: int, node: Node) -> None:
        """Place a node into a slot obtained from reserve()."""
        self._check_writable()
        if self._nodes[index] is not None:
            raise ValueError(f"Slot {index} is already filled")
        node.index = index
        self._nodes[index] = node

    def lookup(self, key: Hashable) -> Optional[int]:
        """Return the index interned under key, or None."""
        return self._interned.get(key)

    def get_node(self, index: int) -> Node:
        """Look up a node by index."""
        if index < 0 or index >= len(self._nodes):
            raise IndexError(f"No node at index {index}")
        node = self._nodes[index]
        if node is None:
            raise IndexError(f"Node {index} is reserved but not yet built")
        return node

    def of_type(self, cls: Type[N]) -> List[N]:
        """All nodes that are instances of cls, in index order."""
        return [n for n in self._nodes if isinstance(n, cls)]

    def freeze(self) -> None:
        """Make the graph read-only. Every reserved slot must be filled."""
        missing = [i for i, n in enumerate(self._nodes) if n is None]
        if missing:
            raise ValueError(f"Cannot freeze graph with unfilled slots {missing}")
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)


# ---------------------------------------------------------------------------
# Helper functions for the builtin type table
# ---------------------------------------------------------------------------


def clang_kind_to_builtin(clang_kind: str) -> BuiltinKind:
    """Convert a Clang TypeKind name to a BuiltinKind; unknown kinds are UNSUPPORTED."""
    mapping = {
        "VOID": BuiltinKind.VOID,
        "BOOL": BuiltinKind.BOOL,
        "CHAR_U": BuiltinKind.UINT8,
        "UCHAR": BuiltinKind.UINT8,
        "CHAR_S": BuiltinKind.INT8,
        "SCHAR": BuiltinKind.INT8,
        "USHORT": BuiltinKind.UINT16,
        "SHORT": BuiltinKind.INT16,
        "CHAR16": BuiltinKind.INT16,
        "WCHAR": BuiltinKind.INT16,
        "UINT": BuiltinKind.UINT32,
        "INT": BuiltinKind.INT32,
        "CHAR32": BuiltinKind.INT32,
        "ULONG": BuiltinKind.UINT64,
        "ULONGLONG": BuiltinKind.UINT64,
        "LONG": BuiltinKind.INT64,
        "LONGLONG": BuiltinKind.INT64,
        "UINT128": BuiltinKind.UINT128,
        "INT128": BuiltinKind.INT128,
        "FLOAT16": BuiltinKind.FLOAT16,
        "BFLOAT16": BuiltinKind.BFLOAT16,
        "FLOAT": BuiltinKind.FLOAT,
        "DOUBLE": BuiltinKind.DOUBLE,
        "LONGDOUBLE": BuiltinKind.LONG_DOUBLE,
        "FLOAT128": BuiltinKind.FLOAT128,
        "NULLPTR": BuiltinKind.NULLPTR,
    }
    return mapping.get(clang_kind, BuiltinKind.UNSUPPORTED)
