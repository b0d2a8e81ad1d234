"""
code_tree.py — Namespace/class/function view of an IR graph

Code generators rarely want the flat node list; they want to emit one
namespace at a time, one class at a time, with every overload of a function
grouped together.  build_code_tree() produces that shape, resolving every
parameter and return type to a TypeHolder through the GeneratorControl.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Flag
from typing import TYPE_CHECKING, Dict, List, Union

from .ir import Annotation, Function, Modifier, QualifiedType, Qualifier, Record

if TYPE_CHECKING:
    from .plugin import GeneratorControl, TypeHolder


class ParameterQualifier(Flag):
    NONE = 0
    CONST = 1
    REFERENCE = 2
    OUTPUT = 4


_PARAMETER_QUALIFIERS = {
    Qualifier.CONST: ParameterQualifier.CONST,
    Qualifier.REFERENCE: ParameterQualifier.REFERENCE,
    Qualifier.OUTPUT: ParameterQualifier.OUTPUT,
}


@dataclass
class CodeParameter:
    """A parameter, or a return value when name is empty."""

    name: str
    type: TypeHolder
    qualifiers: ParameterQualifier = ParameterQualifier.NONE


@dataclass
class FunctionOverload:
    function_index: int
    parameters: List[CodeParameter]
    return_type: CodeParameter
    is_const: bool = False
    annotations: List[Annotation] = field(default_factory=list)


@dataclass
class FunctionNode:
    name: str
    overloads: List[FunctionOverload] = field(default_factory=list)


@dataclass
class ClassNode:
    name: str
    record_index: int
    methods: List[FunctionNode] = field(default_factory=list)
    annotations: List[Annotation] = field(default_factory=list)


@dataclass
class NamespaceNode:
    name: str
    children: List[CodeTree] = field(default_factory=list)

    def namespace(self, name: str) -> NamespaceNode:
        """Child namespace called name, created if missing."""
        for child in self.children:
            if isinstance(child, NamespaceNode) and child.name == name:
                return child
        child = NamespaceNode(name)
        self.children.append(child)
        return child

    def find(self, name: str) -> CodeTree | None:
        for child in self.children:
            if child.name == name:
                return child
        return None


CodeTree = Union[NamespaceNode, ClassNode, FunctionNode]


def split_qualified_name(name: str) -> List[str]:
    """Split on "::" outside template argument lists: "a::B<c::d>" -> ["a", "B<c::d>"]."""
    parts = []
    depth = 0
    start = 0
    i = 0
    while i < len(name):
        ch = name[i]
        if ch in "<(":
            depth += 1
        elif ch in ">)":
            depth -= 1
        elif depth == 0 and name.startswith("::", i):
            parts.append(name[start:i])
            i += 2
            start = i
            continue
        i += 1
    parts.append(name[start:])
    return [p for p in parts if p]


def _parameter(control: GeneratorControl, name: str, qualified_type: int) -> CodeParameter:
    node = control.get_node(qualified_type)
    qualifiers = ParameterQualifier.NONE
    if isinstance(node, QualifiedType):
        for qualifier in node.qualifiers:
            qualifiers |= _PARAMETER_QUALIFIERS.get(qualifier, ParameterQualifier.NONE)
        annotations = node.annotations
    else:
        annotations = []
    return CodeParameter(
        name=name,
        type=control.generate_type(node, annotations),
        qualifiers=qualifiers,
    )


def _overload(control: GeneratorControl, function: Function) -> FunctionOverload:
    return FunctionOverload(
        function_index=function.index,
        parameters=[_parameter(control, p.name, p.qualified_type) for p in function.parameters],
        return_type=_parameter(control, "", function.return_qualified_type),
        is_const=Modifier.CONST in function.modifiers,
        annotations=list(function.annotations),
    )


def _group_overloads(
    control: GeneratorControl, functions: List[Function]
) -> Dict[str, FunctionNode]:
    grouped: Dict[str, FunctionNode] = {}
    for function in functions:
        leaf = split_qualified_name(function.name)[-1]
        grouped.setdefault(leaf, FunctionNode(leaf)).overloads.append(_overload(control, function))
    return grouped


def build_code_tree(control: GeneratorControl) -> NamespaceNode:
    """
    Build the code tree for the control's graph.

    Every Record becomes a ClassNode and every Function that is not a method
    becomes (part of) a FunctionNode, each placed under the namespaces named
    by its qualified name.  Scopes that are really enclosing classes are
    represented as namespaces.
    """
    graph = control.graph
    root = NamespaceNode("")
    records = graph.of_type(Record)
    method_indices = {i for record in records for i in record.functions}

    for record in records:
        *scopes, leaf = split_qualified_name(record.name) or [record.name]
        parent = root
        for scope in scopes:
            parent = parent.namespace(scope)
        methods = [control.get_node(i) for i in record.functions if i >= 0]
        parent.children.append(
            ClassNode(
                name=leaf,
                record_index=record.index,
                methods=list(_group_overloads(control, methods).values()),
                annotations=list(record.annotations),
            )
        )

    free_functions: Dict[tuple, List[Function]] = {}
    for function in graph.of_type(Function):
        if function.index in method_indices:
            continue
        *scopes, _ = split_qualified_name(function.name) or [function.name]
        free_functions.setdefault(tuple(scopes), []).append(function)

    for scopes, functions in free_functions.items():
        parent = root
        for scope in scopes:
            parent = parent.namespace(scope)
        parent.children.extend(_group_overloads(control, functions).values())

    return root
