"""
ir_printer.py — Pretty-print an IR graph for debugging

This utility provides human-readable output of the IR graph.
Useful for:
  - Debugging the lowering pass
  - Following index references between nodes
  - Implementing the --emit-ir flag
"""

from typing import List

from .ir import (
    BuiltinDataType,
    EnumDataType,
    Function,
    FunctionDataType,
    IRGraph,
    Message,
    Node,
    QualifiedType,
    Record,
    RecordDataType,
    UnknownDataType,
    Variable,
)


class IRPrinter:
    """
    Pretty-prints an IR graph, one node per line.

    Output format:
      [0] BuiltinDataType "void" kind=void
      [1] QualifiedType "void" -> 0 qualifiers=[]
      [2] Function "Foo" ret=1 params=[] modifiers=[]
    """

    def __init__(self, graph: IRGraph):
        self.graph = graph

    def print_all(self) -> str:
        """Print the entire graph to a string."""
        lines: List[str] = []

        lines.append("=" * 70)
        lines.append(f"IR graph ({len(self.graph)} nodes)")
        lines.append("=" * 70)
        for node in self.graph:
            lines.append(self._format_node(node))
        lines.append("")

        return "\n".join(lines)

    def _format_node(self, node: Node) -> str:
        head = f'[{node.index}] {type(node).__name__} "{node.name}"'
        detail = self._format_detail(node)
        return f"{head} {detail}" if detail else head

    def _format_detail(self, node: Node) -> str:
        if isinstance(node, Message):
            return f"{node.severity.name} {node.message}"
        elif isinstance(node, Record):
            fields = ", ".join(f"{f.name}:{f.qualified_type}@{f.offset}" for f in node.fields)
            bases = ", ".join(
                f"{b.base_record}{' virtual' if b.is_virtual else ''} {b.access.value}"
                for b in node.bases
            )
            return f"fields=[{fields}] methods={node.functions} bases=[{bases}]"
        elif isinstance(node, Function):
            params = ", ".join(f"{p.name}:{p.qualified_type}" for p in node.parameters)
            modifiers = [m.value for m in node.modifiers]
            return f"ret={node.return_qualified_type} params=[{params}] modifiers={modifiers}"
        elif isinstance(node, Variable):
            return f"type={node.qualified_type} value={node.value!r}"
        elif isinstance(node, QualifiedType):
            qualifiers = [q.value for q in node.qualifiers]
            return f"-> {node.data_type} qualifiers={qualifiers}"
        elif isinstance(node, BuiltinDataType):
            return f"kind={node.builtin_kind.value}"
        elif isinstance(node, RecordDataType):
            args = ", ".join(f"{a.kind.value}:{a.value}" for a in node.template_args)
            return f"record={node.record_type} args=[{args}]"
        elif isinstance(node, EnumDataType):
            values = ", ".join(f"{e.name}={e.value}" for e in node.enumerators)
            return f"underlying={node.underlying_type} [{values}]"
        elif isinstance(node, FunctionDataType):
            variadic = ", ..." if node.is_variadic else ""
            return f"ret={node.return_type} args={node.argument_types}{variadic}"
        elif isinstance(node, UnknownDataType):
            return ""
        else:
            return f"{type(node).__name__}(...)"


def print_ir(graph: IRGraph) -> str:
    """Convenience function to print an IR graph."""
    printer = IRPrinter(graph)
    return printer.print_all()
