"""
Lowering tests: run the real pipeline (collect -> parse -> build) on the
headers in tests/headers/<case>/ and check the resulting IR graph.

To add a case: create tests/headers/<case>/<case>.h and a test that calls
_build("<case>").
"""

from pathlib import Path

import pytest

from irgen.ir import (
    NO_INDEX,
    Access,
    Annotation,
    BuiltinDataType,
    BuiltinKind,
    DataType,
    DiagnosticSeverity,
    EnumDataType,
    EnumeratorField,
    ExtractConfig,
    Function,
    FunctionDataType,
    Message,
    Modifier,
    QualifiedType,
    Qualifier,
    Record,
    RecordDataType,
    TemplateArgumentKind,
)
from irgen.ir_builder import IRBuilder, generate_graph
from irgen.serialize import graph_to_json

TESTS_DIR = Path(__file__).resolve().parent
HEADERS_DIR = TESTS_DIR / "headers"
COMPILER_ARGS = ["-x", "c++", "-std=c++17"]


def _build(case: str, root: str = ""):
    """Extract the IR graph for one header case directory."""
    config = ExtractConfig(
        directories=[str(HEADERS_DIR / case / root)],
        compiler_args=COMPILER_ARGS,
    )
    return generate_graph(config)


def _named(graph, cls, name):
    matches = [n for n in graph.of_type(cls) if n.name == name]
    assert len(matches) == 1, f"expected one {cls.__name__} named {name!r}, got {matches}"
    return matches[0]


def _field(record, name):
    return next(f for f in record.fields if f.name == name)


def _data_type_of(graph, qualified_type_index):
    qualified = graph.get_node(qualified_type_index)
    assert isinstance(qualified, QualifiedType)
    return graph.get_node(qualified.data_type)


# ---------------------------------------------------------------------------
# Functions
# ---------------------------------------------------------------------------


def test_simple_function():
    graph = _build("simple_function")

    assert len(graph) == 3
    void_type, return_type, function = graph.nodes
    assert isinstance(void_type, BuiltinDataType)
    assert void_type.builtin_kind is BuiltinKind.VOID
    assert isinstance(return_type, QualifiedType)
    assert return_type.data_type == void_type.index
    assert return_type.qualifiers == []
    assert isinstance(function, Function)
    assert function.name == "Foo"
    assert function.return_qualified_type == return_type.index
    assert function.parameters == []
    assert function.access is Access.PUBLIC
    assert function.modifiers == []
    assert function.location.file.endswith("simple_function.h")
    assert function.location.line == 2


def test_function_with_parameters():
    graph = _build("parameter_function")

    assert len(graph) == 5
    int_type = _named(graph, DataType, "int")
    float_type = _named(graph, DataType, "float")
    assert int_type.builtin_kind is BuiltinKind.INT32
    assert float_type.builtin_kind is BuiltinKind.FLOAT

    function = _named(graph, Function, "Foo")
    assert [p.name for p in function.parameters] == ["a", "b"]
    # the return type and `a` are the same interned QualifiedType
    assert function.return_qualified_type == function.parameters[0].qualified_type
    assert _data_type_of(graph, function.parameters[0].qualified_type) is int_type
    assert _data_type_of(graph, function.parameters[1].qualified_type) is float_type


def test_function_with_sugared_parameters():
    graph = _build("sugared_parameters")

    assert len(graph) == 6
    assert len(graph.of_type(DataType)) == 2

    const_int = _named(graph, QualifiedType, "const int")
    int_ref = _named(graph, QualifiedType, "int &")
    const_float_ref = _named(graph, QualifiedType, "const float &")
    assert const_int.qualifiers == [Qualifier.CONST]
    assert int_ref.qualifiers == [Qualifier.REFERENCE]
    assert const_float_ref.qualifiers == [Qualifier.REFERENCE, Qualifier.CONST]
    assert const_int.data_type == int_ref.data_type

    function = _named(graph, Function, "Foo")
    assert function.return_qualified_type == const_int.index
    assert [p.qualified_type for p in function.parameters] == [int_ref.index, const_float_ref.index]


def test_qualifier_peel_order():
    graph = _build("qualifiers")
    function = _named(graph, Function, "Take")
    int_type = _named(graph, DataType, "int")

    qualifiers = {
        p.name: graph.get_node(p.qualified_type).qualifiers for p in function.parameters
    }
    assert qualifiers == {
        "p": [Qualifier.POINTER],
        "r": [Qualifier.REFERENCE],
        "cr": [Qualifier.REFERENCE, Qualifier.CONST],
        "cp": [Qualifier.POINTER, Qualifier.CONST],
        "rr": [Qualifier.REFERENCE],
        "pc": [Qualifier.POINTER, Qualifier.CONST],
    }
    assert qualifiers["pc"] == qualifiers["cp"]
    assert {_data_type_of(graph, p.qualified_type).index for p in function.parameters} == {
        int_type.index
    }
    assert not any(Qualifier.OUTPUT in q for q in qualifiers.values())


def test_pointer_levels_share_one_data_type():
    graph = _build("qualifiers")
    function = _named(graph, Function, "Nest")
    pp, rc = function.parameters

    assert graph.get_node(pp.qualified_type).qualifiers == [Qualifier.POINTER]
    assert graph.get_node(rc.qualified_type).qualifiers == [Qualifier.REFERENCE, Qualifier.CONST]
    int_pointer = _named(graph, DataType, "int *")
    assert _data_type_of(graph, pp.qualified_type).index == int_pointer.index
    assert _data_type_of(graph, rc.qualified_type).index == int_pointer.index


def test_duplicate_free_functions_collapse_to_first():
    graph = _build("duplicates")

    functions = graph.of_type(Function)
    assert len(functions) == 1
    assert functions[0].name == "Twice"
    assert functions[0].parameters == []
    assert len(graph) == 3


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def test_simple_class():
    graph = _build("simple_class")

    assert len(graph) == 11
    record = _named(graph, Record, "Foo")
    assert record.index == 0

    assert len(record.fields) == 1
    member = record.fields[0]
    assert member.name == "member"
    assert member.access is Access.PRIVATE
    assert member.offset > 0  # after the vtable pointer
    assert _data_type_of(graph, member.qualified_type).builtin_kind is BuiltinKind.INT32

    methods = {graph.get_node(i).name: graph.get_node(i) for i in record.functions}
    assert {name: m.modifiers for name, m in methods.items()} == {
        "Foo::Method": [],
        "Foo::ConstMethod": [Modifier.CONST],
        "Foo::VirtualMethod": [Modifier.VIRTUAL],
        "Foo::PureVirtualMethod": [Modifier.PURE_VIRTUAL],
        "Foo::ConstPureVirtualMethod": [Modifier.CONST, Modifier.PURE_VIRTUAL],
        "Foo::StaticMethod": [Modifier.STATIC],
    }
    for method in methods.values():
        assert method.access is Access.PUBLIC
        assert method.location.file.endswith("simple_class.h")
        assert method.location.line > 0
        assert method.location.column > 0


def test_base_classes():
    graph = _build("base_class")

    assert len(graph) == 3
    base_a = _named(graph, Record, "BaseA")
    base_b = _named(graph, Record, "BaseB")
    derived = _named(graph, Record, "Derived")

    assert len(derived.bases) == 2
    first, second = derived.bases
    assert (first.base_record, first.access, first.is_virtual) == (base_a.index, Access.PUBLIC, False)
    assert (second.base_record, second.access, second.is_virtual) == (
        base_b.index,
        Access.PROTECTED,
        True,
    )


def test_only_written_virtual_marks_methods():
    graph = _build("overrides")

    modifiers = {f.name: f.modifiers for f in graph.of_type(Function)}
    assert modifiers == {
        "Shape::Area": [Modifier.CONST, Modifier.VIRTUAL],
        "Shape::Grow": [Modifier.VIRTUAL],
        "Square::Area": [Modifier.CONST],
        "Square::Grow": [Modifier.VIRTUAL],
    }


def test_self_referencing_record():
    graph = _build("cyclic")

    node = _named(graph, Record, "Node")
    next_field = _field(node, "next")
    assert graph.get_node(next_field.qualified_type).qualifiers == [Qualifier.POINTER]
    pointee = _data_type_of(graph, next_field.qualified_type)
    assert isinstance(pointee, RecordDataType)
    assert pointee.record_type == node.index
    assert next_field.offset == 0
    assert _field(node, "value").offset > 0


def test_mutually_referencing_records():
    graph = _build("cyclic")

    a = _named(graph, Record, "A")
    b = _named(graph, Record, "B")
    # the forward declaration of B resolves to its definition
    assert [f.name for f in b.fields] == ["a"]
    assert _data_type_of(graph, _field(a, "b").qualified_type).record_type == b.index
    assert _data_type_of(graph, _field(b, "a").qualified_type).record_type == a.index


def test_namespaced_names_and_offsets():
    graph = _build("namespaces")

    point = _named(graph, Record, "outer::inner::Point")
    assert [(f.name, f.offset) for f in point.fields] == [("x", 0), ("y", 4)]

    length = _named(graph, Function, "outer::inner::Length")
    param = graph.get_node(length.parameters[0].qualified_type)
    assert param.qualifiers == [Qualifier.REFERENCE, Qualifier.CONST]
    point_type = graph.get_node(param.data_type)
    assert point_type.name == "outer::inner::Point"
    assert point_type.record_type == point.index
    assert not point_type.is_external
    assert _data_type_of(graph, length.return_qualified_type).builtin_kind is BuiltinKind.FLOAT


def test_anonymous_record():
    graph = _build("anonymous")

    outer = _named(graph, Record, "WithAnon")
    assert not outer.is_anonymous

    anonymous = [r for r in graph.of_type(Record) if r.is_anonymous]
    assert len(anonymous) == 1
    inner = anonymous[0]
    assert inner.name.startswith("WithAnon::(anonymous struct at anonymous.h:")
    assert [f.name for f in inner.fields] == ["a"]
    assert _data_type_of(graph, _field(outer, "inner").qualified_type).record_type == inner.index


def test_annotations_and_comments():
    graph = _build("annotated")

    widget = _named(graph, Record, "Widget")
    assert widget.annotations == [Annotation("export", ["python", "csharp"])]
    assert widget.comments == ["A widget that can be drawn.", "Widgets are cheap to copy."]

    draw = _named(graph, Function, "Draw")
    assert draw.annotations == [Annotation("entry", [])]
    assert draw.comments == ["Draw a widget."]


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def type_graph():
    return _build("type_parsing")


@pytest.fixture(scope="module")
def holder(type_graph):
    return _named(type_graph, Record, "Holder")


def test_aliases_lower_to_canonical_types(type_graph, holder):
    count = _field(holder, "count")
    ratio = _field(holder, "ratio")

    assert type_graph.get_node(count.qualified_type).name == "IntAlias"
    assert _data_type_of(type_graph, count.qualified_type).builtin_kind is BuiltinKind.INT32
    assert type_graph.get_node(ratio.qualified_type).name == "FloatAlias"
    assert _data_type_of(type_graph, ratio.qualified_type).builtin_kind is BuiltinKind.FLOAT
    assert not [r for r in type_graph.of_type(Record) if "Alias" in r.name]


def test_enum_type(type_graph, holder):
    color = _data_type_of(type_graph, _field(holder, "color").qualified_type)

    assert isinstance(color, EnumDataType)
    assert color.name == "Color"
    assert color.enumerators == [
        EnumeratorField("Red", 0),
        EnumeratorField("Green", 123),
        EnumeratorField("Blue", 124),
    ]
    assert type_graph.get_node(color.underlying_type).builtin_kind is BuiltinKind.INT64


def test_template_instantiation(type_graph, holder):
    array = _data_type_of(type_graph, _field(holder, "values").qualified_type)
    int_type = _named(type_graph, DataType, "int")

    assert isinstance(array, RecordDataType)
    assert array.name == "Array<int, 4>"
    assert [(a.kind, a.value) for a in array.template_args] == [
        (TemplateArgumentKind.TYPE, int_type.index),
        (TemplateArgumentKind.INTEGRAL, 4),
    ]
    assert array.record_type != NO_INDEX
    assert type_graph.get_node(array.record_type).name == "Array<int, 4>"


@pytest.mark.parametrize(
    "field_name, name",
    [("pack", "Pack<int, float>"), ("wrapped", "Wrap<Box>")],
)
def test_unrepresentable_template_arguments(type_graph, holder, field_name, name):
    record_type = _data_type_of(type_graph, _field(holder, field_name).qualified_type)

    assert isinstance(record_type, RecordDataType)
    assert record_type.name == name
    assert [(a.kind, a.value) for a in record_type.template_args] == [
        (TemplateArgumentKind.UNKNOWN, NO_INDEX)
    ]


def test_function_pointers(type_graph, holder):
    callback = _field(holder, "callback")
    printer = _field(holder, "printer")

    assert type_graph.get_node(callback.qualified_type).qualifiers == [Qualifier.POINTER]
    callback_type = _data_type_of(type_graph, callback.qualified_type)
    assert isinstance(callback_type, FunctionDataType)
    assert type_graph.get_node(callback_type.return_type).builtin_kind is BuiltinKind.VOID
    assert [type_graph.get_node(i).builtin_kind for i in callback_type.argument_types] == [
        BuiltinKind.INT32,
        BuiltinKind.FLOAT,
    ]
    assert not callback_type.is_variadic

    printer_type = _data_type_of(type_graph, printer.qualified_type)
    assert printer_type.is_variadic
    assert len(printer_type.argument_types) == 1
    assert type_graph.get_node(printer_type.return_type).builtin_kind is BuiltinKind.INT32


@pytest.mark.parametrize(
    "field_name, kind",
    [("byte", BuiltinKind.UINT8), ("precise", BuiltinKind.LONG_DOUBLE)],
)
def test_builtin_kinds(type_graph, holder, field_name, kind):
    data_type = _data_type_of(type_graph, _field(holder, field_name).qualified_type)
    assert data_type.builtin_kind is kind


def test_data_types_and_qualified_types_are_interned(type_graph):
    data_type_names = [n.name for n in type_graph.of_type(DataType)]
    assert len(data_type_names) == len(set(data_type_names))

    qualified_keys = [
        (q.name, q.data_type, tuple(q.qualifiers)) for q in type_graph.of_type(QualifiedType)
    ]
    assert len(qualified_keys) == len(set(qualified_keys))

    for qualified in type_graph.of_type(QualifiedType):
        assert isinstance(type_graph.get_node(qualified.data_type), DataType)


# ---------------------------------------------------------------------------
# Scope, diagnostics, determinism
# ---------------------------------------------------------------------------


def test_declarations_outside_roots_are_skipped():
    graph = _build("scope", "in_scope")

    assert [r.name for r in graph.of_type(Record)] == ["Local"]
    assert [f.name for f in graph.of_type(Function)] == ["Make"]

    external = _data_type_of(graph, _field(_named(graph, Record, "Local"), "ext").qualified_type)
    assert isinstance(external, RecordDataType)
    assert external.name == "External"
    assert external.is_external

    make = _named(graph, Function, "Make")
    returned = graph.get_node(make.return_qualified_type)
    assert returned.qualifiers == [Qualifier.POINTER]
    assert returned.data_type == external.index


def test_syntax_error_becomes_message():
    graph = _build("broken")

    messages = graph.of_type(Message)
    assert messages
    assert graph.get_node(0) is messages[0]
    error = next(m for m in messages if m.severity >= DiagnosticSeverity.ERROR)
    assert error.location.file.endswith("broken.h")
    assert error.location.line > 0
    assert error.message
    # extraction continues past the error
    assert _named(graph, Record, "Broken").fields[0].name == "x"


def test_extraction_is_deterministic():
    first = graph_to_json(_build("simple_class"))
    second = graph_to_json(_build("simple_class"))
    assert first == second


def test_graph_is_frozen():
    assert _build("simple_function").frozen


def test_user_scope_is_case_insensitive_prefix(tmp_path):
    root = tmp_path.resolve()
    builder = IRBuilder(ExtractConfig(directories=[str(root)]))

    assert builder.is_user_path(str(root / "api.h"))
    assert builder.is_user_path(str(root / "api.h").upper())
    assert not builder.is_user_path("")
    assert not builder.is_user_path("/usr/include/stdio.h")
