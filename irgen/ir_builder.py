"""
ir_builder.py — Build the IR graph from a parsed libclang translation unit

This module walks the translation unit produced by parser.py and lowers what
it finds into the language-neutral IR. It:
  - Walks top-level and namespace-nested declarations (records, free
    functions, aliases) that live under the configured root directories
  - Lowers every referenced type into a QualifiedType over a canonical,
    unqualified DataType
  - Interns every node so structurally identical entities appear once
  - Reserves a record's index before lowering its members, so self- and
    mutually-referential classes terminate

"""

import logging
import re
from typing import List

from clang.cindex import (
    AccessSpecifier,
    Cursor,
    CursorKind,
    TemplateArgumentKind as ClangTemplateArgumentKind,
    TypeKind,
)
from clang.cindex import Type as ClangType

from .ir import (
    NO_INDEX,
    Access,
    Annotation,
    BuiltinDataType,
    DataType,
    EnumDataType,
    EnumeratorField,
    ExtractConfig,
    Field,
    Function,
    FunctionDataType,
    IRGraph,
    Location,
    Modifier,
    Parameter,
    QualifiedType,
    Qualifier,
    Record,
    RecordBase,
    RecordDataType,
    TemplateArgument,
    TemplateArgumentKind,
    UnknownDataType,
    annotation_key,
    clang_kind_to_builtin,
)
from .parser import ParsedUnit, collect_headers, normalize_path, parse_translation_unit

logger = logging.getLogger(__name__)

_RECORD_DECL_KINDS = (CursorKind.CLASS_DECL, CursorKind.STRUCT_DECL)
_RECORD_KINDS = (CursorKind.CLASS_DECL, CursorKind.STRUCT_DECL, CursorKind.UNION_DECL)
_ALIAS_DECL_KINDS = (
    CursorKind.TYPEDEF_DECL,
    CursorKind.TYPE_ALIAS_DECL,
    CursorKind.USING_DECLARATION,
)
_REFERENCE_KINDS = (TypeKind.LVALUEREFERENCE, TypeKind.RVALUEREFERENCE)
_FUNCTION_TYPE_KINDS = (TypeKind.FUNCTIONPROTO, TypeKind.FUNCTIONNOPROTO)

# CXType_FirstBuiltin (Void) .. CXType_LastBuiltin (Ibm128)
_FIRST_BUILTIN = 2
_LAST_BUILTIN = 40

_ACCESS = {
    AccessSpecifier.PUBLIC: Access.PUBLIC,
    AccessSpecifier.PROTECTED: Access.PROTECTED,
    AccessSpecifier.PRIVATE: Access.PRIVATE,
}

_LEADING_CV = re.compile(r"^(?:(?:const|volatile)\s+)+")
_TRAILING_CV = re.compile(r"(?:\s*\b(?:const|volatile)\b)+$")
_COMMENT_PREFIX = re.compile(r"^(?://[/!]?<?|/\*[*!]?<?|\*)")


# ---------------------------------------------------------------------------
# Cursor helpers
# ---------------------------------------------------------------------------


def cursor_location(cursor: Cursor) -> Location:
    loc = cursor.location
    return Location(
        file=normalize_path(loc.file.name) if loc.file else "",
        line=loc.line,
        column=loc.column,
    )


def _access(specifier) -> Access:
    return _ACCESS.get(specifier, Access.PUBLIC)


def _is_anonymous(cursor: Cursor) -> bool:
    spelling = cursor.spelling
    return (
        cursor.is_anonymous()
        or not spelling
        or "(anonymous" in spelling
        or "(unnamed" in spelling
    )


def _name_part(cursor: Cursor) -> str:
    """The component a cursor contributes to a fully-qualified name."""
    if cursor.kind in _RECORD_KINDS:
        if _is_anonymous(cursor):
            keyword = {CursorKind.STRUCT_DECL: "struct", CursorKind.UNION_DECL: "union"}.get(
                cursor.kind, "class"
            )
            loc = cursor.location
            file_name = loc.file.name.replace("\\", "/").rsplit("/", 1)[-1] if loc.file else ""
            return f"(anonymous {keyword} at {file_name}:{loc.line}:{loc.column})"
        if cursor.get_num_template_arguments() > 0:
            # displayname carries the arguments, e.g. "Box<int>"
            return cursor.displayname
    return cursor.spelling


def qualified_name(cursor: Cursor) -> str:
    """e.g. "outer::inner::Point::Length"; unnamed scopes are skipped."""
    parts = []
    current = cursor
    while current is not None and current.kind != CursorKind.TRANSLATION_UNIT:
        part = _name_part(current)
        if part:
            parts.append(part)
        current = current.semantic_parent
    return "::".join(reversed(parts))


def _annotations(cursor: Cursor) -> List[Annotation]:
    """annotate("name") or annotate("name=a,b") attributes on a declaration."""
    annotations = []
    for child in cursor.get_children():
        if child.kind == CursorKind.ANNOTATE_ATTR:
            name, _, attributes = child.spelling.partition("=")
            annotations.append(
                Annotation(
                    name=name.strip(),
                    attributes=[a.strip() for a in attributes.split(",") if a.strip()],
                )
            )
    return annotations


def _comments(cursor: Cursor) -> List[str]:
    """Documentation comment lines with the comment markers removed."""
    raw = cursor.raw_comment
    if not raw:
        return []
    lines = []
    for line in raw.splitlines():
        text = line.strip()
        if text.endswith("*/"):
            text = text[:-2]
        text = _COMMENT_PREFIX.sub("", text).strip()
        if text:
            lines.append(text)
    return lines


def _is_written_virtual(cursor: Cursor) -> bool:
    """True if the declaration spells out the `virtual` keyword."""
    return any(token.spelling == "virtual" for token in cursor.get_tokens())


def _method_modifiers(cursor: Cursor) -> List[Modifier]:
    if cursor.is_static_method():
        return [Modifier.STATIC]
    modifiers = []
    if cursor.is_const_method():
        modifiers.append(Modifier.CONST)
    if cursor.is_pure_virtual_method():
        modifiers.append(Modifier.PURE_VIRTUAL)
    elif cursor.is_virtual_method() and _is_written_virtual(cursor):
        # implicit overriders (no `virtual` keyword) stay plain
        modifiers.append(Modifier.VIRTUAL)
    return modifiers


def _to_int64(value: int) -> int:
    value &= 0xFFFFFFFFFFFFFFFF
    return value - (1 << 64) if value >= (1 << 63) else value


def unqualified_spelling(clang_type: ClangType) -> str:
    """Spelling of a type with its own cv-qualifiers removed ("const char *" keeps its const)."""
    spelling = clang_type.spelling
    if not (clang_type.is_const_qualified() or clang_type.is_volatile_qualified()):
        return spelling
    if clang_type.kind == TypeKind.POINTER:
        # "const char *const": only the trailing qualifier is the pointer's own
        return _TRAILING_CV.sub("", spelling)
    return _LEADING_CV.sub("", spelling)


def peel_qualifiers(clang_type: ClangType):
    """
    Strip one pointer, one reference and one const, in that order.

    Returns (qualifiers, inner type). Whether const applied to the pointer or
    to the pointee is not preserved; both give the same sequence.
    """
    qualifiers = []
    current = clang_type
    const_pointer = False
    if current.kind == TypeKind.POINTER:
        qualifiers.append(Qualifier.POINTER)
        const_pointer = current.is_const_qualified()
        current = current.get_pointee()
    if current.kind in _REFERENCE_KINDS:
        qualifiers.append(Qualifier.REFERENCE)
        current = current.get_pointee()
    if const_pointer or current.is_const_qualified():
        qualifiers.append(Qualifier.CONST)
    return qualifiers, current


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class IRBuilder:
    """
    Converts a parsed translation unit to an IR graph.

    Strategy:
      1. Record every diagnostic as a Message node
      2. Collect records, free functions and aliases from the translation
         unit and from namespaces (nothing else is descended into)
      3. Lower records, then free functions, then aliases
      4. Intern every node so each entity is created once
      5. Freeze the graph
    """

    def __init__(self, config: ExtractConfig):
        self.config = config
        self.graph = IRGraph()
        self._roots = [normalize_path(d).lower() for d in config.directories]

    def build(self, parsed: ParsedUnit) -> IRGraph:
        """
        Build the complete IR for a parsed unit.

        Parameters
        ----------
        parsed : the translation unit and diagnostics from parser.py

        Returns
        -------
        The frozen IRGraph
        """
        for message in parsed.messages:
            self.graph.add(message)

        records: List[Cursor] = []
        functions: List[Cursor] = []
        aliases: List[Cursor] = []
        self._collect(parsed.translation_unit.cursor, records, functions, aliases)

        for cursor in records:
            self.lower_record(cursor)
        for cursor in functions:
            self.lower_function(cursor, is_method=False)
        for cursor in aliases:
            self._visit_alias(cursor)

        self.graph.freeze()
        return self.graph

    def is_user_path(self, path: str) -> bool:
        """True if path lies under one of the configured roots (case-insensitive)."""
        lowered = path.lower()
        return bool(path) and any(lowered.startswith(root) for root in self._roots)

    # -- declaration walking -------------------------------------------------

    def _collect(self, cursor: Cursor, records, functions, aliases):
        for child in cursor.get_children():
            kind = child.kind
            if kind in _RECORD_DECL_KINDS:
                records.append(child)
            elif kind == CursorKind.FUNCTION_DECL:
                functions.append(child)
            elif kind in _ALIAS_DECL_KINDS:
                aliases.append(child)
            elif kind == CursorKind.NAMESPACE:
                self._collect(child, records, functions, aliases)

    def _visit_alias(self, cursor: Cursor) -> None:
        # Aliases are resolved away by canonicalization; they produce no node.
        logger.debug("Alias %s passed through", cursor.spelling)

    # -- records and functions -----------------------------------------------

    def lower_record(self, cursor: Cursor) -> int:
        """
        Lower a class/struct/union declaration to a Record node.

        Returns the Record's index, or NO_INDEX if the record is declared
        outside the configured roots.
        """
        definition = cursor.get_definition() or cursor
        location = cursor_location(definition)
        if not self.is_user_path(location.file):
            return NO_INDEX

        name = qualified_name(definition)
        key = ("record", name)
        existing = self.graph.lookup(key)
        if existing is not None:
            return existing

        # Reserve before touching members so a member can refer back to us
        index = self.graph.reserve(key)
        record = Record(
            name=name,
            location=location,
            is_anonymous=_is_anonymous(definition),
            annotations=_annotations(definition),
            comments=_comments(definition),
        )

        bases, fields, methods = [], [], []
        for child in definition.get_children():
            if child.kind == CursorKind.CXX_BASE_SPECIFIER:
                bases.append(child)
            elif child.kind == CursorKind.FIELD_DECL:
                fields.append(child)
            elif child.kind == CursorKind.CXX_METHOD:
                methods.append(child)

        for base in bases:
            base_decl = base.type.get_canonical().get_declaration()
            record.bases.append(
                RecordBase(
                    base_record=self.lower_record(base_decl),
                    is_virtual=_is_written_virtual(base),
                    access=_access(base.access_specifier),
                )
            )

        for child in fields:
            offset = child.get_field_offsetof()  # in bits, negative on error
            record.fields.append(
                Field(
                    name=child.spelling,
                    qualified_type=self.lower_type(child.type, cursor_location(child)),
                    offset=offset // 8 if offset >= 0 else NO_INDEX,
                    access=_access(child.access_specifier),
                )
            )

        # Methods belong to an in-scope record, so they are always kept
        for child in methods:
            record.functions.append(self.lower_function(child, is_method=True))

        self.graph.fill(index, record)
        return index

    def lower_function(self, cursor: Cursor, is_method: bool = False) -> int:
        """
        Lower a function or method declaration to a Function node.

        Free functions outside the roots, and repeated declarations of a free
        function name, return NO_INDEX.
        """
        location = cursor_location(cursor)
        if not is_method and not self.is_user_path(location.file):
            return NO_INDEX

        name = qualified_name(cursor)
        key = None if is_method else ("function", name)
        if key is not None and self.graph.lookup(key) is not None:
            logger.debug("Skipping repeated declaration of %s", name)
            return NO_INDEX

        function = Function(
            name=name,
            location=location,
            access=Access.PUBLIC,
            annotations=_annotations(cursor),
            comments=_comments(cursor),
        )
        if is_method:
            function.access = _access(cursor.access_specifier)
            function.modifiers = _method_modifiers(cursor)

        function.return_qualified_type = self.lower_type(cursor.result_type, location)
        for arg in cursor.get_arguments():
            function.parameters.append(
                Parameter(
                    name=arg.spelling,
                    qualified_type=self.lower_type(arg.type, cursor_location(arg)),
                )
            )

        return self.graph.add(function, key=key)

    # -- types ---------------------------------------------------------------

    def lower_type(self, clang_type: ClangType, location: Location) -> int:
        """Lower a (possibly sugared) type reference to a QualifiedType index."""
        canonical = clang_type.get_canonical()
        qualifiers, inner = peel_qualifiers(canonical)
        data_type = self.lower_unqualified_type(inner)

        annotations: List[Annotation] = []
        key = (
            "qualified_type",
            clang_type.spelling,
            data_type,
            tuple(qualifiers),
            annotation_key(annotations),
        )
        existing = self.graph.lookup(key)
        if existing is not None:
            return existing

        node = QualifiedType(
            name=clang_type.spelling,
            location=location,
            data_type=data_type,
            qualifiers=qualifiers,
            annotations=annotations,
        )
        return self.graph.add(node, key=key)

    def lower_unqualified_type(self, clang_type: ClangType) -> int:
        """Lower a canonical type with qualifiers already peeled to a DataType index."""
        name = unqualified_spelling(clang_type)
        key = ("data_type", name)
        existing = self.graph.lookup(key)
        if existing is not None:
            return existing

        decl = clang_type.get_declaration()
        kind = clang_type.kind
        node: DataType
        if _FIRST_BUILTIN <= kind.value <= _LAST_BUILTIN:
            node = BuiltinDataType(builtin_kind=clang_kind_to_builtin(kind.name))
        elif kind == TypeKind.RECORD:
            node = self._lower_record_type(decl)
        elif kind == TypeKind.ENUM:
            node = self._lower_enum_type(decl)
        elif kind in _FUNCTION_TYPE_KINDS:
            node = self._lower_function_type(clang_type)
        else:
            node = UnknownDataType()
        node.name = name
        node.location = cursor_location(decl)

        # Lowering the children may already have interned this spelling
        existing = self.graph.lookup(key)
        if existing is not None:
            return existing
        return self.graph.add(node, key=key)

    def _lower_record_type(self, decl: Cursor) -> RecordDataType:
        count = decl.get_num_template_arguments()
        template_args = [self._lower_template_argument(decl, i) for i in range(max(count, 0))]
        return RecordDataType(record_type=self.lower_record(decl), template_args=template_args)

    def _lower_template_argument(self, decl: Cursor, position: int) -> TemplateArgument:
        try:
            kind = decl.get_template_argument_kind(position)
        except ValueError:
            # Kinds the bindings do not know (e.g. packs)
            kind = None

        if kind == ClangTemplateArgumentKind.TYPE:
            arg_type = decl.get_template_argument_type(position).get_canonical()
            return TemplateArgument(
                kind=TemplateArgumentKind.TYPE,
                value=self.lower_unqualified_type(arg_type),
            )
        if kind == ClangTemplateArgumentKind.INTEGRAL:
            return TemplateArgument(
                kind=TemplateArgumentKind.INTEGRAL,
                value=decl.get_template_argument_value(position),
            )

        logger.warning(
            "Template argument %d of %s is not representable, marking as unknown",
            position,
            decl.displayname,
        )
        return TemplateArgument(kind=TemplateArgumentKind.UNKNOWN, value=NO_INDEX)

    def _lower_enum_type(self, decl: Cursor) -> EnumDataType:
        enumerators = [
            EnumeratorField(name=child.spelling, value=_to_int64(child.enum_value))
            for child in decl.get_children()
            if child.kind == CursorKind.ENUM_CONSTANT_DECL
        ]
        return EnumDataType(
            underlying_type=self.lower_unqualified_type(decl.enum_type.get_canonical()),
            enumerators=enumerators,
        )

    def _lower_function_type(self, clang_type: ClangType) -> FunctionDataType:
        is_proto = clang_type.kind == TypeKind.FUNCTIONPROTO
        arguments = list(clang_type.argument_types()) if is_proto else []
        return FunctionDataType(
            return_type=self.lower_unqualified_type(clang_type.get_result().get_canonical()),
            argument_types=[self.lower_unqualified_type(a.get_canonical()) for a in arguments],
            is_variadic=is_proto and clang_type.is_function_variadic(),
        )


def generate_graph(config: ExtractConfig) -> IRGraph:
    """Collect headers, parse them as one unit, and lower the result."""
    headers = collect_headers(config.directories, config.header_extensions)
    parsed = parse_translation_unit(headers, config.compiler_args, config.define)
    return IRBuilder(config).build(parsed)
