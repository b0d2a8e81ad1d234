"""
type_generators.py — Reference type generators for the plugin registry

These generators map IR type nodes to type names in each built-in target
language.  They all report priority 0 so any plugin can override them by
registering a generator with a higher priority (or by wrapping one of these
with WrappingTypeGenerator).

It handles:
  - Builtin data types (fixed table per language)
  - Enum and record data types (named after the C++ declaration)
  - Function and unknown data types (C++ spelling only)
  - Qualified types (delegates to the data type, then decorates the C++ name)

"""

from typing import Dict, Optional

from .ir import (
    BuiltinDataType,
    BuiltinKind,
    EnumDataType,
    FunctionDataType,
    QualifiedType,
    Qualifier,
    Record,
    RecordDataType,
    UnknownDataType,
)
from .plugin import GeneratorControl, Language, LanguageType, TypeHolder

DEFAULT_PRIORITY = 0


# ---------------------------------------------------------------------------
# The builtin tables
# ---------------------------------------------------------------------------
# A language missing from a row means the builtin has no natural equivalent
# there; the holder simply does not support that language.

BUILTIN_NAMES: Dict[BuiltinKind, Dict[str, str]] = {
    BuiltinKind.VOID: {
        Language.CPP: "void",
        Language.CSHARP: "void",
        Language.PYTHON: "None",
        Language.PROTO: "google.protobuf.Empty",
    },
    BuiltinKind.NULLPTR: {
        Language.CPP: "std::nullptr_t",
        Language.CSHARP: "object",
        Language.PYTHON: "None",
    },
    BuiltinKind.BOOL: {
        Language.CPP: "bool",
        Language.CSHARP: "bool",
        Language.PYTHON: "bool",
        Language.PROTO: "bool",
    },
    BuiltinKind.INT8: {
        Language.CPP: "std::int8_t",
        Language.CSHARP: "sbyte",
        Language.PYTHON: "int",
        Language.PROTO: "int32",
    },
    BuiltinKind.UINT8: {
        Language.CPP: "std::uint8_t",
        Language.CSHARP: "byte",
        Language.PYTHON: "int",
        Language.PROTO: "uint32",
    },
    BuiltinKind.INT16: {
        Language.CPP: "std::int16_t",
        Language.CSHARP: "short",
        Language.PYTHON: "int",
        Language.PROTO: "int32",
    },
    BuiltinKind.UINT16: {
        Language.CPP: "std::uint16_t",
        Language.CSHARP: "ushort",
        Language.PYTHON: "int",
        Language.PROTO: "uint32",
    },
    BuiltinKind.INT32: {
        Language.CPP: "std::int32_t",
        Language.CSHARP: "int",
        Language.PYTHON: "int",
        Language.PROTO: "int32",
    },
    BuiltinKind.UINT32: {
        Language.CPP: "std::uint32_t",
        Language.CSHARP: "uint",
        Language.PYTHON: "int",
        Language.PROTO: "uint32",
    },
    BuiltinKind.INT64: {
        Language.CPP: "std::int64_t",
        Language.CSHARP: "long",
        Language.PYTHON: "int",
        Language.PROTO: "int64",
    },
    BuiltinKind.UINT64: {
        Language.CPP: "std::uint64_t",
        Language.CSHARP: "ulong",
        Language.PYTHON: "int",
        Language.PROTO: "uint64",
    },
    BuiltinKind.INT128: {
        Language.CPP: "__int128",
        Language.CSHARP: "Int128",
        Language.PYTHON: "int",
    },
    BuiltinKind.UINT128: {
        Language.CPP: "unsigned __int128",
        Language.CSHARP: "UInt128",
        Language.PYTHON: "int",
    },
    BuiltinKind.FLOAT: {
        Language.CPP: "float",
        Language.CSHARP: "float",
        Language.PYTHON: "float",
        Language.PROTO: "float",
    },
    BuiltinKind.FLOAT16: {
        Language.CPP: "_Float16",
        Language.CSHARP: "Half",
        Language.PYTHON: "float",
    },
    BuiltinKind.BFLOAT16: {
        Language.CPP: "__bf16",
        Language.PYTHON: "float",
    },
    BuiltinKind.DOUBLE: {
        Language.CPP: "double",
        Language.CSHARP: "double",
        Language.PYTHON: "float",
        Language.PROTO: "double",
    },
    BuiltinKind.LONG_DOUBLE: {
        Language.CPP: "long double",
        Language.PYTHON: "float",
    },
    BuiltinKind.FLOAT128: {
        Language.CPP: "__float128",
        Language.PYTHON: "float",
    },
}


def _holder(names: Dict[str, str]) -> TypeHolder:
    return TypeHolder(
        languages={
            language: LanguageType(native_type_name=name) for language, name in names.items()
        }
    )


def _dotted(cpp_name: str) -> str:
    """e.g. "outer::Point" -> "outer.Point" for languages without "::"."""
    return cpp_name.replace("::", ".")


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


class BuiltinTypeGenerator:
    """Maps BuiltinDataType nodes through BUILTIN_NAMES."""

    def __init__(self, priority: int = DEFAULT_PRIORITY):
        self.priority = priority
        self._cache: Dict[BuiltinKind, TypeHolder] = {}

    def get_priority(self, control, node, annotations) -> Optional[int]:
        return self.priority if isinstance(node, BuiltinDataType) else None

    def generate_type(self, control, node, annotations) -> TypeHolder:
        kind = node.builtin_kind
        if kind not in self._cache:
            self._cache[kind] = _holder(BUILTIN_NAMES.get(kind, {}))
        return self._cache[kind]


class NamedTypeGenerator:
    """
    Maps records and enums to their declared names.

    C++ keeps the qualified name; the other languages get a dotted form.
    """

    def __init__(self, priority: int = DEFAULT_PRIORITY):
        self.priority = priority

    def get_priority(self, control, node, annotations) -> Optional[int]:
        if isinstance(node, (RecordDataType, EnumDataType, Record)):
            return self.priority
        return None

    def generate_type(self, control, node, annotations) -> TypeHolder:
        name = node.name
        if isinstance(node, RecordDataType) and not node.is_external:
            # the record's qualified name, not the elaborated spelling
            name = control.get_node(node.record_type).name
        return _holder(
            {
                Language.CPP: name,
                Language.CSHARP: _dotted(name),
                Language.PYTHON: _dotted(name),
                Language.PROTO: _dotted(name),
            }
        )


class SpellingTypeGenerator:
    """
    Function and unknown data types keep their C++ spelling.

    There is no portable name for them in the other languages, so the holder
    only carries Cpp; a plugin that knows better can override it.
    """

    def __init__(self, priority: int = DEFAULT_PRIORITY):
        self.priority = priority

    def get_priority(self, control, node, annotations) -> Optional[int]:
        if isinstance(node, (FunctionDataType, UnknownDataType)):
            return self.priority
        return None

    def generate_type(self, control, node, annotations) -> TypeHolder:
        return _holder({Language.CPP: node.name})


class QualifiedTypeGenerator:
    """
    Resolves a QualifiedType through its data type.

    The data type's holder comes from the control (so overrides of builtin or
    record generators apply here too); the C++ name is then re-qualified.
    """

    def __init__(self, priority: int = DEFAULT_PRIORITY):
        self.priority = priority

    def get_priority(self, control, node, annotations) -> Optional[int]:
        return self.priority if isinstance(node, QualifiedType) else None

    def generate_type(self, control: GeneratorControl, node, annotations) -> TypeHolder:
        data_type = control.get_node(node.data_type)
        holder = control.generate_type(data_type, annotations)
        if not holder.supports(Language.CPP):
            return holder
        cpp = holder.get_language(Language.CPP)
        if cpp.native_type_name is None:
            return holder
        return holder.with_language(
            Language.CPP,
            LanguageType(
                native_type_name=self._cpp_spelling(
                    cpp.native_type_name,
                    node.qualifiers,
                    isinstance(data_type, FunctionDataType),
                ),
                intermediate_type_name=cpp.intermediate_type_name,
                native_converter=cpp.native_converter,
                intermediate_converter=cpp.intermediate_converter,
            ),
        )

    @staticmethod
    def _cpp_spelling(name: str, qualifiers, is_function: bool = False) -> str:
        """
        Rebuild a C++ spelling from peel-ordered qualifiers.

        e.g. [POINTER, CONST] on "char" -> "const char*",
             [POINTER] on "void (int)" -> "void (*)(int)"
        """
        if is_function and Qualifier.POINTER in qualifiers:
            result, _, arguments = name.partition(" (")
            return f"{result} (*)({arguments}"
        if Qualifier.CONST in qualifiers:
            name = f"const {name}"
        if Qualifier.REFERENCE in qualifiers:
            name = f"{name}&"
        if Qualifier.POINTER in qualifiers:
            name = f"{name}*"
        return name


def default_type_generators():
    return [
        BuiltinTypeGenerator(),
        NamedTypeGenerator(),
        SpellingTypeGenerator(),
        QualifiedTypeGenerator(),
    ]


def register_default_generators(control: GeneratorControl) -> GeneratorControl:
    """Register the reference generators on control and return it."""
    for generator in default_type_generators():
        control.register(generator)
    return control
