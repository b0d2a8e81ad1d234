"""
parser.py — Build one libclang translation unit from a set of C++ headers.

WHY ONE UNIT:
Parsing every header on its own would re-parse shared includes over and over
and would give each header its own copy of every type.  Instead we synthesize
a single in-memory source file that #includes every collected header and hand
that to libclang once.  The resulting AST is what ir_builder.py walks.

Every diagnostic libclang reports is captured as a Message node.  Diagnostics
never stop the run; only failing to get a translation unit at all does.
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from clang.cindex import (
    Diagnostic,
    Index,
    TranslationUnit,
    TranslationUnitLoadError,
)

from .ir import DiagnosticSeverity, Location, Message

logger = logging.getLogger(__name__)

UNIT_FILENAME = "irgen_unit.cpp"

PARSE_OPTIONS = (
    TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD
    | TranslationUnit.PARSE_SKIP_FUNCTION_BODIES
)

_SEVERITIES = {
    Diagnostic.Ignored: DiagnosticSeverity.IGNORED,
    Diagnostic.Note: DiagnosticSeverity.NOTE,
    Diagnostic.Warning: DiagnosticSeverity.WARNING,
    Diagnostic.Error: DiagnosticSeverity.ERROR,
    Diagnostic.Fatal: DiagnosticSeverity.FATAL,
}

_LOG_LEVELS = {
    DiagnosticSeverity.IGNORED: logging.DEBUG,
    DiagnosticSeverity.NOTE: logging.INFO,
    DiagnosticSeverity.WARNING: logging.WARNING,
    DiagnosticSeverity.ERROR: logging.ERROR,
    DiagnosticSeverity.FATAL: logging.CRITICAL,
}


class TranslationUnitError(RuntimeError):
    """libclang could not produce a translation unit; the run cannot continue."""


@dataclass
class ParsedUnit:
    """The parsed translation unit plus everything captured while parsing it."""

    translation_unit: TranslationUnit
    headers: List[str] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    source: str = ""


@lru_cache(maxsize=None)
def normalize_path(path: str | Path) -> str:
    """Absolute, normalized form of a path; empty stays empty."""
    if not path:
        return ""
    return str(Path(path).resolve())


# ---------------------------------------------------------------------------
# Header collection
# ---------------------------------------------------------------------------


def collect_headers(
    directories: Iterable[str | Path], extensions: Sequence[str] = (".h", ".hpp")
) -> List[str]:
    """
    Recursively collect header files below each root directory.

    Roots are visited in the order given and the files below each root are
    sorted, so the same tree always yields the same list.
    """
    seen = set()
    headers = []
    for directory in directories:
        root = Path(directory).resolve()
        if not root.is_dir():
            raise FileNotFoundError(f"Header directory not found: {root}")
        found = sorted(
            p for p in root.rglob("*") if p.is_file() and p.suffix in extensions
        )
        for path in found:
            text = str(path)
            if text not in seen:
                seen.add(text)
                headers.append(text)
    return headers


# ---------------------------------------------------------------------------
# Translation unit
# ---------------------------------------------------------------------------


def synthesize_unit(headers: Iterable[str | Path], define: str = "IRGEN") -> str:
    """Source text of a unit that includes every header, in order."""
    lines = [f"#define {define}"]
    for header in headers:
        lines.append(f'#include "{Path(header).as_posix()}"')
    return "\n".join(lines) + "\n"


def diagnostic_to_message(diag: Diagnostic) -> Message:
    """Convert one libclang diagnostic into a Message node."""
    loc = diag.location
    severity = _SEVERITIES.get(diag.severity, DiagnosticSeverity.IGNORED)
    text = diag.format(Diagnostic.DisplaySourceLocation)
    return Message(
        name="Diagnostic",
        location=Location(
            file=normalize_path(loc.file.name) if loc.file else "",
            line=loc.line,
            column=loc.column,
        ),
        message=text,
        category=diag.category_name or "",
        severity=severity,
    )


def parse_translation_unit(
    headers: Sequence[str | Path],
    extra_args: Optional[Sequence[str]] = None,
    define: str = "IRGEN",
) -> ParsedUnit:
    """
    Parse all headers as a single translation unit.

    Parameters
    ----------
    headers    : header paths, included in the order given
    extra_args : compiler arguments, e.g. ["-x", "c++", "-std=c++20", "-I", "inc/"]
    define     : macro defined before the first include

    Raises TranslationUnitError if libclang cannot create the unit.
    """
    source = synthesize_unit(headers, define)
    index = Index.create()
    try:
        tu = index.parse(
            UNIT_FILENAME,
            args=list(extra_args or []),
            unsaved_files=[(UNIT_FILENAME, source)],
            options=PARSE_OPTIONS,
        )
    except TranslationUnitLoadError as exc:
        raise TranslationUnitError(f"Failed to create translation unit: {exc}") from exc
    if tu is None:
        raise TranslationUnitError("Failed to create translation unit")

    messages = []
    for diag in tu.diagnostics:
        message = diagnostic_to_message(diag)
        logger.log(_LOG_LEVELS[message.severity], "%s", message.message)
        messages.append(message)

    return ParsedUnit(
        translation_unit=tu,
        headers=[str(h) for h in headers],
        messages=messages,
        source=source,
    )
