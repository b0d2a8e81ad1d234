"""
plugin.py — Contract between the IR graph and code-generation plugins

A later phase turns IR nodes into per-language type information through a
registry of type generators, and turns the whole graph into source code
through language generators.  This module defines those seams:

  - TypeHolder / LanguageType: per-language naming and converter information
    for one IR node, plus an optional writer callback
  - TypeGenerator: a (priority, generate) pair; the highest priority wins
  - GeneratorControl: read access to the graph and type dispatch
  - LanguageGenerator: configure + generate_code for one target language

Overriding a generator is done by wrapping it explicitly (see
WrappingTypeGenerator): the wrapper reports a higher priority, calls the
wrapped generator itself and decorates the holder it gets back.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from importlib.metadata import entry_points
from typing import Callable, Dict, List, Optional, Protocol, Sequence, TextIO

from .code_tree import NamespaceNode, build_code_tree
from .ir import Annotation, IRGraph, Node

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "irgen.language_generators"


class Language:
    """Names of the languages the reference type generators know about."""

    CPP = "Cpp"
    CSHARP = "CSharp"
    PYTHON = "Python"
    PROTO = "Proto"


class NoTypeGeneratorError(LookupError):
    """No registered type generator accepts a node."""


class LanguageNotSupportedError(LookupError):
    """A type holder has no information for the requested language."""


# Writes a type in the given language to the output stream
WriteLanguage = Callable[[TextIO, str], None]


@dataclass(frozen=True)
class LanguageType:
    """Type information for one target language."""

    native_type_name: Optional[str] = None
    intermediate_type_name: Optional[str] = None
    native_converter: str = ""
    intermediate_converter: str = ""


@dataclass(frozen=True)
class TypeHolder:
    """
    Per-language type information for one IR node.

    writer is either None or a callback taking (output, language); the
    language is always passed in explicitly.
    """

    languages: Dict[str, LanguageType] = field(default_factory=dict)
    writer: Optional[WriteLanguage] = None

    def get_language(self, language: str) -> LanguageType:
        try:
            return self.languages[language]
        except KeyError:
            raise LanguageNotSupportedError(
                f"No type information for language {language!r}"
            ) from None

    def supports(self, language: str) -> bool:
        return language in self.languages

    def write_type(self, out: TextIO, language: str) -> bool:
        """Invoke the writer if there is one; returns whether anything ran."""
        if self.writer is None:
            return False
        self.writer(out, language)
        return True

    def with_language(self, language: str, language_type: LanguageType) -> "TypeHolder":
        """A copy with one language added or replaced."""
        languages = dict(self.languages)
        languages[language] = language_type
        return dataclasses.replace(self, languages=languages)

    def with_writer(self, writer: Optional[WriteLanguage]) -> "TypeHolder":
        return dataclasses.replace(self, writer=writer)


class TypeGenerator(Protocol):
    def get_priority(
        self, control: "GeneratorControl", node: Node, annotations: Sequence[Annotation]
    ) -> Optional[int]:
        """Priority for handling node, or None if this generator cannot."""

    def generate_type(
        self, control: "GeneratorControl", node: Node, annotations: Sequence[Annotation]
    ) -> TypeHolder:
        """Build the type holder for node."""


class LanguageGenerator(Protocol):
    language_name: str

    def configure(self, control: "GeneratorControl", output_path: str) -> None:
        """Write any project/configuration files for the language."""

    def generate_code(self, control: "GeneratorControl", output_path: str) -> None:
        """Write the generated sources for the language."""


PriorityFunction = Callable[["GeneratorControl", Node, Sequence[Annotation]], Optional[int]]
GenerateFunction = Callable[["GeneratorControl", Node, Sequence[Annotation]], TypeHolder]
DecorateFunction = Callable[
    ["GeneratorControl", Node, Sequence[Annotation], TypeHolder], TypeHolder
]


@dataclass
class FunctionTypeGenerator:
    """A type generator made of an explicit priority function and generate function."""

    priority: PriorityFunction
    generate: GenerateFunction

    def get_priority(self, control, node, annotations):
        return self.priority(control, node, annotations)

    def generate_type(self, control, node, annotations):
        return self.generate(control, node, annotations)


@dataclass
class WrappingTypeGenerator:
    """
    Overrides another generator by calling it and decorating its result.

    Reports the wrapped generator's priority plus priority_bump for every node
    the wrapped generator accepts.
    """

    wrapped: TypeGenerator
    decorate: DecorateFunction
    priority_bump: int = 1

    def get_priority(self, control, node, annotations):
        priority = self.wrapped.get_priority(control, node, annotations)
        if priority is None:
            return None
        return priority + self.priority_bump

    def generate_type(self, control, node, annotations):
        holder = self.wrapped.generate_type(control, node, annotations)
        return self.decorate(control, node, annotations, holder)


class GeneratorControl:
    """
    Read access to an IR graph for code-generation plugins.

    The graph is frozen on construction; get_node returns the exact node the
    lowering pass produced.
    """

    def __init__(self, graph: IRGraph, generators: Sequence[TypeGenerator] = ()):
        if not graph.frozen:
            graph.freeze()
        self.graph = graph
        self._generators: List[TypeGenerator] = list(generators)
        self._code_tree: Optional[NamespaceNode] = None

    def register(self, generator: TypeGenerator) -> None:
        """Add a type generator. Among equal priorities, earlier registrations win."""
        self._generators.append(generator)

    @property
    def generators(self) -> List[TypeGenerator]:
        return list(self._generators)

    def get_node(self, index: int) -> Node:
        return self.graph.get_node(index)

    def select_generator(
        self, node: Node, annotations: Sequence[Annotation] = ()
    ) -> TypeGenerator:
        """The generator with the strictly highest priority for node."""
        best = None
        best_priority = None
        for generator in self._generators:
            priority = generator.get_priority(self, node, annotations)
            if priority is None:
                continue
            if best_priority is None or priority > best_priority:
                best, best_priority = generator, priority
        if best is None:
            raise NoTypeGeneratorError(
                f"No type generator accepts {type(node).__name__} {node.name!r}"
            )
        return best

    def generate_type(self, node: Node, annotations: Sequence[Annotation] = ()) -> TypeHolder:
        generator = self.select_generator(node, annotations)
        return generator.generate_type(self, node, annotations)

    def get_code_tree(self) -> NamespaceNode:
        """The namespace/class/function tree for the graph (built once)."""
        if self._code_tree is None:
            self._code_tree = build_code_tree(self)
        return self._code_tree


def load_language_generators(group: str = ENTRY_POINT_GROUP) -> Dict[str, LanguageGenerator]:
    """
    Instantiate every language generator installed under the entry-point group.

    Each entry point must resolve to a zero-argument factory (usually the
    generator class).
    """
    generators = {}
    for ep in entry_points(group=group):
        generator = ep.load()()
        logger.debug("Loaded language generator %s from %s", generator.language_name, ep.value)
        generators[generator.language_name] = generator
    return generators


def run_language_generators(
    control: GeneratorControl, generators: Sequence[LanguageGenerator], output_path: str
) -> None:
    """Configure every generator, then let each generate its code."""
    for generator in generators:
        generator.configure(control, output_path)
    for generator in generators:
        generator.generate_code(control, output_path)
