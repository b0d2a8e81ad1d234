"""
__main__.py — CLI entry point for irgen.

Usage:
    python -m irgen genjson --directory include/ --outpath out/ -- -x c++ -std=c++20
    python -m irgen gencode --input out/result.json --outpath gen/ --client-language python

genjson is the extraction command:
  1. Collects every header below the --directory roots
  2. Parses them as one translation unit with libclang
  3. Lowers the AST into the IR graph and writes <outpath>/result.json

gencode loads a result.json and hands it to the installed language
generators (see irgen.plugin).
"""

import argparse
import logging
import sys
from pathlib import Path

from .ir import ExtractConfig
from .ir_builder import IRBuilder
from .ir_printer import print_ir
from .parser import TranslationUnitError, collect_headers, parse_translation_unit
from .plugin import GeneratorControl, Language, load_language_generators, run_language_generators
from .serialize import GraphFormatError, read_graph, write_graph
from .type_generators import register_default_generators

RESULT_FILENAME = "result.json"

_LANGUAGES = {
    "cpp": Language.CPP,
    "csharp": Language.CSHARP,
    "python": Language.PYTHON,
    "proto": Language.PROTO,
}


def run_genjson(args: argparse.Namespace) -> int:
    if args.language != "cpp":
        print(f"Error: extraction is only implemented for C++ (got {args.language})", file=sys.stderr)
        return 2

    out_dir: Path = args.outpath
    config = ExtractConfig(
        directories=[str(d) for d in args.directories],
        compiler_args=list(args.compiler_args),
    )

    # Step 1: COLLECT
    print("[1/3] Collecting headers ...")
    try:
        headers = collect_headers(config.directories, config.header_extensions)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"\tFound {len(headers)} header(s)")

    # Step 2: PARSE
    print("[2/3] Parsing translation unit ...")
    try:
        parsed = parse_translation_unit(headers, config.compiler_args, config.define)
    except TranslationUnitError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"\tCollected {len(parsed.messages)} diagnostic(s)")

    # Step 3: BUILD IR
    print("[3/3] Building IR ...")
    graph = IRBuilder(config).build(parsed)
    result_path = write_graph(graph, out_dir / RESULT_FILENAME)
    print(f"\tBuilt IR with {len(graph)} node(s)")

    if args.emit_ir:
        print(print_ir(graph))

    print()
    print(f"Done! IR written to {result_path}")
    return 0


def run_gencode(args: argparse.Namespace) -> int:
    try:
        graph = read_graph(args.input)
    except (OSError, GraphFormatError) as exc:
        print(f"Error: cannot load {args.input}: {exc}", file=sys.stderr)
        return 1

    control = register_default_generators(GeneratorControl(graph))
    available = load_language_generators()

    wanted = [_LANGUAGES[args.server_language]]
    for language in args.client_languages:
        if _LANGUAGES[language] not in wanted:
            wanted.append(_LANGUAGES[language])

    missing = [name for name in wanted if name not in available]
    if missing:
        print(f"Error: no generator installed for {', '.join(missing)}", file=sys.stderr)
        return 1

    run_language_generators(control, [available[name] for name in wanted], str(args.outpath))
    print(f"Done! Generated code for {', '.join(wanted)} in {args.outpath}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="irgen",
        description="Extract a language-neutral IR graph from C++ headers.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log diagnostics and lowering details",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    genjson = commands.add_parser("genjson", help="Generate result.json from headers")
    genjson.add_argument(
        "--language",
        choices=["cpp", "csharp", "python"],
        default="cpp",
        help="Source language of the headers (only cpp is implemented)",
    )
    genjson.add_argument(
        "--directory",
        type=Path,
        action="append",
        required=True,
        dest="directories",
        help="Root directory to collect headers from (repeatable)",
    )
    genjson.add_argument(
        "--outpath",
        type=Path,
        required=True,
        help="Directory that receives result.json",
    )
    genjson.add_argument(
        "--emit-ir",
        action="store_true",
        help="Also print the IR graph in human-readable form",
    )

    gencode = commands.add_parser("gencode", help="Generate code from result.json")
    gencode.add_argument("--input", type=Path, required=True, help="Path to result.json")
    gencode.add_argument("--outpath", type=Path, required=True, help="Output directory")
    gencode.add_argument(
        "--client-language",
        choices=sorted(_LANGUAGES),
        action="append",
        default=[],
        dest="client_languages",
    )
    gencode.add_argument("--server-language", choices=sorted(_LANGUAGES), default="cpp")

    # Everything after "--" goes to the C++ parser untouched
    argv = list(sys.argv[1:] if argv is None else argv)
    compiler_args: list[str] = []
    if "--" in argv:
        split = argv.index("--")
        argv, compiler_args = argv[:split], argv[split + 1 :]

    args = parser.parse_args(argv)
    args.compiler_args = compiler_args

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "genjson":
        return run_genjson(args)
    return run_gencode(args)


if __name__ == "__main__":
    sys.exit(main())
