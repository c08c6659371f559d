from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from treesurgery.errors import TreeSurgeryError
from treesurgery.heads import head_finder_registry, resolve_head_finder
from treesurgery.pattern_parser import PatternCompiler
from treesurgery.rulefile import load_rule_files
from treesurgery.runtime import SurgeryRule, SurgeryRuntime
from treesurgery.surgery_parser import compile_surgery
from treesurgery.trace import JSONLTracer
from treesurgery.tree import Tree, read_trees

logger = logging.getLogger("treesurgery.cli")


def _read_corpus(path: str) -> List[Tree]:
    """Parse every bracketed tree in ``path``; ``-`` means the corpus arrives on stdin."""

    if path == "-":
        return list(read_trees(sys.stdin.read()))
    corpus = Path(path)
    if not corpus.is_file():
        raise FileNotFoundError(f"tree file {path} does not exist")
    return list(read_trees(corpus.read_text(encoding="utf-8")))


def _render(tree: Optional[Tree], single_line: bool) -> str:
    if tree is None:
        return "null"
    return tree.to_bracketed() if single_line else tree.pretty()


def _inline_rule(pattern_text: str, operation_text: str, compiler: PatternCompiler) -> SurgeryRule:
    try:
        pattern = compiler.compile(pattern_text)
        operation = compile_surgery([operation_text], pattern)
    except TreeSurgeryError as exc:
        exc.with_context(source="-po")
        raise
    return SurgeryRule("-po", pattern, operation, source="-po")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="treesurgery",
        description="Match tree patterns in a treebank and apply surgery at every match until none remain.",
    )
    parser.add_argument("rule_files", nargs="*", help="Rule files: a pattern, a blank line, then one operation per line")
    parser.add_argument(
        "--tree-file",
        "-treeFile",
        dest="tree_file",
        default="-",
        help="Penn-bracketed trees to transform ('-' reads stdin, the default)",
    )
    parser.add_argument(
        "-po",
        dest="pattern_operation",
        nargs=2,
        metavar=("PATTERN", "OPERATION"),
        help="Use one inline pattern and operation instead of rule files",
    )
    parser.add_argument("-s", dest="single_line", action="store_true", help="Print each tree on a single line")
    parser.add_argument(
        "-m",
        dest="show_matched",
        action="store_true",
        help="For trees some rule matched, print the tree before surgery as well",
    )
    parser.add_argument(
        "--max-steps",
        dest="max_steps",
        type=int,
        help="Stop rewriting a tree after this many surgery applications",
    )
    parser.add_argument("--trace-jsonl", dest="trace_jsonl", help="Write surgery events to a JSONL file")
    parser.add_argument(
        "--head-finder",
        dest="head_finder",
        choices=sorted(head_finder_registry),
        default="collins",
        help="Head rules used by the head relations (<#, >#, <<#, >>#)",
    )
    parser.add_argument("--workers", type=int, default=1, help="Process trees on this many threads")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every surgery application and a summary")
    return parser


def run_cli(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.rule_files and not args.pattern_operation:
        parser.error("give rule files or -po PATTERN OPERATION")
    if args.rule_files and args.pattern_operation:
        parser.error("rule files and -po cannot be combined")

    sink = None
    try:
        compiler = PatternCompiler(head_finder=resolve_head_finder(args.head_finder))
        rule_errors: List[Exception] = []
        if args.pattern_operation:
            rules = [_inline_rule(*args.pattern_operation, compiler)]
        else:
            rules, rule_errors = load_rule_files(args.rule_files, compiler)
            if not rules:
                raise ValueError("no usable rule files")
        for rule in rules:
            logger.debug("rule %s: %s\n%s", rule.name, rule.pattern, rule.operation)

        trees = _read_corpus(args.tree_file)

        runtime = SurgeryRuntime(rules, max_steps=args.max_steps)
        if args.trace_jsonl:
            sink = open(args.trace_jsonl, "w", encoding="utf-8")
            runtime.event_hooks.append(JSONLTracer(sink))

        results = runtime.process_corpus(trees, workers=args.workers)
        for result in results:
            if args.show_matched and result.matched:
                print("Operated on:")
                print(_render(result.original, args.single_line))
                print("Result:")
            print(_render(result.tree, args.single_line))

        logger.info("summary: %s", json.dumps(runtime.stats()))
        failed = rule_errors or any(result.error is not None for result in results)
        return 2 if failed else 0
    except Exception as exc:  # pragma: no cover - defensive shell entry
        print(f"treesurgery: {exc}", file=sys.stderr)
        return 1
    finally:
        if sink is not None:
            sink.close()


def main() -> int:  # pragma: no cover - thin wrapper
    return run_cli()


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
