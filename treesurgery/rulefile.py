"""Read rule files: a pattern block, a blank line, then one statement per line.

::

    % lift the object out of a unary VP
    VP=vp < (NP=np $- VBD)
      !< PP

    move np $- vp
    relabel vp VP-LIFTED    % trailing comments are dropped

``%`` starts a comment, ``\\%`` stands for a literal percent sign.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from treesurgery.errors import OperationSyntaxError, TreeSurgeryError
from treesurgery.pattern_parser import PatternCompiler
from treesurgery.runtime import SurgeryRule
from treesurgery.surgery import collect_operations
from treesurgery.surgery_parser import check_captures, parse_operation

logger = logging.getLogger(__name__)

_COMMENT_RE = re.compile(r"(?<!\\)%.*$")


def strip_comment(line: str) -> str:
    return _COMMENT_RE.sub("", line).replace("\\%", "%").strip()


def parse_rule_source(text: str, name: str, compiler: Optional[PatternCompiler] = None) -> SurgeryRule:
    """Compile the text of one rule file into a :class:`SurgeryRule`.

    Errors carry ``name`` and the offending line number.
    """

    compiler = compiler if compiler is not None else PatternCompiler()
    lines = text.splitlines()

    idx = 0
    while idx < len(lines) and not strip_comment(lines[idx]):
        idx += 1
    pattern_line = idx + 1
    pattern_parts: List[str] = []
    while idx < len(lines) and lines[idx].strip():
        stripped = strip_comment(lines[idx])
        if stripped:
            pattern_parts.append(stripped)
        idx += 1
    if not pattern_parts:
        raise OperationSyntaxError("rule file has no pattern", "", source=name, line=pattern_line)

    try:
        pattern = compiler.compile(" ".join(pattern_parts))
    except TreeSurgeryError as exc:
        exc.with_context(source=name, line=pattern_line)
        raise

    compiled = []
    for number, raw in enumerate(lines[idx:], start=idx + 1):
        statement = strip_comment(raw)
        if not statement:
            continue
        try:
            operation = parse_operation(statement)
            check_captures(compiled + [(statement, operation)], pattern.captures)
        except TreeSurgeryError as exc:
            exc.with_context(source=name, line=number)
            raise
        compiled.append((statement, operation))

    if not compiled:
        raise OperationSyntaxError("rule file has no surgery statements", "", source=name, line=len(lines) or 1)

    return SurgeryRule(
        name=name,
        pattern=pattern,
        operation=collect_operations(op for _, op in compiled),
        source=name,
    )


def read_rule_file(path: Union[str, Path], compiler: Optional[PatternCompiler] = None, name: Optional[str] = None) -> SurgeryRule:
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    return parse_rule_source(text, name or str(path), compiler)


def load_rule_files(
    paths: Sequence[Union[str, Path]],
    compiler: Optional[PatternCompiler] = None,
) -> Tuple[List[SurgeryRule], List[Exception]]:
    """Compile every rule file, skipping (and logging) the ones that fail.

    Returns the usable rules in the given order together with the errors of
    the skipped files.
    """

    rules: List[SurgeryRule] = []
    errors: List[Exception] = []
    seen: dict = {}
    for path in paths:
        name = str(path)
        seen[name] = seen.get(name, 0) + 1
        if seen[name] > 1:
            name = f"{name}#{seen[name]}"
        try:
            rules.append(read_rule_file(path, compiler, name=name))
        except (TreeSurgeryError, OSError) as exc:
            logger.error("skipping rule file %s: %s", path, exc)
            errors.append(exc)
    return rules, errors
