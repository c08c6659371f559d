"""Compile surgery statements into :mod:`treesurgery.surgery` operations.

One statement per call::

    delete np
    excise vp vbd
    relabel n NNP                       relabel n "NN P"    relabel n /^NN/NP/
    insert (DT the) $+ n                insert n >-1 vp
    move pp $- np                       replace n (NP (PRP it))
    adjoin (VP (ADVP often) VP@) vp     coindex subj trace

Literal trees are bracketed; ``=name`` after a label names the new node for
later statements, a trailing ``@`` marks the foot of an ``adjoin`` tree.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence as SequenceType, Set, Tuple

from treesurgery.errors import OperationSyntaxError, TreeFormatError, UnboundCaptureError
from treesurgery.pattern import CompiledPattern
from treesurgery.surgery import (
    Adjoin,
    Coindex,
    Delete,
    Excise,
    Insert,
    Move,
    NodeRef,
    Operation,
    Position,
    Prune,
    Relabel,
    Replace,
    Sequence,
    Source,
    TreeTemplate,
    collect_operations,
)
from treesurgery.tree import Tree, read_trees

_NAME_RE = re.compile(r"^\w+$")
_CHILD_POSITION_RE = re.compile(r"^>(-?\d+)$")
_NAMED_LABEL_RE = re.compile(r"^(.*?)=(\w+)$")
# Backslash escapes of an re.sub replacement template: octal, \g<...>, \N, or one character.
_TEMPLATE_ESCAPE_RE = re.compile(r"\\(?:([0-7]{3})|g<([^>]*)>|(\d{1,2})|(.))", re.DOTALL)
_TEMPLATE_LETTER_ESCAPES = "abfnrtv"


def tokenize_statement(statement: str) -> List[str]:
    """Split a statement on whitespace, keeping bracketed trees, quoted labels and ``/re/repl/`` whole."""

    tokens: List[str] = []
    i = 0
    n = len(statement)
    while i < n:
        ch = statement[i]
        if ch.isspace():
            i += 1
            continue
        start = i
        if ch == "(":
            depth = 0
            while i < n:
                if statement[i] == "(":
                    depth += 1
                elif statement[i] == ")":
                    depth -= 1
                    if depth == 0:
                        break
                i += 1
            if depth != 0:
                raise OperationSyntaxError("unbalanced parentheses in literal tree", statement)
            i += 1
        elif ch == '"':
            i += 1
            while i < n and statement[i] != '"':
                i += 2 if statement[i] == "\\" else 1
            if i >= n:
                raise OperationSyntaxError("unterminated quoted label", statement)
            i += 1
        elif ch == "/":
            slashes = 0
            while i < n and slashes < 3:
                if statement[i] == "\\":
                    i += 2
                    continue
                if statement[i] == "/":
                    slashes += 1
                i += 1
            if slashes < 3:
                raise OperationSyntaxError("expected /regex/replacement/", statement)
        else:
            while i < n and not statement[i].isspace():
                i += 1
        tokens.append(statement[start:i])
    return tokens


def _unquote(token: str) -> str:
    return re.sub(r"\\(.)", r"\1", token[1:-1])


def _split_regex(token: str, statement: str) -> Tuple[re.Pattern, str]:
    parts: List[str] = []
    current: List[str] = []
    i = 1
    while i < len(token):
        ch = token[i]
        if ch == "\\" and i + 1 < len(token):
            current.append("/" if token[i + 1] == "/" else token[i : i + 2])
            i += 2
            continue
        if ch == "/":
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    if len(parts) != 2 or current:
        raise OperationSyntaxError("expected /regex/replacement/", statement)
    try:
        compiled = re.compile(parts[0])
    except re.error as exc:
        raise OperationSyntaxError(f"invalid regular expression: {exc}", statement) from exc
    _check_replacement(compiled, parts[1], statement)
    return compiled, parts[1]


def _check_replacement(regex: re.Pattern, replacement: str, statement: str) -> None:
    if re.search(r"(?<!\\)(?:\\\\)*\\$", replacement):
        raise OperationSyntaxError("replacement ends with a lone backslash", statement)
    for match in _TEMPLATE_ESCAPE_RE.finditer(replacement):
        _octal, group_name, group_number, other = match.groups()
        if group_name is not None:
            if group_name.isdigit():
                known = int(group_name) <= regex.groups
            else:
                known = group_name in regex.groupindex
            if not known:
                raise OperationSyntaxError(f"replacement refers to unknown group '{group_name}'", statement)
        elif group_number is not None:
            if group_number.startswith("0"):
                continue
            if int(group_number) > regex.groups:
                raise OperationSyntaxError(f"replacement refers to unknown group {group_number}", statement)
        elif other is not None and other.isascii() and other.isalpha() and other not in _TEMPLATE_LETTER_ESCAPES:
            raise OperationSyntaxError(f"bad escape '\\{other}' in replacement", statement)


def parse_tree_template(text: str, statement: str, allow_foot: bool = False) -> TreeTemplate:
    """Read a literal tree, recording ``=name`` nodes and the ``@`` foot."""

    try:
        trees = list(read_trees(text))
    except TreeFormatError as exc:
        raise OperationSyntaxError(f"malformed literal tree: {exc.message}", statement) from exc
    if len(trees) != 1:
        raise OperationSyntaxError(f"expected one literal tree, found {len(trees)}", statement)
    tree = trees[0]

    names: List[Tuple[str, Tuple[int, ...]]] = []
    feet: List[Tuple[int, ...]] = []
    stack: List[Tuple[Tree, Tuple[int, ...]]] = [(tree, ())]
    while stack:
        node, path = stack.pop()
        label = node.label
        if label.endswith("@") and len(label) > 1:
            if not allow_foot:
                raise OperationSyntaxError("a foot node ('@') is only allowed in adjoin", statement)
            if node.children:
                raise OperationSyntaxError(f"foot node {label!r} must be a leaf", statement)
            label = label[:-1]
            feet.append(path)
        named = _NAMED_LABEL_RE.match(label)
        if named is not None and named.group(1):
            label = named.group(1)
            names.append((named.group(2), path))
        node.label = label
        for idx in range(len(node.children) - 1, -1, -1):
            stack.append((node.children[idx], path + (idx,)))

    if allow_foot and len(feet) != 1:
        raise OperationSyntaxError(f"auxiliary tree needs exactly one foot node, found {len(feet)}", statement)
    return TreeTemplate(tree=tree, names=tuple(names), foot=feet[0] if feet else None, text=text)


class _StatementParser:
    def __init__(self, statement: str):
        self.statement = statement.strip()
        self.tokens = tokenize_statement(self.statement)

    def error(self, message: str) -> OperationSyntaxError:
        return OperationSyntaxError(message, self.statement)

    def name(self, token: str) -> str:
        if not _NAME_RE.match(token):
            raise self.error(f"expected a capture name, found {token!r}")
        return token

    def source(self, token: str) -> Source:
        if token.startswith("("):
            return parse_tree_template(token, self.statement)
        return NodeRef(self.name(token))

    def position(self, tokens: SequenceType[str]) -> Position:
        if len(tokens) != 2:
            raise self.error("expected a position such as '$+ name', '$- name' or '>2 name'")
        relation, target = tokens
        if relation in ("$+", "$-"):
            return Position(relation, self.name(target))
        child = _CHILD_POSITION_RE.match(relation)
        if child is None:
            raise self.error(f"unknown position {relation!r}")
        index = int(child.group(1))
        if index == 0:
            raise self.error("child positions start at 1")
        return Position(">", self.name(target), index)

    def arity(self, args: SequenceType[str], count: int, usage: str) -> None:
        if len(args) != count:
            raise self.error(f"expected '{usage}'")

    def parse(self) -> Operation:
        if not self.tokens:
            raise self.error("empty statement")
        keyword, *args = self.tokens
        keyword = keyword.lower()

        if keyword in ("delete", "prune", "coindex"):
            if not args:
                raise self.error(f"expected '{keyword} name ...'")
            names = tuple(self.name(arg) for arg in args)
            return {"delete": Delete, "prune": Prune, "coindex": Coindex}[keyword](names)
        if keyword == "excise":
            self.arity(args, 2, "excise outer inner")
            return Excise(self.name(args[0]), self.name(args[1]))
        if keyword in ("relabel", "rename"):
            self.arity(args, 2, f"{keyword} name label")
            name, label = self.name(args[0]), args[1]
            if label.startswith("/"):
                regex, replacement = _split_regex(label, self.statement)
                return Relabel(name, regex=regex, replacement=replacement)
            if label.startswith('"'):
                return Relabel(name, label=_unquote(label))
            if label.startswith("("):
                raise self.error("relabel takes a label, not a tree")
            return Relabel(name, label=label)
        if keyword == "insert":
            if len(args) != 3:
                raise self.error("expected 'insert tree-or-name position name'")
            return Insert(self.source(args[0]), self.position(args[1:]))
        if keyword == "move":
            if len(args) != 3:
                raise self.error("expected 'move name position name'")
            return Move(self.name(args[0]), self.position(args[1:]))
        if keyword == "replace":
            self.arity(args, 2, "replace name tree-or-name")
            return Replace(self.name(args[0]), self.source(args[1]))
        if keyword == "adjoin":
            self.arity(args, 2, "adjoin auxiliary-tree name")
            if not args[0].startswith("("):
                raise self.error("adjoin needs a literal auxiliary tree")
            aux = parse_tree_template(args[0], self.statement, allow_foot=True)
            return Adjoin(aux, self.name(args[1]))
        raise self.error(f"unknown operation {keyword!r}")


def parse_operation(statement: str) -> Operation:
    """Compile one statement without checking capture names."""

    return _StatementParser(statement).parse()


def check_captures(
    operations: Iterable[Tuple[str, Operation]],
    declared: Iterable[str],
) -> None:
    """Raise :class:`UnboundCaptureError` for names neither declared nor introduced earlier.

    ``operations`` pairs each statement's text with its compiled form.
    """

    declared_names = frozenset(declared)
    known: Set[str] = set(declared_names)
    for statement, operation in operations:
        for name in operation.referenced():
            if name not in known:
                raise UnboundCaptureError(name, statement, declared_names)
        known.update(operation.introduced())


def compile_surgery(
    statements: Iterable[str],
    pattern: Optional[CompiledPattern] = None,
) -> Sequence:
    """Compile statements into one :class:`Sequence` sharing a name table.

    With ``pattern`` every referenced name is checked against its captures.
    """

    compiled: List[Tuple[str, Operation]] = []
    for statement in statements:
        compiled.append((statement.strip(), parse_operation(statement)))
    if not compiled:
        raise OperationSyntaxError("no surgery statements", "")
    if pattern is not None:
        check_captures(compiled, pattern.captures)
    return collect_operations(op for _, op in compiled)
