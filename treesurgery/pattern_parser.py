"""Compile pattern text into a :class:`~treesurgery.pattern.CompiledPattern`.

A pattern names an anchor node and the relations it must stand in::

    NP=np < (DT !< /^[Tt]he$/) $++ VP

Descriptions are literal labels, ``/regex/``, ``"quoted labels"``, ``@X``
basic categories or the wildcard ``__``, joined into disjunctions with ``|``
(no surrounding whitespace) and negated with a leading ``!``. Relations that
follow one node are conjoined; `` | `` between relations is ordered choice,
``[...]`` groups relations, ``!`` negates and ``?`` makes a relation optional.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from treesurgery.errors import PatternSyntaxError
from treesurgery.heads import BasicCategory, HeadFinder, RuleHeadFinder, penn_basic_category
from treesurgery.pattern import (
    And,
    CompiledPattern,
    Constraint,
    LabelAtom,
    LabelMatch,
    Maybe,
    NodePattern,
    Not,
    Or,
    RelationClause,
)
from treesurgery.relations import OPERATOR_SYMBOLS, Relation, RelationKind, kind_for_symbol

_IDENT_STOP = set("()[]<>$.,=!|&/@\"?")
_NAME_RE = re.compile(r"\w+")


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    offset: int
    spaced_before: bool = False
    spaced_after: bool = False


def tokenize_pattern(text: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(text)

    def error(message: str, offset: int) -> PatternSyntaxError:
        return PatternSyntaxError(message, text, offset, text[offset : offset + 10] or "end of pattern")

    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue

        start = i
        spaced = start > 0 and text[start - 1].isspace()

        if ch in "()[]!?&|":
            kind = {"(": "LPAREN", ")": "RPAREN", "[": "LBRACK", "]": "RBRACK", "!": "BANG", "?": "QMARK", "&": "AMP", "|": "PIPE"}[ch]
            i += 1
            tokens.append(Token(kind, ch, start, spaced))
        elif ch == "=" and not text.startswith("==", i):
            match = _NAME_RE.match(text, i + 1)
            if match is None:
                raise error("expected a capture name after '='", i)
            i = match.end()
            tokens.append(Token("NAME", match.group(), start, spaced))
        elif ch in "<>" and i + 1 < n and (text[i + 1].isdigit() or (text[i + 1] == "-" and i + 2 < n and text[i + 2].isdigit())):
            j = i + 1
            if text[j] == "-":
                j += 1
            while j < n and text[j].isdigit():
                j += 1
            tokens.append(Token("REL", text[i:j], start, spaced))
            i = j
        elif ch in "<>$.,=":
            for symbol in OPERATOR_SYMBOLS:
                if text.startswith(symbol, i):
                    tokens.append(Token("REL", symbol, start, spaced))
                    i += len(symbol)
                    break
            else:
                raise error(f"unknown relation starting with {ch!r}", i)
        elif ch == "/":
            j = i + 1
            body: List[str] = []
            while j < n and text[j] != "/":
                if text[j] == "\\" and j + 1 < n and text[j + 1] == "/":
                    body.append("/")
                    j += 2
                    continue
                body.append(text[j])
                j += 1
            if j >= n:
                raise error("unterminated regular expression", i)
            tokens.append(Token("REGEX", "".join(body), start, spaced))
            i = j + 1
        elif ch == '"':
            j = i + 1
            body = []
            while j < n and text[j] != '"':
                if text[j] == "\\" and j + 1 < n:
                    body.append(text[j + 1])
                    j += 2
                    continue
                body.append(text[j])
                j += 1
            if j >= n:
                raise error("unterminated quoted label", i)
            tokens.append(Token("QUOTED", "".join(body), start, spaced))
            i = j + 1
        elif ch == "@":
            tokens.append(Token("AT", ch, start, spaced))
            i += 1
        else:
            j = i
            while j < n and not text[j].isspace() and text[j] not in _IDENT_STOP:
                j += 1
            tokens.append(Token("IDENT", text[i:j], start, spaced))
            i = j

    # Mark tokens followed by whitespace so '|' can tell label disjunction from relation choice.
    marked: List[Token] = []
    for idx, tok in enumerate(tokens):
        end = tok.offset + len(tok.text)
        following = tokens[idx + 1] if idx + 1 < len(tokens) else None
        spaced_after = following is None or following.spaced_before or following.offset > end
        marked.append(Token(tok.kind, tok.text, tok.offset, tok.spaced_before, spaced_after))
    return marked


class _PatternParser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize_pattern(text)
        self.pos = 0

    # -- token helpers ----------------------------------------------------

    def peek(self, ahead: int = 0) -> Optional[Token]:
        idx = self.pos + ahead
        return self.tokens[idx] if idx < len(self.tokens) else None

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def error(self, message: str, tok: Optional[Token] = None) -> PatternSyntaxError:
        tok = tok if tok is not None else self.peek()
        if tok is None:
            return PatternSyntaxError(message, self.text, len(self.text), "end of pattern")
        return PatternSyntaxError(message, self.text, tok.offset, tok.text)

    def expect(self, kind: str, what: str) -> Token:
        tok = self.peek()
        if tok is None or tok.kind != kind:
            raise self.error(f"expected {what}")
        return self.advance()

    # -- grammar ----------------------------------------------------------

    def parse(self) -> NodePattern:
        if not self.tokens:
            raise self.error("empty pattern")
        node = self.node_expr()
        if self.peek() is not None:
            raise self.error("unexpected token after pattern")
        return node

    def node_expr(self) -> NodePattern:
        tok = self.peek()
        if tok is not None and tok.kind == "LPAREN":
            self.advance()
            inner = self.node_expr()
            self.expect("RPAREN", "')'")
            extra = self.relations_opt()
            if extra is None:
                return inner
            if inner.constraint is None:
                return NodePattern(inner.label, inner.name, extra)
            return NodePattern(inner.label, inner.name, And((inner.constraint, extra)))
        label, name = self.node_head()
        return NodePattern(label, name, self.relations_opt())

    def node_head(self):
        tok = self.peek()
        if tok is None:
            raise self.error("expected a node description")
        if tok.kind == "NAME":
            self.advance()
            return None, tok.text
        label = self.description()
        name = None
        nxt = self.peek()
        if nxt is not None and nxt.kind == "NAME":
            name = self.advance().text
        return label, name

    def description(self) -> LabelMatch:
        negated = False
        tok = self.peek()
        if tok is not None and tok.kind == "BANG":
            self.advance()
            negated = True
        atoms = [self.atom()]
        while True:
            tok = self.peek()
            following = self.peek(1)
            if (
                tok is not None
                and tok.kind == "PIPE"
                and not tok.spaced_before
                and not tok.spaced_after
                and following is not None
                and following.kind in ("IDENT", "REGEX", "QUOTED", "AT")
            ):
                self.advance()
                atoms.append(self.atom())
                continue
            break
        return LabelMatch(tuple(atoms), negated)

    def atom(self) -> LabelAtom:
        tok = self.peek()
        if tok is None:
            raise self.error("expected a node description")
        if tok.kind == "IDENT":
            self.advance()
            if tok.text == "__":
                return LabelAtom("any")
            return LabelAtom("literal", tok.text)
        if tok.kind == "QUOTED":
            self.advance()
            return LabelAtom("literal", tok.text)
        if tok.kind == "REGEX":
            self.advance()
            try:
                compiled = re.compile(tok.text)
            except re.error as exc:
                raise self.error(f"invalid regular expression: {exc}", tok) from exc
            return LabelAtom("regex", tok.text, compiled)
        if tok.kind == "AT":
            self.advance()
            ident = self.expect("IDENT", "a category after '@'")
            return LabelAtom("category", ident.text)
        raise self.error("expected a node description")

    def relations_opt(self) -> Optional[Constraint]:
        if not self._starts_relation(self.peek()):
            return None
        return self.relations()

    def _starts_relation(self, tok: Optional[Token]) -> bool:
        return tok is not None and tok.kind in ("REL", "BANG", "QMARK", "LBRACK", "AMP")

    def relations(self) -> Constraint:
        branches = [self.and_relations()]
        while True:
            tok = self.peek()
            if tok is None or tok.kind != "PIPE":
                break
            self.advance()
            branches.append(self.and_relations())
        return branches[0] if len(branches) == 1 else Or(tuple(branches))

    def and_relations(self) -> Constraint:
        tok = self.peek()
        if tok is not None and tok.kind == "AMP":
            raise self.error("'&' must join two relations")
        items = [self.unary_relation()]
        while True:
            tok = self.peek()
            if tok is not None and tok.kind == "AMP":
                self.advance()
                items.append(self.unary_relation())
                continue
            if self._starts_relation(tok):
                items.append(self.unary_relation())
                continue
            break
        return items[0] if len(items) == 1 else And(tuple(items))

    def unary_relation(self) -> Constraint:
        tok = self.peek()
        if tok is None:
            raise self.error("expected a relation")
        if tok.kind == "BANG":
            self.advance()
            return Not(self.unary_relation())
        if tok.kind == "QMARK":
            self.advance()
            return Maybe(self.unary_relation())
        if tok.kind == "LBRACK":
            self.advance()
            inner = self.relations()
            self.expect("RBRACK", "']'")
            return inner
        if tok.kind == "REL":
            relation = self.relation()
            return RelationClause(relation, self.partner())
        raise self.error("expected a relation")

    def relation(self) -> Relation:
        tok = self.advance()
        symbol = tok.text
        if symbol[0] in "<>" and len(symbol) > 1 and (symbol[1].isdigit() or symbol[1:].lstrip("-").isdigit()):
            index = int(symbol[1:])
            if index == 0:
                raise self.error("child indices start at 1", tok)
            kind = RelationKind.ITH_CHILD if symbol[0] == "<" else RelationKind.ITH_CHILD_OF
            return Relation(kind, index=index)
        kind = kind_for_symbol(symbol)
        if kind in (RelationKind.DOMINATES_VIA, RelationKind.DOMINATED_BY_VIA):
            self.expect("LPAREN", f"'(' after {symbol}")
            via = self.description()
            self.expect("RPAREN", "')'")
            return Relation(kind, via=via)
        return Relation(kind)

    def partner(self) -> NodePattern:
        tok = self.peek()
        if tok is not None and tok.kind == "LPAREN":
            self.advance()
            inner = self.node_expr()
            self.expect("RPAREN", "')'")
            return inner
        label, name = self.node_head()
        return NodePattern(label, name)


def parse_pattern(text: str) -> NodePattern:
    return _PatternParser(text).parse()


class PatternCompiler:
    """Compile pattern text with a fixed head finder and basic-category function.

    Strategies live on the compiler and on every pattern it produces, so
    compilers configured differently can be used side by side.
    """

    def __init__(
        self,
        head_finder: Optional[HeadFinder] = None,
        basic_category: Optional[BasicCategory] = None,
    ):
        self.basic_category = basic_category if basic_category is not None else penn_basic_category
        self.head_finder = head_finder if head_finder is not None else RuleHeadFinder(basic_category=self.basic_category)

    def compile(self, text: str) -> CompiledPattern:
        root = parse_pattern(text)
        return CompiledPattern(
            text=text.strip(),
            root=root,
            head_finder=self.head_finder,
            basic_category=self.basic_category,
        )


_default_compiler: Optional[PatternCompiler] = None


def compile_pattern(
    text: str,
    head_finder: Optional[HeadFinder] = None,
    basic_category: Optional[BasicCategory] = None,
) -> CompiledPattern:
    global _default_compiler

    if head_finder is not None or basic_category is not None:
        return PatternCompiler(head_finder, basic_category).compile(text)
    if _default_compiler is None:
        _default_compiler = PatternCompiler()
    return _default_compiler.compile(text)
