from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, Optional, Protocol, Tuple

from treesurgery.tree import Tree

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from treesurgery.pattern import LabelMatch


class RelationKind(Enum):
    PARENT_OF = "<"
    CHILD_OF = ">"
    DOMINATES = "<<"
    DOMINATED_BY = ">>"
    SISTER = "$"
    IMMEDIATE_LEFT_SISTER = "$+"
    IMMEDIATE_RIGHT_SISTER = "$-"
    LEFT_SISTER = "$++"
    RIGHT_SISTER = "$--"
    IMMEDIATELY_PRECEDES = "."
    PRECEDES = ".."
    IMMEDIATELY_FOLLOWS = ","
    FOLLOWS = ",,"
    IDENTITY = "=="
    IMMEDIATELY_HEADED_BY = "<#"
    IMMEDIATE_HEAD_OF = ">#"
    HEADED_BY = "<<#"
    HEAD_OF = ">>#"
    FIRST_CHILD = "<,"
    LAST_CHILD = "<-"
    ONLY_CHILD = "<:"
    FIRST_CHILD_OF = ">,"
    LAST_CHILD_OF = ">-"
    ONLY_CHILD_OF = ">:"
    LEFTMOST_DESCENDANT = "<<,"
    RIGHTMOST_DESCENDANT = "<<-"
    LEFTMOST_DESCENDANT_OF = ">>,"
    RIGHTMOST_DESCENDANT_OF = ">>-"
    UNARY_PATH_TO = "<<:"
    UNARY_PATH_FROM = ">>:"
    ITH_CHILD = "<i"
    ITH_CHILD_OF = ">i"
    DOMINATES_VIA = "<+"
    DOMINATED_BY_VIA = ">+"


SYMBOL_ALIASES: Dict[str, str] = {
    "$.": "$+",
    "$,": "$-",
    "$..": "$++",
    "$,,": "$--",
}

# Operators the lexer recognizes verbatim, longest first within each prefix.
OPERATOR_SYMBOLS: Tuple[str, ...] = tuple(
    sorted(
        {kind.value for kind in RelationKind if kind.value not in ("<i", ">i")} | set(SYMBOL_ALIASES),
        key=len,
        reverse=True,
    )
)


def kind_for_symbol(symbol: str) -> RelationKind:
    return RelationKind(SYMBOL_ALIASES.get(symbol, symbol))


@dataclass(frozen=True)
class Relation:
    """A relation operator, plus its child index or path description when it takes one."""

    kind: RelationKind
    index: Optional[int] = None
    via: Optional["LabelMatch"] = None

    def __str__(self) -> str:
        if self.kind is RelationKind.ITH_CHILD:
            return f"<{self.index}"
        if self.kind is RelationKind.ITH_CHILD_OF:
            return f">{self.index}"
        if self.via is not None:
            return f"{self.kind.value}({self.via})"
        return self.kind.value


class SearchContext(Protocol):
    """What candidate enumeration needs from the matcher driving it."""

    nodes: list

    def span(self, node: Tree) -> Tuple[int, int]: ...

    def head_of(self, node: Tree) -> Optional[Tree]: ...

    def label_matches(self, label: "LabelMatch", node: Tree) -> bool: ...


def _siblings(node: Tree) -> Tuple[list, int]:
    if node.parent is None:
        return [], -1
    siblings = node.parent.children
    return siblings, node.parent.child_index(node)


def _child_at(node: Tree, index: int) -> Optional[Tree]:
    """1-based child lookup; negative indices count from the right."""

    count = len(node.children)
    if index > 0 and index <= count:
        return node.children[index - 1]
    if index < 0 and -index <= count:
        return node.children[count + index]
    return None


def candidates(relation: Relation, node: Tree, ctx: SearchContext) -> Iterator[Tree]:
    """Yield every node B such that ``node <relation> B`` holds.

    Order is fixed: children left to right, descendants in preorder,
    ancestors nearest first, other tree-wide relations in preorder of the
    whole tree.
    """

    kind = relation.kind

    if kind is RelationKind.PARENT_OF:
        yield from list(node.children)
    elif kind is RelationKind.CHILD_OF:
        if node.parent is not None:
            yield node.parent
    elif kind is RelationKind.DOMINATES:
        descendants = node.preorder()
        next(descendants)
        yield from list(descendants)
    elif kind is RelationKind.DOMINATED_BY:
        yield from list(node.ancestors())
    elif kind is RelationKind.SISTER:
        siblings, _ = _siblings(node)
        yield from [sib for sib in siblings if sib is not node]
    elif kind is RelationKind.IMMEDIATE_LEFT_SISTER:
        siblings, idx = _siblings(node)
        if 0 <= idx < len(siblings) - 1:
            yield siblings[idx + 1]
    elif kind is RelationKind.IMMEDIATE_RIGHT_SISTER:
        siblings, idx = _siblings(node)
        if idx > 0:
            yield siblings[idx - 1]
    elif kind is RelationKind.LEFT_SISTER:
        siblings, idx = _siblings(node)
        if idx >= 0:
            yield from list(siblings[idx + 1 :])
    elif kind is RelationKind.RIGHT_SISTER:
        siblings, idx = _siblings(node)
        if idx > 0:
            yield from list(siblings[:idx])
    elif kind in _PRECEDENCE:
        yield from _precedence_candidates(kind, node, ctx)
    elif kind is RelationKind.IDENTITY:
        yield node
    elif kind is RelationKind.IMMEDIATELY_HEADED_BY:
        head = ctx.head_of(node)
        if head is not None:
            yield head
    elif kind is RelationKind.IMMEDIATE_HEAD_OF:
        if node.parent is not None and ctx.head_of(node.parent) is node:
            yield node.parent
    elif kind is RelationKind.HEADED_BY:
        head = ctx.head_of(node)
        while head is not None:
            yield head
            head = ctx.head_of(head)
    elif kind is RelationKind.HEAD_OF:
        current = node
        while current.parent is not None and ctx.head_of(current.parent) is current:
            current = current.parent
            yield current
    elif kind is RelationKind.FIRST_CHILD:
        if node.children:
            yield node.children[0]
    elif kind is RelationKind.LAST_CHILD:
        if node.children:
            yield node.children[-1]
    elif kind is RelationKind.ONLY_CHILD:
        if len(node.children) == 1:
            yield node.children[0]
    elif kind is RelationKind.FIRST_CHILD_OF:
        if node.parent is not None and node.parent.children[0] is node:
            yield node.parent
    elif kind is RelationKind.LAST_CHILD_OF:
        if node.parent is not None and node.parent.children[-1] is node:
            yield node.parent
    elif kind is RelationKind.ONLY_CHILD_OF:
        if node.parent is not None and len(node.parent.children) == 1:
            yield node.parent
    elif kind is RelationKind.LEFTMOST_DESCENDANT:
        current = node
        while current.children:
            current = current.children[0]
            yield current
    elif kind is RelationKind.RIGHTMOST_DESCENDANT:
        current = node
        while current.children:
            current = current.children[-1]
            yield current
    elif kind is RelationKind.LEFTMOST_DESCENDANT_OF:
        current = node
        while current.parent is not None and current.parent.children[0] is current:
            current = current.parent
            yield current
    elif kind is RelationKind.RIGHTMOST_DESCENDANT_OF:
        current = node
        while current.parent is not None and current.parent.children[-1] is current:
            current = current.parent
            yield current
    elif kind is RelationKind.UNARY_PATH_TO:
        current = node
        while len(current.children) == 1:
            current = current.children[0]
            yield current
    elif kind is RelationKind.UNARY_PATH_FROM:
        current = node
        while current.parent is not None and len(current.parent.children) == 1:
            current = current.parent
            yield current
    elif kind is RelationKind.ITH_CHILD:
        child = _child_at(node, relation.index or 0)
        if child is not None:
            yield child
    elif kind is RelationKind.ITH_CHILD_OF:
        if node.parent is not None and _child_at(node.parent, relation.index or 0) is node:
            yield node.parent
    elif kind is RelationKind.DOMINATES_VIA:
        yield from _dominates_via(node, relation.via, ctx)
    elif kind is RelationKind.DOMINATED_BY_VIA:
        current = node.parent
        while current is not None:
            yield current
            if not ctx.label_matches(relation.via, current):
                break
            current = current.parent
    else:  # pragma: no cover - exhaustive over RelationKind
        raise ValueError(f"Unsupported relation: {kind}")


_PRECEDENCE = frozenset(
    {
        RelationKind.IMMEDIATELY_PRECEDES,
        RelationKind.PRECEDES,
        RelationKind.IMMEDIATELY_FOLLOWS,
        RelationKind.FOLLOWS,
    }
)


def _precedence_candidates(kind: RelationKind, node: Tree, ctx: SearchContext) -> Iterator[Tree]:
    start, end = ctx.span(node)
    for other in ctx.nodes:
        other_start, other_end = ctx.span(other)
        if kind is RelationKind.PRECEDES and other_start >= end:
            yield other
        elif kind is RelationKind.IMMEDIATELY_PRECEDES and other_start == end:
            yield other
        elif kind is RelationKind.FOLLOWS and other_end <= start:
            yield other
        elif kind is RelationKind.IMMEDIATELY_FOLLOWS and other_end == start:
            yield other


def _dominates_via(node: Tree, via: "LabelMatch", ctx: SearchContext) -> Iterator[Tree]:
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        yield current
        if ctx.label_matches(via, current):
            stack.extend(reversed(current.children))
