from __future__ import annotations

import itertools
import re
from typing import Any, Dict, Iterator, List, Optional, Sequence

from treesurgery.errors import TreeFormatError

_node_ids = itertools.count(1)

Token = str

_TOKEN_RE = re.compile(r"\(|\)|[^\s()]+")


class Tree:
    """Mutable ordered tree node with a parent back-reference.

    Every node, leaves included, is a ``Tree``: a word is simply a node
    without children. Nodes are compared by identity; ``node_id`` is a stable
    integer handle that survives relabeling and moves but is never shared by
    two nodes, so a deep copy always receives fresh ids.
    """

    __slots__ = ("label", "children", "parent", "node_id")

    def __init__(self, label: str, children: Optional[Sequence["Tree"]] = None):
        self.label = label
        self.children: List[Tree] = []
        self.parent: Optional[Tree] = None
        self.node_id = next(_node_ids)
        for child in children or ():
            self.add_child(child)

    # -- structure -------------------------------------------------------

    def is_leaf(self) -> bool:
        return not self.children

    def is_preterminal(self) -> bool:
        return len(self.children) == 1 and self.children[0].is_leaf()

    def add_child(self, child: "Tree", index: Optional[int] = None) -> None:
        if child.parent is not None:
            raise ValueError(f"node {child.label!r} already has a parent; detach it first")
        if index is None:
            index = len(self.children)
        if index < 0 or index > len(self.children):
            raise IndexError(f"child index {index} out of range for {self.label!r}")
        self.children.insert(index, child)
        child.parent = self

    def child_index(self, child: "Tree") -> int:
        for idx, candidate in enumerate(self.children):
            if candidate is child:
                return idx
        raise ValueError(f"{child.label!r} is not a child of {self.label!r}")

    def remove_child(self, child: "Tree") -> int:
        """Detach ``child`` and return the slot it occupied."""

        idx = self.child_index(child)
        del self.children[idx]
        child.parent = None
        return idx

    def detach(self) -> Optional[int]:
        if self.parent is None:
            return None
        return self.parent.remove_child(self)

    def replace_with(self, others: Sequence["Tree"]) -> "Tree":
        """Put ``others`` into this node's slot, preserving their order.

        Returns the former parent. The node itself ends up detached.
        """

        parent = self.parent
        if parent is None:
            raise ValueError(f"cannot replace root node {self.label!r} in place")
        idx = parent.remove_child(self)
        for offset, other in enumerate(others):
            parent.add_child(other, idx + offset)
        return parent

    def root(self) -> "Tree":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def ancestors(self) -> Iterator["Tree"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def dominates(self, other: "Tree") -> bool:
        """True when ``other`` is a proper descendant of this node."""

        return any(ancestor is self for ancestor in other.ancestors())

    def preorder(self) -> Iterator["Tree"]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def leaves(self) -> List["Tree"]:
        return [node for node in self.preorder() if node.is_leaf()]

    def words(self) -> List[str]:
        return [leaf.label for leaf in self.leaves()]

    def deep_copy(self) -> "Tree":
        return Tree(self.label, [child.deep_copy() for child in self.children])

    def same_structure(self, other: "Tree") -> bool:
        if self.label != other.label or len(self.children) != len(other.children):
            return False
        return all(a.same_structure(b) for a, b in zip(self.children, other.children))

    # -- rendering -------------------------------------------------------

    def to_bracketed(self) -> str:
        if self.is_leaf() and self.parent is not None:
            return self.label
        inner = " ".join(child.to_bracketed() for child in self.children)
        if not inner:
            return f"({self.label})"
        return f"({self.label} {inner})" if self.label else f"( {inner})"

    def pretty(self, indent: int = 0) -> str:
        """Penn-style layout: phrases over preterminals stay on one line."""

        if self.is_leaf() or all(child.is_leaf() or child.is_preterminal() for child in self.children):
            return self.to_bracketed()

        pad = " " * (indent + 2)
        parts = [f"({self.label}"]
        for child in self.children:
            parts.append("\n" + pad + child.pretty(indent + 2))
        parts.append(")")
        return "".join(parts)

    def __str__(self) -> str:
        return self.to_bracketed()

    def __repr__(self) -> str:
        return f"Tree({self.to_bracketed()!r}, id={self.node_id})"

    # -- reading ---------------------------------------------------------

    @classmethod
    def parse(cls, text: str) -> "Tree":
        trees = list(read_trees(text))
        if len(trees) != 1:
            raise TreeFormatError(f"expected exactly one tree, found {len(trees)}")
        return trees[0]


def _tokenize(src: str) -> List[Token]:
    return _TOKEN_RE.findall(src)


def read_trees(text: str) -> Iterator[Tree]:
    """Read every Penn-bracketed tree in ``text``.

    ``(S (NP (DT the) (NN dog)) (VP (VBD barked)))`` gives a tree whose words
    are childless nodes. An opening bracket directly followed by another one,
    as in ``( (S ...))``, yields a root with an empty label.
    """

    tokens = _tokenize(text)
    pos = 0

    def read() -> Tree:
        nonlocal pos
        # tokens[pos] == "("
        pos += 1
        if pos >= len(tokens):
            raise TreeFormatError("unbalanced parentheses: input ends after '('")
        label = ""
        if tokens[pos] not in ("(", ")"):
            label = tokens[pos]
            pos += 1
        node = Tree(label)
        while True:
            if pos >= len(tokens):
                raise TreeFormatError(f"unbalanced parentheses: tree {label!r} is never closed")
            tok = tokens[pos]
            if tok == ")":
                pos += 1
                return node
            if tok == "(":
                node.add_child(read())
            else:
                node.add_child(Tree(tok))
                pos += 1

    while pos < len(tokens):
        tok = tokens[pos]
        if tok != "(":
            raise TreeFormatError(f"expected '(' but found {tok!r} at token {pos}")
        yield read()


def tree_to_dict(tree: Tree) -> Dict[str, Any]:
    """Serialize a tree into a JSON-friendly dict for tracing."""

    return {
        "label": tree.label,
        "children": [tree_to_dict(child) for child in tree.children],
    }
