from __future__ import annotations

from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple

from treesurgery.pattern import (
    And,
    CompiledPattern,
    Constraint,
    LabelMatch,
    Match,
    Maybe,
    NodePattern,
    Not,
    Or,
    RelationClause,
    freeze_bindings,
)
from treesurgery.relations import candidates
from treesurgery.tree import Tree

Env = Dict[str, Tree]


class Matcher:
    """Search state for one compiled pattern over one tree.

    Usage mirrors a regex matcher: :meth:`find` walks the tree in preorder
    and stops at each anchor that satisfies the pattern, :meth:`get_node`
    reads the captures of the current match. Internally every anchor is
    explored through a lazy generator of binding environments; environments
    are never mutated once produced, so backtracking is just resuming the
    generator.

    A matcher must not outlive modifications to its tree. Build a new one
    after each surgery.
    """

    def __init__(self, pattern: CompiledPattern, root: Tree):
        self.pattern = pattern
        self.root = root
        self.nodes: List[Tree] = list(root.preorder())
        self._spans = _leaf_spans(root)
        self._heads: Dict[int, Optional[Tree]] = {}
        self._failures: Set[Tuple[int, int, Tuple[Tuple[str, int], ...]]] = set()
        self.reset()

    # -- public API -------------------------------------------------------

    def reset(self) -> None:
        """Forget the current match and restart :meth:`find` from the root."""

        self._anchor: Optional[Tree] = None
        self._results: Optional[Iterator[Env]] = None
        self._bindings: Mapping[str, Tree] = freeze_bindings({})
        self._match: Optional[Tree] = None
        self._find_iter: Optional[Iterator[Tree]] = None
        self._find_current: Optional[Tree] = None

    def matches(self) -> bool:
        """Whether the current anchor (initially the root) satisfies the pattern.

        Repeated calls at the same anchor step through its remaining binding
        combinations and return ``False`` once they are exhausted.
        """

        if self._anchor is None:
            self._anchor = self.root
        if self._results is None:
            self._results = self._search(self._anchor)
        env = next(self._results, None)
        if env is None:
            self._bindings = freeze_bindings({})
            self._match = None
            return False
        self._bindings = freeze_bindings(env)
        self._match = self._anchor
        return True

    def matches_at(self, node: Tree) -> bool:
        """Move the anchor to ``node``; a later :meth:`find` restarts from the root."""

        self.reset()
        return self._match_from(node)

    def find(self) -> bool:
        """Advance to the next match, re-reporting an anchor for each binding combination."""

        if self._find_iter is None:
            self._find_iter = iter(self.nodes)
        if self._find_current is not None and self.matches():
            return True
        for node in self._find_iter:
            self._find_current = node
            if self._match_from(node):
                return True
        self._find_current = None
        return False

    def find_next_matching_node(self) -> bool:
        """Like :meth:`find` but skips further bindings at the previous anchor."""

        last = self._match
        while self.find():
            if self._match is not last:
                return True
        return False

    def get_match(self) -> Optional[Tree]:
        return self._match

    def get_node(self, name: str) -> Optional[Tree]:
        return self._bindings.get(name)

    def bindings(self) -> Mapping[str, Tree]:
        return self._bindings

    def snapshot(self) -> Match:
        if self._match is None:
            raise ValueError("matcher has no current match")
        return Match(anchor=self._match, bindings=self._bindings)

    # -- search context used by relation enumeration -----------------------

    def span(self, node: Tree) -> Tuple[int, int]:
        return self._spans[node.node_id]

    def head_of(self, node: Tree) -> Optional[Tree]:
        if node.node_id not in self._heads:
            self._heads[node.node_id] = self.pattern.head_finder(node) if node.children else None
        return self._heads[node.node_id]

    def label_matches(self, label: LabelMatch, node: Tree) -> bool:
        return label.matches(node.label, self.pattern.basic_category)

    # -- search -----------------------------------------------------------

    def _match_from(self, node: Tree) -> bool:
        self._anchor = node
        self._results = None
        return self.matches()

    def _search(self, anchor: Tree) -> Iterator[Env]:
        seen: Set[Tuple[Tuple[str, int], ...]] = set()
        for env in self._match_node(self.pattern.root, anchor, {}):
            key = tuple(sorted((name, node.node_id) for name, node in env.items()))
            if key in seen:
                continue
            seen.add(key)
            yield env

    def _match_node(self, pattern: NodePattern, node: Tree, env: Env) -> Iterator[Env]:
        # Failures depend only on the node and on bindings the sub-pattern reads.
        key = (
            id(pattern),
            node.node_id,
            tuple(sorted((name, env[name].node_id) for name in pattern.names if name in env)),
        )
        if key in self._failures:
            return
        found = False
        for result in self._match_node_uncached(pattern, node, env):
            found = True
            yield result
        if not found:
            self._failures.add(key)

    def _match_node_uncached(self, pattern: NodePattern, node: Tree, env: Env) -> Iterator[Env]:
        if pattern.label is not None and not self.label_matches(pattern.label, node):
            return
        if pattern.name is not None:
            bound = env.get(pattern.name)
            if bound is None:
                env = {**env, pattern.name: node}
            elif bound is not node:
                return
        if pattern.constraint is None:
            yield env
            return
        yield from self._satisfy(pattern.constraint, node, env)

    def _satisfy(self, constraint: Constraint, anchor: Tree, env: Env) -> Iterator[Env]:
        if isinstance(constraint, RelationClause):
            for candidate in candidates(constraint.relation, anchor, self):
                yield from self._match_node(constraint.partner, candidate, env)
        elif isinstance(constraint, And):
            yield from self._satisfy_all(constraint.items, 0, anchor, env)
        elif isinstance(constraint, Or):
            for item in constraint.items:
                yield from self._satisfy(item, anchor, env)
        elif isinstance(constraint, Not):
            if next(self._satisfy(constraint.item, anchor, env), None) is None:
                yield env
        elif isinstance(constraint, Maybe):
            found = False
            for result in self._satisfy(constraint.item, anchor, env):
                found = True
                yield result
            if not found:
                yield env
        else:  # pragma: no cover - exhaustive over Constraint
            raise TypeError(f"Unknown constraint: {constraint!r}")

    def _satisfy_all(self, items: Tuple[Constraint, ...], idx: int, anchor: Tree, env: Env) -> Iterator[Env]:
        if idx == len(items):
            yield env
            return
        for partial in self._satisfy(items[idx], anchor, env):
            yield from self._satisfy_all(items, idx + 1, anchor, partial)


def _leaf_spans(root: Tree) -> Dict[int, Tuple[int, int]]:
    """Map node ids to the half-open range of leaf positions they cover."""

    spans: Dict[int, Tuple[int, int]] = {}
    counter = 0

    def visit(node: Tree) -> None:
        nonlocal counter
        if not node.children:
            spans[node.node_id] = (counter, counter + 1)
            counter += 1
            return
        for child in node.children:
            visit(child)
        spans[node.node_id] = (spans[node.children[0].node_id][0], spans[node.children[-1].node_id][1])

    visit(root)
    return spans
