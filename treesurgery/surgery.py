"""Surgery operations applied at the nodes a pattern match located.

Operations are immutable and may be evaluated against many trees (and from
several threads); all per-application state lives in :class:`SurgeryState`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from treesurgery.errors import StructuralPreconditionError
from treesurgery.tree import Tree

Path = Tuple[int, ...]

_COINDEX_RE = re.compile(r"-(\d+)$")


class SurgeryState:
    """Working root and name table for one application of an operation."""

    def __init__(self, root: Tree, bindings: Mapping[str, Tree]):
        self.root: Optional[Tree] = root
        self.nodes: Dict[str, Tree] = dict(bindings)

    def node(self, name: str) -> Tree:
        node = self.nodes.get(name)
        if node is None:
            raise StructuralPreconditionError(f"capture '{name}' is not bound in this match")
        return node

    def bind(self, names: Mapping[str, Tree]) -> None:
        self.nodes.update(names)


@dataclass(frozen=True)
class TreeTemplate:
    """A literal tree from an operation, copied afresh on every use.

    ``names`` records the path of every ``=name`` node, ``foot`` the path of
    the ``@``-marked foot leaf of an auxiliary tree.
    """

    tree: Tree
    names: Tuple[Tuple[str, Path], ...] = ()
    foot: Optional[Path] = None
    text: str = ""

    def instantiate(self) -> Tuple[Tree, Dict[str, Tree], Optional[Tree]]:
        copy = self.tree.deep_copy()
        named = {name: _follow(copy, path) for name, path in self.names}
        foot = _follow(copy, self.foot) if self.foot is not None else None
        return copy, named, foot

    def introduced(self) -> List[str]:
        return [name for name, _ in self.names]

    def __str__(self) -> str:
        return self.text or self.tree.to_bracketed()


def _follow(tree: Tree, path: Path) -> Tree:
    node = tree
    for idx in path:
        node = node.children[idx]
    return node


@dataclass(frozen=True)
class NodeRef:
    name: str

    def __str__(self) -> str:
        return self.name


Source = Union[NodeRef, TreeTemplate]


def _materialize(source: Source, state: SurgeryState) -> Tree:
    if isinstance(source, NodeRef):
        return state.node(source.name).deep_copy()
    copy, named, _ = source.instantiate()
    state.bind(named)
    return copy


def _source_names(source: Source) -> List[str]:
    return [source.name] if isinstance(source, NodeRef) else []


def _source_introduced(source: Source) -> List[str]:
    return source.introduced() if isinstance(source, TreeTemplate) else []


@dataclass(frozen=True)
class Position:
    """Where ``insert``/``move`` put a node.

    ``$+`` makes it the left sister of ``target``, ``$-`` the right sister,
    ``>`` the ``index``-th child (1-based, negative from the right).
    """

    relation: str
    target: str
    index: Optional[int] = None

    def check(self, state: SurgeryState) -> Tree:
        target = state.node(self.target)
        if self.relation in ("$+", "$-") and target.parent is None:
            raise StructuralPreconditionError(f"cannot place a sister next to root node '{self.target}'")
        return target

    def place(self, node: Tree, state: SurgeryState) -> None:
        target = self.check(state)
        if self.relation == "$+":
            parent = target.parent
            parent.add_child(node, parent.child_index(target))
        elif self.relation == "$-":
            parent = target.parent
            parent.add_child(node, parent.child_index(target) + 1)
        else:
            count = len(target.children)
            index = self.index or 0
            slot = index - 1 if index > 0 else count + index + 1
            if slot < 0 or slot > count:
                raise StructuralPreconditionError(
                    f"child position {index} is out of range for '{self.target}' with {count} children"
                )
            target.add_child(node, slot)

    def __str__(self) -> str:
        if self.relation == ">":
            return f">{self.index} {self.target}"
        return f"{self.relation} {self.target}"


class Operation:
    """Base class for compiled surgery statements."""

    def apply(self, state: SurgeryState) -> None:
        raise NotImplementedError

    def referenced(self) -> List[str]:
        """Capture names read by this statement, in textual order."""

        return []

    def introduced(self) -> List[str]:
        """Capture names this statement adds for later statements."""

        return []

    def evaluate(self, tree: Tree, matcher) -> Optional[Tree]:
        """Apply to ``tree`` using the current match of ``matcher``.

        Returns the root of the edited tree, which may differ from ``tree``,
        or ``None`` when the whole tree was removed.
        """

        state = SurgeryState(tree, matcher.bindings())
        self.apply(state)
        return state.root


def _remove(node: Tree, state: SurgeryState) -> Optional[Tree]:
    """Detach ``node``; returns its former parent, or clears the root."""

    if node is state.root:
        state.root = None
        return None
    parent = node.parent
    if parent is not None:
        parent.remove_child(node)
    return parent


@dataclass(frozen=True)
class Delete(Operation):
    names: Tuple[str, ...]

    def apply(self, state: SurgeryState) -> None:
        for name in self.names:
            _remove(state.node(name), state)
            if state.root is None:
                return

    def referenced(self) -> List[str]:
        return list(self.names)

    def __str__(self) -> str:
        return "delete " + " ".join(self.names)


@dataclass(frozen=True)
class Prune(Operation):
    """Delete, then remove ancestors left without children (the root always stays)."""

    names: Tuple[str, ...]

    def apply(self, state: SurgeryState) -> None:
        for name in self.names:
            parent = _remove(state.node(name), state)
            if state.root is None:
                return
            while parent is not None and parent is not state.root and not parent.children:
                parent = _remove(parent, state)

    def referenced(self) -> List[str]:
        return list(self.names)

    def __str__(self) -> str:
        return "prune " + " ".join(self.names)


@dataclass(frozen=True)
class Excise(Operation):
    """Cut out ``outer`` and every node above ``inner``.

    ``inner`` takes the slot of ``outer``; ``excise n n`` splices ``n`` out,
    its children taking its slot.
    """

    outer: str
    inner: str

    def apply(self, state: SurgeryState) -> None:
        outer = state.node(self.outer)
        inner = state.node(self.inner)
        if outer is not inner and not outer.dominates(inner):
            raise StructuralPreconditionError(
                f"excise requires '{self.outer}' to dominate or equal '{self.inner}'"
            )
        if outer.parent is None and outer is not state.root:
            raise StructuralPreconditionError(f"node '{self.outer}' is no longer part of the tree")
        if outer is not inner:
            inner.detach()
            children = [inner]
        else:
            children = list(inner.children)
        if outer is state.root and len(children) != 1:
            raise StructuralPreconditionError(
                f"excising the root requires '{self.inner}' to have exactly one child, found {len(children)}"
            )
        for child in children:
            if child.parent is not None:
                inner.remove_child(child)
        if outer is state.root:
            state.root = children[0]
        else:
            outer.replace_with(children)

    def referenced(self) -> List[str]:
        return [self.outer, self.inner]

    def __str__(self) -> str:
        return f"excise {self.outer} {self.inner}"


@dataclass(frozen=True)
class Relabel(Operation):
    """Set a new label, or rewrite the old one with ``/regex/replacement/``."""

    name: str
    label: Optional[str] = None
    regex: Optional[re.Pattern] = None
    replacement: str = ""

    def apply(self, state: SurgeryState) -> None:
        node = state.node(self.name)
        if self.regex is not None:
            try:
                node.label = self.regex.sub(self.replacement, node.label)
            except re.error as exc:
                raise StructuralPreconditionError(f"cannot relabel '{self.name}': {exc}") from exc
        else:
            node.label = self.label or ""

    def referenced(self) -> List[str]:
        return [self.name]

    def __str__(self) -> str:
        if self.regex is not None:
            return f"relabel {self.name} /{self.regex.pattern}/{self.replacement}/"
        return f"relabel {self.name} {self.label}"


@dataclass(frozen=True)
class Insert(Operation):
    source: Source
    position: Position

    def apply(self, state: SurgeryState) -> None:
        self.position.check(state)
        self.position.place(_materialize(self.source, state), state)

    def referenced(self) -> List[str]:
        return _source_names(self.source) + [self.position.target]

    def introduced(self) -> List[str]:
        return _source_introduced(self.source)

    def __str__(self) -> str:
        return f"insert {self.source} {self.position}"


@dataclass(frozen=True)
class Move(Operation):
    name: str
    position: Position

    def apply(self, state: SurgeryState) -> None:
        node = state.node(self.name)
        target = self.position.check(state)
        if node is state.root or node.parent is None:
            raise StructuralPreconditionError(f"cannot move root node '{self.name}'")
        if target is node or node.dominates(target):
            raise StructuralPreconditionError(f"cannot move '{self.name}' into its own subtree")
        node.detach()
        self.position.place(node, state)

    def referenced(self) -> List[str]:
        return [self.name, self.position.target]

    def __str__(self) -> str:
        return f"move {self.name} {self.position}"


@dataclass(frozen=True)
class Replace(Operation):
    target: str
    source: Source

    def apply(self, state: SurgeryState) -> None:
        target = state.node(self.target)
        copy = _materialize(self.source, state)
        if target is state.root:
            state.root = copy
        elif target.parent is None:
            raise StructuralPreconditionError(f"node '{self.target}' is no longer part of the tree")
        else:
            target.replace_with([copy])

    def referenced(self) -> List[str]:
        return [self.target] + _source_names(self.source)

    def introduced(self) -> List[str]:
        return _source_introduced(self.source)

    def __str__(self) -> str:
        return f"replace {self.target} {self.source}"


@dataclass(frozen=True)
class Adjoin(Operation):
    """Splice an auxiliary tree in at a node; its children move under the foot."""

    aux: TreeTemplate
    name: str

    def apply(self, state: SurgeryState) -> None:
        target = state.node(self.name)
        if target is not state.root and target.parent is None:
            raise StructuralPreconditionError(f"node '{self.name}' is no longer part of the tree")
        aux_root, named, foot = self.aux.instantiate()
        assert foot is not None
        for child in list(target.children):
            target.remove_child(child)
            foot.add_child(child)
        if target is state.root:
            state.root = aux_root
        else:
            target.replace_with([aux_root])
        state.bind(named)

    def referenced(self) -> List[str]:
        return [self.name]

    def introduced(self) -> List[str]:
        return self.aux.introduced()

    def __str__(self) -> str:
        return f"adjoin {self.aux} {self.name}"


@dataclass(frozen=True)
class Coindex(Operation):
    """Append a shared fresh ``-k`` index to the labels of the named nodes."""

    names: Tuple[str, ...]

    def apply(self, state: SurgeryState) -> None:
        nodes = [state.node(name) for name in self.names]
        index = _next_coindex(state.root) if state.root is not None else 1
        for node in nodes:
            node.label = f"{node.label}-{index}"

    def referenced(self) -> List[str]:
        return list(self.names)

    def __str__(self) -> str:
        return "coindex " + " ".join(self.names)


def _next_coindex(root: Tree) -> int:
    highest = 0
    for node in root.preorder():
        if node.is_leaf():
            continue
        match = _COINDEX_RE.search(node.label)
        if match is not None:
            highest = max(highest, int(match.group(1)))
    return highest + 1


@dataclass(frozen=True)
class Sequence(Operation):
    """Statements applied in order against one match, sharing one name table."""

    operations: Tuple[Operation, ...]

    def apply(self, state: SurgeryState) -> None:
        for operation in self.operations:
            operation.apply(state)
            if state.root is None:
                return

    def referenced(self) -> List[str]:
        return [name for op in self.operations for name in op.referenced()]

    def introduced(self) -> List[str]:
        return [name for op in self.operations for name in op.introduced()]

    def __iter__(self):
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)

    def __str__(self) -> str:
        return "\n".join(str(op) for op in self.operations)


def collect_operations(operations: Iterable[Operation]) -> Sequence:
    """Bundle statements so that names introduced by one are visible to the next."""

    flat: List[Operation] = []
    for op in operations:
        if isinstance(op, Sequence):
            flat.extend(op.operations)
        else:
            flat.append(op)
    return Sequence(tuple(flat))
