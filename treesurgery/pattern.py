from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterator, Mapping, Optional, Tuple, Union

from treesurgery.heads import BasicCategory, HeadFinder
from treesurgery.relations import Relation
from treesurgery.tree import Tree

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from treesurgery.matcher import Matcher


@dataclass(frozen=True)
class LabelAtom:
    """One alternative of a node description.

    ``kind`` is ``literal`` (exact label), ``regex`` (``re.search`` on the
    label), ``category`` (``@X``: the basic category of the label equals X)
    or ``any`` (``__``).
    """

    kind: str
    value: str = ""
    regex: Optional[re.Pattern] = field(default=None, compare=False)

    def matches(self, label: str, basic_category: BasicCategory) -> bool:
        if self.kind == "any":
            return True
        if self.kind == "literal":
            return label == self.value
        if self.kind == "category":
            return basic_category(label) == self.value
        if self.kind == "regex":
            assert self.regex is not None
            return self.regex.search(label) is not None
        raise ValueError(f"Unknown label atom kind: {self.kind}")

    def __str__(self) -> str:
        if self.kind == "any":
            return "__"
        if self.kind == "category":
            return f"@{self.value}"
        if self.kind == "regex":
            return "/" + self.value.replace("/", "\\/") + "/"
        return self.value


@dataclass(frozen=True)
class LabelMatch:
    atoms: Tuple[LabelAtom, ...]
    negated: bool = False

    def matches(self, label: str, basic_category: BasicCategory) -> bool:
        hit = any(atom.matches(label, basic_category) for atom in self.atoms)
        return hit != self.negated

    def __str__(self) -> str:
        text = "|".join(str(atom) for atom in self.atoms)
        return f"!{text}" if self.negated else text


@dataclass(frozen=True, eq=False)
class NodePattern:
    """A node description with an optional capture name and relation constraint.

    ``label`` is ``None`` for a bare back-reference (``=name``), which only
    requires identity with the node bound earlier under that name.
    """

    label: Optional[LabelMatch]
    name: Optional[str] = None
    constraint: Optional["Constraint"] = None
    names: frozenset = field(init=False, repr=False)

    def __post_init__(self) -> None:
        names = set(_constraint_names(self.constraint)) if self.constraint is not None else set()
        if self.name is not None:
            names.add(self.name)
        object.__setattr__(self, "names", frozenset(names))

    def __str__(self) -> str:
        text = str(self.label) if self.label is not None else ""
        if self.name is not None:
            text += f"={self.name}"
        if self.constraint is not None:
            text += f" {self.constraint}"
        return text


@dataclass(frozen=True, eq=False)
class RelationClause:
    relation: Relation
    partner: NodePattern

    def __str__(self) -> str:
        partner = str(self.partner)
        if self.partner.constraint is not None:
            partner = f"({partner})"
        return f"{self.relation} {partner}"


@dataclass(frozen=True, eq=False)
class And:
    items: Tuple["Constraint", ...]

    def __str__(self) -> str:
        return " ".join(_grouped(item) for item in self.items)


@dataclass(frozen=True, eq=False)
class Or:
    """Ordered choice: alternatives are tried in declaration order."""

    items: Tuple["Constraint", ...]

    def __str__(self) -> str:
        return " | ".join(_grouped(item) for item in self.items)


@dataclass(frozen=True, eq=False)
class Not:
    item: "Constraint"

    def __str__(self) -> str:
        return f"!{_grouped(self.item)}"


@dataclass(frozen=True, eq=False)
class Maybe:
    item: "Constraint"

    def __str__(self) -> str:
        return f"?{_grouped(self.item)}"


Constraint = Union[RelationClause, And, Or, Not, Maybe]


def _grouped(item: Constraint) -> str:
    if isinstance(item, (And, Or)):
        return f"[{item}]"
    return str(item)


def _constraint_names(constraint: Constraint) -> Iterator[str]:
    if isinstance(constraint, RelationClause):
        yield from constraint.partner.names
    elif isinstance(constraint, (And, Or)):
        for item in constraint.items:
            yield from _constraint_names(item)
    elif isinstance(constraint, (Not, Maybe)):
        yield from _constraint_names(constraint.item)


def exported_names(node: NodePattern) -> frozenset:
    """Capture names a successful match can bind (names under ``!`` never escape)."""

    names = set()

    def walk_node(pattern: NodePattern) -> None:
        if pattern.name is not None:
            names.add(pattern.name)
        if pattern.constraint is not None:
            walk(pattern.constraint)

    def walk(constraint: Constraint) -> None:
        if isinstance(constraint, RelationClause):
            walk_node(constraint.partner)
        elif isinstance(constraint, (And, Or)):
            for item in constraint.items:
                walk(item)
        elif isinstance(constraint, Maybe):
            walk(constraint.item)

    walk_node(node)
    return frozenset(names)


@dataclass(frozen=True)
class Match:
    """Immutable snapshot of one successful match."""

    anchor: Tree
    bindings: Mapping[str, Tree]

    def node(self, name: str) -> Optional[Tree]:
        return self.bindings.get(name)


def freeze_bindings(env: Mapping[str, Tree]) -> Mapping[str, Tree]:
    return MappingProxyType(dict(env))


@dataclass(frozen=True)
class CompiledPattern:
    """A parsed pattern bound to its head-finder and basic-category strategies.

    Compiled patterns hold no per-search state and can be shared across
    threads; every search goes through a fresh :class:`Matcher`.
    """

    text: str
    root: NodePattern
    head_finder: HeadFinder
    basic_category: BasicCategory
    captures: frozenset = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "captures", exported_names(self.root))

    def matcher(self, tree: Tree) -> "Matcher":
        from treesurgery.matcher import Matcher

        return Matcher(self, tree)

    def finditer(self, tree: Tree) -> Iterator[Match]:
        """Yield every (anchor, bindings) combination in search order."""

        matcher = self.matcher(tree)
        while matcher.find():
            yield matcher.snapshot()

    def matches(self, tree: Tree) -> bool:
        """Whether the pattern matches anywhere in ``tree``."""

        return self.matcher(tree).find()

    def __str__(self) -> str:
        return self.text
