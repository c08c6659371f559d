"""Pluggable head-finding and category-normalization strategies.

The pattern engine never hard-codes linguistic knowledge: head relations
(``<#``, ``>>#`` ...) call a head finder and ``@X`` descriptions call a
basic-category function, both handed to :class:`~treesurgery.pattern.PatternCompiler`.
The defaults below follow the Penn Treebank conventions.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from treesurgery.tree import Tree

ANNOTATION_CHARS = "-=|#^~_"

BasicCategory = Callable[[str], str]


class HeadFinder(Protocol):
    def __call__(self, node: Tree) -> Optional[Tree]:
        """Return the head child of ``node`` or ``None`` for a leaf."""


def penn_basic_category(label: str) -> str:
    """Strip functional annotations: ``NP-SBJ-1`` → ``NP``, ``NP=2`` → ``NP``.

    Bracket-style labels that start with an annotation character, such as
    ``-NONE-`` or ``-LRB-``, are returned unchanged.
    """

    if not label or label[0] in ANNOTATION_CHARS:
        return label
    for idx, ch in enumerate(label):
        if ch in ANNOTATION_CHARS:
            return label[:idx]
    return label


def identity_category(label: str) -> str:
    return label


def first_child_head(node: Tree) -> Optional[Tree]:
    return node.children[0] if node.children else None


def last_child_head(node: Tree) -> Optional[Tree]:
    return node.children[-1] if node.children else None


HeadRule = Tuple[str, Sequence[str]]

# Collins (1999) head table; "left" scans children left to right.
COLLINS_HEAD_RULES: Dict[str, HeadRule] = {
    "ADJP": ("left", "NNS QP NN $ ADVP JJ VBN VBG ADJP JJR NP JJS DT FW RBR RBS SBAR RB".split()),
    "ADVP": ("right", "RB RBR RBS FW ADVP TO CD JJR JJ IN NP JJS NN".split()),
    "CONJP": ("right", "CC RB IN".split()),
    "FRAG": ("right", []),
    "INTJ": ("left", []),
    "LST": ("right", "LS :".split()),
    "NAC": ("left", "NN NNS NNP NNPS NP NAC EX $ CD QP PRP VBG JJ JJS JJR ADJP FW".split()),
    "PP": ("right", "IN TO VBG VBN RP FW".split()),
    "PRN": ("left", []),
    "PRT": ("right", ["RP"]),
    "QP": ("left", "$ IN NNS NN JJ RB DT CD NCD QP JJR JJS".split()),
    "RRC": ("right", "VP NP ADVP ADJP PP".split()),
    "S": ("left", "TO IN VP S SBAR ADJP UCP NP".split()),
    "SBAR": ("left", "WHNP WHPP WHADVP WHADJP IN DT S SQ SINV SBAR FRAG".split()),
    "SBARQ": ("left", "SQ S SINV SBARQ FRAG".split()),
    "SINV": ("left", "VBZ VBD VBP VB MD VP S SINV ADJP NP".split()),
    "SQ": ("left", "VBZ VBD VBP VB MD VP SQ".split()),
    "UCP": ("right", []),
    "VP": ("left", "TO VBD VBN MD VBZ VB VBG VBP VP ADJP NN NNS NP".split()),
    "WHADJP": ("left", "CC WRB JJ ADJP".split()),
    "WHADVP": ("right", "CC WRB".split()),
    "WHNP": ("left", "WDT WP WP$ WHADJP WHPP WHNP".split()),
    "WHPP": ("right", "IN TO FW".split()),
    "X": ("right", []),
}

_NP_SEARCHES: List[Tuple[bool, frozenset]] = [
    (True, frozenset({"NN", "NNP", "NNPS", "NNS", "NX", "POS", "JJR"})),
    (False, frozenset({"NP"})),
    (True, frozenset({"$", "ADJP", "PRN"})),
    (True, frozenset({"CD"})),
    (True, frozenset({"JJ", "JJS", "RB", "QP"})),
]


class RuleHeadFinder:
    """Table-driven head finder in the style of Collins' head rules.

    ``rules`` maps a basic category to ``(direction, priorities)``; for each
    priority category in turn the children are scanned in ``direction`` and
    the first child of that category is the head. Categories missing from
    the table, or with no matching child, fall back to the first child in
    ``default_direction``. Noun phrases use Collins' special NP procedure
    unless the table overrides ``NP``.
    """

    def __init__(
        self,
        rules: Optional[Mapping[str, HeadRule]] = None,
        basic_category: BasicCategory = penn_basic_category,
        default_direction: str = "left",
    ):
        if default_direction not in ("left", "right"):
            raise ValueError(f"direction must be 'left' or 'right', got {default_direction!r}")
        self.rules = dict(COLLINS_HEAD_RULES if rules is None else rules)
        for category, (direction, _) in self.rules.items():
            if direction not in ("left", "right"):
                raise ValueError(f"head rule for {category} has invalid direction {direction!r}")
        self.basic_category = basic_category
        self.default_direction = default_direction

    def __call__(self, node: Tree) -> Optional[Tree]:
        if not node.children:
            return None
        if len(node.children) == 1:
            return node.children[0]

        category = self.basic_category(node.label)
        if category == "NP" and "NP" not in self.rules:
            return self._noun_phrase_head(node)

        rule = self.rules.get(category)
        if rule is None:
            return self._ordered(node.children, self.default_direction)[0]

        direction, priorities = rule
        ordered = self._ordered(node.children, direction)
        for wanted in priorities:
            for child in ordered:
                if self.basic_category(child.label) == wanted:
                    return child
        return ordered[0]

    def _noun_phrase_head(self, node: Tree) -> Tree:
        children = node.children
        last = children[-1]
        if self.basic_category(last.label) == "POS":
            return last
        for from_right, categories in _NP_SEARCHES:
            ordered = self._ordered(children, "right" if from_right else "left")
            for child in ordered:
                if self.basic_category(child.label) in categories:
                    return child
        return last

    @staticmethod
    def _ordered(children: Iterable[Tree], direction: str) -> List[Tree]:
        ordered = list(children)
        if direction == "right":
            ordered.reverse()
        return ordered


def collins_head_finder() -> RuleHeadFinder:
    return RuleHeadFinder()


head_finder_registry: Dict[str, Callable[[], HeadFinder]] = {
    "collins": collins_head_finder,
    "left": lambda: first_child_head,
    "right": lambda: last_child_head,
}


def resolve_head_finder(name: str) -> HeadFinder:
    if name not in head_finder_registry:
        known = ", ".join(sorted(head_finder_registry))
        raise ValueError(f"Unknown head finder '{name}' (known: {known})")
    return head_finder_registry[name]()
