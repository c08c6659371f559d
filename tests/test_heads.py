import pytest

from treesurgery.heads import (
    RuleHeadFinder,
    collins_head_finder,
    first_child_head,
    last_child_head,
    penn_basic_category,
    resolve_head_finder,
)
from treesurgery.tree import Tree


def test_penn_basic_category_strips_annotations():
    assert penn_basic_category("NP-SBJ-1") == "NP"
    assert penn_basic_category("NP=2") == "NP"
    assert penn_basic_category("VP") == "VP"
    assert penn_basic_category("-NONE-") == "-NONE-"
    assert penn_basic_category("") == ""


def test_collins_heads_for_clause_and_verb_phrase():
    tree = Tree.parse("(S (NP-SBJ (DT the) (NN dog)) (VP (VBD chased) (NP (DT a) (NN cat))))")
    finder = collins_head_finder()

    vp = finder(tree)
    assert vp is tree.children[1]
    assert finder(vp).label == "VBD"


def test_collins_noun_phrase_procedure():
    finder = collins_head_finder()

    np = Tree.parse("(NP (DT the) (JJ big) (NN dog) (PP (IN of) (NNP Oz)))")
    assert finder(np).label == "NN"

    possessive = Tree.parse("(NP (NNP John) (POS 's))")
    assert finder(possessive).label == "POS"


def test_unary_nodes_head_their_only_child_and_leaves_have_no_head():
    finder = collins_head_finder()
    tree = Tree.parse("(X (Y z))")

    assert finder(tree) is tree.children[0]
    assert finder(tree.children[0].children[0]) is None


def test_rule_head_finder_with_custom_table():
    finder = RuleHeadFinder(rules={"A": ("right", ["B"])}, default_direction="right")
    tree = Tree.parse("(A (B x) (C y) (B z))")

    assert finder(tree) is tree.children[2]
    assert finder(Tree.parse("(Q (B x) (C y))")).label == "C"


def test_rule_head_finder_validates_directions():
    with pytest.raises(ValueError, match="direction"):
        RuleHeadFinder(default_direction="up")
    with pytest.raises(ValueError, match="invalid direction"):
        RuleHeadFinder(rules={"A": ("down", [])})


def test_resolve_head_finder():
    tree = Tree.parse("(A (B x) (C y))")

    assert resolve_head_finder("left") is first_child_head
    assert resolve_head_finder("right")(tree) is last_child_head(tree)
    with pytest.raises(ValueError, match="Unknown head finder"):
        resolve_head_finder("nope")
