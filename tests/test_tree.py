import pytest

from treesurgery.errors import TreeFormatError
from treesurgery.tree import Tree, read_trees, tree_to_dict

SENTENCE = "(S (NP (DT the) (NN dog)) (VP (VBD barked)))"


def test_parse_round_trips_bracketed_text():
    tree = Tree.parse(SENTENCE)

    assert tree.label == "S"
    assert tree.to_bracketed() == SENTENCE
    assert tree.words() == ["the", "dog", "barked"]
    assert tree.children[0].children[1].parent is tree.children[0]


def test_read_trees_reads_every_tree_in_a_corpus():
    trees = list(read_trees("(A x)\n(B (C y) z)\n"))

    assert [t.label for t in trees] == ["A", "B"]
    assert trees[1].words() == ["y", "z"]


def test_read_trees_gives_empty_root_label_for_double_bracket():
    tree = Tree.parse("( (S (NP x)))")

    assert tree.label == ""
    assert tree.children[0].label == "S"
    assert tree.to_bracketed() == "( (S (NP x)))"


def test_malformed_trees_raise_tree_format_error():
    with pytest.raises(TreeFormatError, match="never closed"):
        Tree.parse("(S (NP x)")
    with pytest.raises(TreeFormatError, match="expected '\\('"):
        list(read_trees("x (S y)"))
    with pytest.raises(TreeFormatError, match="exactly one tree"):
        Tree.parse("(A x) (B y)")


def test_add_child_rejects_attached_nodes():
    tree = Tree.parse("(A (B x) (C y))")
    b = tree.children[0]

    with pytest.raises(ValueError, match="already has a parent"):
        tree.children[1].add_child(b)


def test_replace_with_splices_nodes_in_order():
    tree = Tree.parse("(A (B x) (C y) (D z))")
    c = tree.children[1]

    parent = c.replace_with([Tree("E"), Tree("F")])

    assert parent is tree
    assert c.parent is None
    assert [child.label for child in tree.children] == ["B", "E", "F", "D"]


def test_replace_with_rejects_root():
    with pytest.raises(ValueError, match="root"):
        Tree("A").replace_with([Tree("B")])


def test_dominance_and_ancestors():
    tree = Tree.parse(SENTENCE)
    dog = tree.children[0].children[1].children[0]

    assert tree.dominates(dog)
    assert not dog.dominates(tree)
    assert not tree.dominates(tree)
    assert [node.label for node in dog.ancestors()] == ["NN", "NP", "S"]


def test_deep_copy_has_fresh_identities():
    tree = Tree.parse(SENTENCE)
    copy = tree.deep_copy()

    assert copy.same_structure(tree)
    assert copy is not tree
    original_ids = {node.node_id for node in tree.preorder()}
    assert original_ids.isdisjoint(node.node_id for node in copy.preorder())


def test_pretty_keeps_preterminal_phrases_on_one_line():
    tree = Tree.parse(SENTENCE)

    assert tree.pretty() == "(S\n  (NP (DT the) (NN dog))\n  (VP (VBD barked)))"


def test_root_leaf_renders_in_brackets():
    assert Tree("A").to_bracketed() == "(A)"
    assert Tree("A").pretty() == "(A)"


def test_tree_to_dict_is_json_friendly():
    assert tree_to_dict(Tree.parse("(A (B x))")) == {
        "label": "A",
        "children": [{"label": "B", "children": [{"label": "x", "children": []}]}],
    }
