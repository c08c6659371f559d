import pytest

from treesurgery.errors import OperationSyntaxError, UnboundCaptureError
from treesurgery.pattern_parser import compile_pattern
from treesurgery.surgery import Adjoin, Delete, Insert, NodeRef, Position, Relabel, Sequence, TreeTemplate
from treesurgery.surgery_parser import compile_surgery, parse_operation, parse_tree_template, tokenize_statement


def test_tokenize_statement_keeps_literals_whole():
    assert tokenize_statement('insert (NP (DT the) (NN dog)) $+ n') == ["insert", "(NP (DT the) (NN dog))", "$+", "n"]
    assert tokenize_statement('relabel n "a b"') == ["relabel", "n", '"a b"']
    assert tokenize_statement(r"relabel n /a\/b/c/") == ["relabel", "n", r"/a\/b/c/"]


def test_parse_basic_statements():
    assert parse_operation("delete a b") == Delete(("a", "b"))
    assert parse_operation("  RELABEL n NP  ") == Relabel("n", label="NP")

    insert = parse_operation("insert n >-2 vp")
    assert insert == Insert(NodeRef("n"), Position(">", "vp", -2))
    assert str(insert) == "insert n >-2 vp"


def test_literal_tree_templates_record_names():
    template = parse_tree_template("(NP=np (DT=d the) (NN dog))", "insert ...")

    assert isinstance(template, TreeTemplate)
    assert template.tree.to_bracketed() == "(NP (DT the) (NN dog))"
    assert dict(template.names) == {"np": (), "d": (0,)}
    assert template.introduced() == ["np", "d"]


def test_adjoin_template_records_its_foot():
    op = parse_operation("adjoin (VP (ADVP often) VP@) vp")

    assert isinstance(op, Adjoin)
    assert op.aux.foot == (1,)
    copy, names, foot = op.aux.instantiate()
    assert foot.label == "VP"
    assert foot.parent is copy
    assert names == {}


@pytest.mark.parametrize(
    "statement, message",
    [
        ("", "empty statement"),
        ("explode n", "unknown operation"),
        ("delete", "delete name"),
        ("excise a", "excise outer inner"),
        ("insert (DT the) n", "insert tree-or-name position name"),
        ("insert (DT the) >0 n", "child positions start at 1"),
        ("insert (DT the) $$ n", "unknown position"),
        ("move n <1 m", "unknown position"),
        ("insert (DT the $+ n", "unbalanced parentheses"),
        ("relabel n /abc/", "expected /regex/replacement/"),
        ("relabel n /(/x/", "invalid regular expression"),
        ("relabel n (NP x)", "label, not a tree"),
        (r"relabel n /N(P)/\2/", "unknown group 2"),
        (r"relabel n /N(?P<cat>P)/\g<kind>/", "unknown group 'kind'"),
        (r"relabel n /NP/\q/", "bad escape"),
        ("adjoin n vp", "literal auxiliary tree"),
        ("adjoin (VP (ADVP often)) vp", "exactly one foot node"),
        ("adjoin (VP VP@ NP@) vp", "exactly one foot node"),
        ("insert (VP VP@) $+ n", "only allowed in adjoin"),
        ("delete n-1", "capture name"),
    ],
)
def test_operation_syntax_errors(statement, message):
    with pytest.raises(OperationSyntaxError, match=message):
        parse_operation(statement)


def test_compile_surgery_checks_captures_against_the_pattern():
    pattern = compile_pattern("NP=n < DT=d")

    with pytest.raises(UnboundCaptureError) as info:
        compile_surgery(["delete d", "relabel x FOO"], pattern)

    assert info.value.name == "x"
    assert info.value.declared == frozenset({"n", "d"})
    assert info.value.statement == "relabel x FOO"
    assert isinstance(info.value, OperationSyntaxError)


def test_names_under_negation_are_not_declared():
    pattern = compile_pattern("NP=n !< DT=d")

    with pytest.raises(UnboundCaptureError, match="capture 'd'"):
        compile_surgery(["delete d"], pattern)


def test_literal_names_are_visible_to_later_statements_only():
    pattern = compile_pattern("NP=n")

    operation = compile_surgery(["insert (DT=d the) $+ n", "relabel d DET"], pattern)
    assert isinstance(operation, Sequence)
    assert len(operation) == 2

    with pytest.raises(UnboundCaptureError):
        compile_surgery(["relabel d DET", "insert (DT=d the) $+ n"], pattern)


def test_compile_surgery_needs_a_statement():
    with pytest.raises(OperationSyntaxError, match="no surgery statements"):
        compile_surgery([])


def test_replacement_templates_accept_known_groups():
    op = parse_operation(r"relabel n /^(?P<cat>[A-Z]+)-(\d+)$/\g<cat>\2\g<0>\\\n/")

    assert isinstance(op, Relabel)
    assert op.replacement == r"\g<cat>\2\g<0>\\\n"
