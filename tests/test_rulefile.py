import logging
from pathlib import Path

import pytest

from treesurgery.errors import OperationSyntaxError, PatternSyntaxError, UnboundCaptureError
from treesurgery.rulefile import load_rule_files, parse_rule_source, read_rule_file, strip_comment
from treesurgery.runtime import process_patterns_on_tree
from treesurgery.tree import Tree

RULES = """% drop determiners
NP=np
  < DT=d

delete d   % trailing comment

relabel np NP\\%X
"""


def test_strip_comment_honours_escapes():
    assert strip_comment("delete d % gone") == "delete d"
    assert strip_comment("relabel n 100\\%") == "relabel n 100%"
    assert strip_comment("% only a comment") == ""


def test_parse_rule_source_joins_pattern_lines_and_collects_statements():
    rule = parse_rule_source(RULES, "drop-dt.rules")

    assert rule.name == "drop-dt.rules"
    assert rule.pattern.text == "NP=np < DT=d"
    assert [str(op) for op in rule.operation] == ["delete d", "relabel np NP%X"]

    tree, matched = process_patterns_on_tree([rule], Tree.parse("(S (NP (DT the) (NN dog)))"))
    assert matched
    assert tree.to_bracketed() == "(S (NP%X (NN dog)))"


def test_pattern_errors_carry_file_and_line():
    with pytest.raises(PatternSyntaxError) as info:
        parse_rule_source("NP <\n\ndelete x\n", "bad.rules")

    assert info.value.source == "bad.rules"
    assert info.value.line == 1
    assert str(info.value).startswith("bad.rules:1: ")


def test_statement_errors_carry_their_line():
    with pytest.raises(OperationSyntaxError, match="unknown operation") as info:
        parse_rule_source("NP=n\n\ndelete n\nexplode n\n", "bad.rules")
    assert info.value.line == 4

    with pytest.raises(UnboundCaptureError) as unbound:
        parse_rule_source("NP=n\n\ndelete m\n", "bad.rules")
    assert unbound.value.line == 3
    assert unbound.value.name == "m"


def test_rule_files_need_a_pattern_and_statements():
    with pytest.raises(OperationSyntaxError, match="no surgery statements"):
        parse_rule_source("NP=n\n", "empty.rules")
    with pytest.raises(OperationSyntaxError, match="no pattern"):
        parse_rule_source("\n% nothing here\n", "empty.rules")


def test_read_rule_file_uses_the_path_as_name(tmp_path: Path):
    path = tmp_path / "drop.rules"
    path.write_text(RULES)

    rule = read_rule_file(path)

    assert rule.name == str(path)
    assert rule.source == str(path)


def test_load_rule_files_skips_broken_files(tmp_path: Path, caplog):
    good = tmp_path / "good.rules"
    good.write_text(RULES)
    bad = tmp_path / "bad.rules"
    bad.write_text("NP=n\n\nexplode n\n")
    missing = tmp_path / "missing.rules"

    with caplog.at_level(logging.ERROR, logger="treesurgery.rulefile"):
        rules, errors = load_rule_files([good, bad, missing, good])

    assert [rule.name for rule in rules] == [str(good), f"{good}#2"]
    assert len(errors) == 2
    assert isinstance(errors[0], OperationSyntaxError)
    assert isinstance(errors[1], OSError)
    assert "skipping rule file" in caplog.text
