import json
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

CORPUS = "(S (NP (DT the) (NN dog)) (VP (VBD barked)))\n(S (VP (VBD ran)))\n"


def run(*args, input=None):
    return subprocess.run(
        [sys.executable, "-m", "treesurgery.cli", *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        input=input,
    )


def write_corpus(tmp_path: Path, text: str = CORPUS) -> Path:
    path = tmp_path / "corpus.mrg"
    path.write_text(text)
    return path


def test_cli_inline_pattern_operation(tmp_path: Path):
    corpus = write_corpus(tmp_path)

    result = run("-po", "NP=n", "delete n", "-s", "--tree-file", str(corpus))

    assert result.returncode == 0, result.stderr
    assert result.stdout.splitlines() == ["(S (VP (VBD barked)))", "(S (VP (VBD ran)))"]


def test_cli_shows_matched_trees_before_and_after(tmp_path: Path):
    corpus = write_corpus(tmp_path)

    result = run("-po", "NP=n", "delete n", "-s", "-m", "-treeFile", str(corpus))

    assert result.returncode == 0, result.stderr
    assert result.stdout.splitlines() == [
        "Operated on:",
        "(S (NP (DT the) (NN dog)) (VP (VBD barked)))",
        "Result:",
        "(S (VP (VBD barked)))",
        "(S (VP (VBD ran)))",
    ]


def test_cli_prints_null_for_deleted_trees(tmp_path: Path):
    corpus = write_corpus(tmp_path, "(S x)\n(T y)\n")

    result = run("-po", "S=s", "delete s", "-s", "--tree-file", str(corpus))

    assert result.returncode == 0, result.stderr
    assert result.stdout.splitlines() == ["null", "(T y)"]


def test_cli_reads_rule_files_and_stdin(tmp_path: Path):
    rules = tmp_path / "dt.rules"
    rules.write_text("NP=np < DT=d\n\nprune d\nrelabel np NX\n")

    result = run(str(rules), input="(S (NP (DT the) (NN dog)))")

    assert result.returncode == 0, result.stderr
    assert result.stdout == "(S\n  (NX (NN dog)))\n"


def test_cli_reports_partial_failures(tmp_path: Path):
    corpus = write_corpus(tmp_path)
    good = tmp_path / "good.rules"
    good.write_text("VBD=v\n\nrelabel v VBX\n")
    bad = tmp_path / "bad.rules"
    bad.write_text("NP=n\n\ndelete m\n")

    result = run(str(bad), str(good), "-s", "--tree-file", str(corpus))

    assert result.returncode == 2
    assert "skipping rule file" in result.stderr
    assert "capture 'm'" in result.stderr
    assert result.stdout.splitlines() == [
        "(S (NP (DT the) (NN dog)) (VP (VBX barked)))",
        "(S (VP (VBX ran)))",
    ]


def test_cli_fails_on_bad_inline_pattern(tmp_path: Path):
    corpus = write_corpus(tmp_path)

    result = run("-po", "NP <", "delete n", "--tree-file", str(corpus))

    assert result.returncode == 1
    assert result.stderr.startswith("treesurgery: -po: ")


def test_cli_fails_on_missing_tree_file(tmp_path: Path):
    result = run("-po", "NP=n", "delete n", "--tree-file", str(tmp_path / "nope.mrg"))

    assert result.returncode == 1
    assert result.stderr.startswith("treesurgery: tree file ")
    assert "does not exist" in result.stderr


def test_cli_requires_rules():
    result = run("--tree-file", "-", input="(S x)")

    assert result.returncode == 2
    assert "give rule files" in result.stderr


def test_cli_head_finder_and_step_budget(tmp_path: Path):
    corpus = write_corpus(tmp_path, "(NP (DT the) (NN dog))\n")
    base = ["-po", "NP <# __=h", "relabel h HEAD", "-s", "--max-steps", "1", "--tree-file", str(corpus)]

    left = run(*base, "--head-finder", "left")
    right = run(*base, "--head-finder", "right")

    assert left.returncode == 0, left.stderr
    assert left.stdout.strip() == "(NP (HEAD the) (NN dog))"
    assert right.stdout.strip() == "(NP (DT the) (HEAD dog))"
    assert "step budget" in left.stderr


def test_cli_writes_trace(tmp_path: Path):
    corpus = write_corpus(tmp_path)
    trace_file = tmp_path / "trace.jsonl"

    result = run("-po", "VBD=v", "relabel v VBX", "-s", "--tree-file", str(corpus), "--trace-jsonl", str(trace_file))

    assert result.returncode == 0, result.stderr
    records = [json.loads(line) for line in trace_file.read_text().splitlines()]
    assert [record["tree"] for record in records] == [0, 1]
    assert all(record["rule"] == "-po" for record in records)
