import io
import json

from treesurgery.pattern_parser import compile_pattern
from treesurgery.runtime import SurgeryRule, SurgeryRuntime
from treesurgery.surgery_parser import compile_surgery
from treesurgery.trace import JSONLTracer, dump_events
from treesurgery.tree import Tree, read_trees


def relabel_rule() -> SurgeryRule:
    pattern = compile_pattern("NP=n")
    return SurgeryRule("to-nx", pattern, compile_surgery(["relabel n NX"], pattern))


def test_jsonl_tracer_captures_runtime_events():
    sink = io.StringIO()
    runtime = SurgeryRuntime([relabel_rule()], event_hooks=[JSONLTracer(sink)])

    runtime.process_tree(Tree.parse("(S (NP x) (NP y))"))

    lines = [l for l in sink.getvalue().splitlines() if l]
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["rule"] == "to-nx"
    assert first["before"] == "(S (NP x) (NP y))"
    assert first["after_tree"]["children"][0]["label"] == "NX"
    assert json.loads(lines[1])["after"] == "(S (NX x) (NX y))"


def test_jsonl_tracer_records_deleted_trees():
    pattern = compile_pattern("S=s")
    sink = io.StringIO()
    runtime = SurgeryRuntime(
        [SurgeryRule("drop", pattern, compile_surgery(["delete s"], pattern))],
        event_hooks=[JSONLTracer(sink)],
    )

    runtime.process_tree(Tree.parse("(S x)"))

    record = json.loads(sink.getvalue())
    assert record["after"] is None
    assert record["after_tree"] is None


def test_jsonl_tracer_is_shared_by_workers():
    sink = io.StringIO()
    runtime = SurgeryRuntime([relabel_rule()], event_hooks=[JSONLTracer(sink)])
    trees = read_trees(" ".join(f"(S (NP w{i}))" for i in range(10)))

    runtime.process_corpus(trees, workers=4)

    records = [json.loads(line) for line in sink.getvalue().splitlines()]
    assert sorted(record["tree"] for record in records) == list(range(10))


def test_dump_events_serializes_event_stream():
    events = []
    runtime = SurgeryRuntime([relabel_rule()], event_hooks=[events.append])
    runtime.process_tree(Tree.parse("(S (NP x))"))

    dumped = dump_events(events)

    assert len(dumped) == 1
    assert dumped[0]["step"] == 1
    assert json.loads(json.dumps(dumped)) == dumped
