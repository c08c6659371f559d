from treesurgery.errors import (  # noqa: F401
    OperationSyntaxError,
    PatternSyntaxError,
    StructuralPreconditionError,
    TreeFormatError,
    TreeSurgeryError,
    UnboundCaptureError,
)
from treesurgery.heads import (  # noqa: F401
    RuleHeadFinder,
    collins_head_finder,
    first_child_head,
    identity_category,
    last_child_head,
    penn_basic_category,
    resolve_head_finder,
)
from treesurgery.matcher import Matcher  # noqa: F401
from treesurgery.pattern import CompiledPattern, Match  # noqa: F401
from treesurgery.pattern_parser import PatternCompiler, compile_pattern, parse_pattern  # noqa: F401
from treesurgery.rulefile import load_rule_files, parse_rule_source, read_rule_file  # noqa: F401
from treesurgery.runtime import (  # noqa: F401
    Event,
    SurgeryRule,
    SurgeryRuntime,
    TreeResult,
    process_pattern,
    process_pattern_on_trees,
    process_patterns_on_tree,
)
from treesurgery.surgery import Operation, Sequence, collect_operations  # noqa: F401
from treesurgery.surgery_parser import compile_surgery, parse_operation  # noqa: F401
from treesurgery.trace import JSONLTracer, dump_events  # noqa: F401
from treesurgery.tree import Tree, read_trees  # noqa: F401
