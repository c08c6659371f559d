from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from treesurgery.errors import TreeSurgeryError
from treesurgery.pattern import CompiledPattern
from treesurgery.surgery import Operation
from treesurgery.tree import Tree, tree_to_dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SurgeryRule:
    """A compiled pattern paired with the operation applied at each of its matches."""

    name: str
    pattern: CompiledPattern
    operation: Operation
    source: Optional[str] = None


@dataclass
class Event:
    rule: str
    step: int
    tree_index: int
    anchor: str
    bindings: Dict[str, str]
    before_tree: Tree
    after_tree: Optional[Tree]

    def to_record(self) -> Dict[str, object]:
        """JSON-ready event representation for tracing."""

        return {
            "rule": self.rule,
            "step": self.step,
            "tree": self.tree_index,
            "anchor": self.anchor,
            "bindings": dict(self.bindings),
            "before": self.before_tree.to_bracketed(),
            "after": self.after_tree.to_bracketed() if self.after_tree is not None else None,
            "before_tree": tree_to_dict(self.before_tree),
            "after_tree": tree_to_dict(self.after_tree) if self.after_tree is not None else None,
        }


@dataclass
class TreeResult:
    """Outcome of running every rule to fixpoint on one tree."""

    index: int
    original: Tree
    tree: Optional[Tree]
    matched: bool = False
    applications: int = 0
    rule_counts: Dict[str, int] = field(default_factory=dict)
    budget_exhausted: bool = False
    error: Optional[TreeSurgeryError] = None

    @property
    def deleted(self) -> bool:
        return self.tree is None and self.error is None


class SurgeryRuntime:
    """Apply rules to fixpoint, rule after rule, on one tree or a corpus.

    Trees are independent, so ``process_corpus`` may fan them out over a
    thread pool; compiled rules are shared read-only between workers.
    """

    def __init__(
        self,
        rules: Sequence[SurgeryRule],
        event_hooks: Optional[List[Callable[[Event], None]]] = None,
        max_steps: Optional[int] = None,
    ):
        if max_steps is not None and max_steps <= 0:
            raise ValueError("max_steps must be positive when provided")
        names = [rule.name for rule in rules]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate rule names: {duplicates}")

        self.rules = list(rules)
        self.event_hooks: List[Callable[[Event], None]] = event_hooks or []
        self.max_steps = max_steps
        self.rule_counts: Dict[str, int] = {}
        self.trees_processed = 0
        self.trees_matched = 0
        self.trees_deleted = 0
        self.trees_failed = 0
        self.budget_exhausted = 0
        self._lock = threading.Lock()

    def process_tree(self, tree: Tree, index: int = 0) -> TreeResult:
        """Rewrite ``tree`` in place and return the new root (``None`` when deleted).

        Structural errors propagate; ``tree`` may be partially edited by then.
        """

        result = TreeResult(index=index, original=tree, tree=tree)
        current: Optional[Tree] = tree
        for rule in self.rules:
            if current is None or result.budget_exhausted:
                break
            current = self._run_rule(rule, current, result)
        result.tree = current
        self._record(result)
        return result

    def _run_rule(self, rule: SurgeryRule, tree: Tree, result: TreeResult) -> Optional[Tree]:
        current: Optional[Tree] = tree
        while current is not None:
            matcher = rule.pattern.matcher(current)
            if not matcher.find():
                break
            if self.max_steps is not None and result.applications >= self.max_steps:
                result.budget_exhausted = True
                logger.warning(
                    "tree %d: step budget of %d exhausted while rule %s still matches",
                    result.index,
                    self.max_steps,
                    rule.name,
                )
                break

            before = current.deep_copy() if self.event_hooks else None
            anchor = matcher.get_match()
            anchor_label = anchor.label if anchor is not None else ""
            bindings = {name: node.label for name, node in matcher.bindings().items()}
            try:
                current = rule.operation.evaluate(current, matcher)
            except TreeSurgeryError as exc:
                exc.with_context(source=exc.source or rule.source)
                raise

            result.matched = True
            result.applications += 1
            result.rule_counts[rule.name] = result.rule_counts.get(rule.name, 0) + 1
            logger.debug("tree %d: applied %s at %s", result.index, rule.name, anchor_label)

            if before is not None:
                event = Event(
                    rule=rule.name,
                    step=result.applications,
                    tree_index=result.index,
                    anchor=anchor_label,
                    bindings=bindings,
                    before_tree=before,
                    after_tree=current.deep_copy() if current is not None else None,
                )
                for hook in self.event_hooks:
                    hook(event)
        return current

    def _record(self, result: TreeResult) -> None:
        with self._lock:
            self.trees_processed += 1
            if result.error is not None:
                self.trees_failed += 1
                return
            for name, count in result.rule_counts.items():
                self.rule_counts[name] = self.rule_counts.get(name, 0) + count
            if result.matched:
                self.trees_matched += 1
            if result.tree is None:
                self.trees_deleted += 1
            if result.budget_exhausted:
                self.budget_exhausted += 1

    def _process_one(self, item: Tuple[int, Tree]) -> TreeResult:
        index, tree = item
        original = tree.deep_copy()
        try:
            result = self.process_tree(tree, index)
        except TreeSurgeryError as exc:
            logger.warning("tree %d: surgery failed, leaving it unchanged: %s", index, exc)
            result = TreeResult(index=index, original=original, tree=original.deep_copy(), error=exc)
            self._record(result)
            return result
        result.original = original
        return result

    def process_corpus(self, trees: Iterable[Tree], workers: Optional[int] = None) -> List[TreeResult]:
        """Process every tree independently; results keep the input order.

        A tree whose surgery fails is logged and reported unchanged with its
        ``error`` set; the remaining trees are still processed.
        """

        if workers is not None and workers <= 0:
            raise ValueError("workers must be positive when provided")
        items = list(enumerate(trees))
        if workers is None or workers == 1 or len(items) < 2:
            return [self._process_one(item) for item in items]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self._process_one, items))

    def stats(self) -> Dict[str, object]:
        """Summaries of corpus activity so far."""

        with self._lock:
            return {
                "rules": [rule.name for rule in self.rules],
                "rule_counts": dict(self.rule_counts),
                "trees": self.trees_processed,
                "matched": self.trees_matched,
                "deleted": self.trees_deleted,
                "failed": self.trees_failed,
                "budget_exhausted": self.budget_exhausted,
            }


def process_pattern(
    pattern: CompiledPattern,
    operation: Operation,
    tree: Tree,
    max_steps: Optional[int] = None,
) -> Optional[Tree]:
    """Apply ``operation`` at matches of ``pattern`` until the pattern no longer matches."""

    runtime = SurgeryRuntime([SurgeryRule("rule", pattern, operation)], max_steps=max_steps)
    return runtime.process_tree(tree).tree


def process_patterns_on_tree(rules: Sequence[SurgeryRule], tree: Tree) -> Tuple[Optional[Tree], bool]:
    """Run each rule to fixpoint in order; also report whether any rule matched."""

    result = SurgeryRuntime(rules).process_tree(tree)
    return result.tree, result.matched


def process_pattern_on_trees(
    pattern: CompiledPattern,
    operation: Operation,
    trees: Iterable[Tree],
) -> List[Optional[Tree]]:
    runtime = SurgeryRuntime([SurgeryRule("rule", pattern, operation)])
    return [result.tree for result in runtime.process_corpus(trees)]
