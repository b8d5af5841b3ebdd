"""Session merge and flow-changing edit detection.

Saved and incoming answers are folded into ordered ``code -> value`` maps
(later duplicates overwrite earlier ones in place). An incoming value that
differs from the saved one is a *flow-changing edit* only when it sends the
question down a different child than the saved value did; the first such
edit, in incoming order, prunes the subtree the saved value led to before
the maps are merged.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger

from .graph import QuestionnaireGraph, trim_code, value_key
from .models import AnswerRecord


@dataclass(frozen=True)
class FlowChange:
    """The earliest incoming edit that alters the traversal path."""

    code: str
    old_value: Any
    new_value: Any
    prev_child: Optional[str]
    new_child: Optional[str]


@dataclass
class MergeResult:
    merged: Dict[str, Any]
    change: Optional[FlowChange] = None
    pruned: List[str] = field(default_factory=list)


def answers_to_map(records: Optional[Iterable[AnswerRecord]]) -> Dict[str, Any]:
    """Ordered ``code -> value`` map; records without a code are skipped."""
    answers: Dict[str, Any] = {}
    for record in records or ():
        code = trim_code(record.questionCode)
        if code is None:
            continue
        answers[code] = record.value
    return answers


def detect_flow_change(
    graph: QuestionnaireGraph,
    incoming: Iterable[AnswerRecord],
    saved: Mapping[str, Any],
) -> Optional[FlowChange]:
    """Scan *incoming* in order for the first edit that changes the branch taken."""

    for record in incoming:
        code = trim_code(record.questionCode)
        if code is None:
            continue
        saved_value = saved.get(code)
        if saved_value is None or value_key(saved_value) == value_key(record.value):
            continue

        prev_child = graph.next_code_for_answer(code, saved_value)
        new_child = graph.next_code_for_answer(code, record.value)
        if prev_child == new_child:
            logger.debug("Edit on {} keeps branch {} – continue scanning", code, new_child)
            continue

        return FlowChange(
            code=code,
            old_value=saved_value,
            new_value=record.value,
            prev_child=prev_child,
            new_child=new_child,
        )
    return None


def prune_subtree(
    graph: QuestionnaireGraph,
    saved: Mapping[str, Any],
    start_code: Optional[str],
) -> Tuple[Dict[str, Any], List[str]]:
    """Copy of *saved* without every code reachable from *start_code*."""
    pruned = dict(saved)
    removed: List[str] = []
    if start_code is None:
        return pruned, removed
    for code in graph.collect_subtree(start_code):
        if code in pruned:
            del pruned[code]
            removed.append(code)
    return pruned, removed


def merge_answers(saved: Mapping[str, Any], incoming: Mapping[str, Any]) -> Dict[str, Any]:
    """Saved entries keep their order; incoming ones overwrite in place or append."""
    merged = dict(saved)
    merged.update(incoming)
    return merged


def merge_session(
    graph: QuestionnaireGraph,
    saved_records: Optional[Iterable[AnswerRecord]],
    incoming_records: Optional[List[AnswerRecord]],
) -> MergeResult:
    """Merge one request's answers into the saved progress of a session."""

    saved = answers_to_map(saved_records)
    if not incoming_records:
        return MergeResult(merged=saved)

    incoming = answers_to_map(incoming_records)
    change = detect_flow_change(graph, incoming_records, saved)
    removed: List[str] = []
    if change is not None:
        saved, removed = prune_subtree(graph, saved, change.prev_child)
        logger.info(
            "Flow-changing edit on {} | {} -> {} | branch {} -> {} | pruned={}",
            change.code,
            change.old_value,
            change.new_value,
            change.prev_child,
            change.new_child,
            removed,
        )

    return MergeResult(merged=merge_answers(saved, incoming), change=change, pruned=removed)
