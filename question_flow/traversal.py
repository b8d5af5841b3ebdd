"""Branch reconstruction.

Walks the questionnaire from its root using a session's merged answers and
returns the ordered list of questions currently "in play":

* a directly answered question advances by the branch rule,
* an unanswered question whose subtree holds answers (stale or partial
  state) is kept and the walk descends into the first child, in declared
  order, that leads to an answer,
* the walk stops at the first question with nothing answered at or below it.

The walk is bounded by the graph's ``max_steps`` and never revisits a code.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Set

from loguru import logger

from .graph import QuestionnaireGraph
from .models import Question


def resolve_branch(graph: QuestionnaireGraph, merged: Mapping[str, Any]) -> List[Question]:
    """Return the answered branch for *merged* (``code -> value``)."""

    branch: List[Question] = []
    root = graph.root
    if not merged or root is None:
        return branch

    answered: Set[str] = set(merged)
    visited: Set[str] = set()
    current: Optional[str] = root.code
    steps = 0

    while current is not None:
        if current in visited:
            logger.warning("Branch walk revisited {} – cyclic definition, stopping", current)
            break
        visited.add(current)

        question = graph.find_by_code(current)
        if question is None:
            break

        if steps >= graph.max_steps:
            logger.warning("Branch walk hit the step ceiling ({}) at {}", graph.max_steps, current)
            break
        steps += 1

        directly_answered = current in answered
        if not directly_answered and not graph.subtree_contains_answered(current, answered):
            break

        branch.append(question)

        if directly_answered:
            current = graph.next_code(question, merged[current])
        else:
            current = graph.child_leading_to_answered(question, answered)

    logger.debug("Resolved branch {}", [q.code for q in branch])
    return branch


def next_after_branch(
    graph: QuestionnaireGraph,
    branch: List[Question],
    merged: Mapping[str, Any],
) -> Optional[str]:
    """Code following the last question of *branch*, or None at end of flow."""
    if not branch:
        return None
    last = branch[-1]
    return graph.next_code(last, merged.get(last.code))
