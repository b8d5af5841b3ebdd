"""Questionnaire graph helpers.

Wraps the immutable :class:`~question_flow.models.Questionnaire` with a code
index and the navigation primitives the engine is built on:

* the branch rule (``next_code``) shared by edit detection, lookahead and
  branch resolution,
* depth-first subtree enumeration used for pruning,
* reachability checks used to rebuild a branch from partial state.

Child references are weak (codes only) and are always resolved through the
index, so a dangling reference simply ends the walk. Every walk keeps a
visited set; a malformed cyclic definition degrades to a truncated result.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional, Set

from loguru import logger

from .models import Question, Questionnaire

# ---------------------------------------------------------------------------
# Value / code canonicalisation
# ---------------------------------------------------------------------------


def trim_code(code: Any) -> Optional[str]:
    """Return *code* as a trimmed string, or None when absent."""
    if code is None:
        return None
    return str(code).strip()


def value_key(value: Any) -> Optional[str]:
    """Return the canonical string form of an answer value.

    Used both to match branching answer codes and to decide whether a
    resubmitted value differs from the saved one.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return str(value)


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class QuestionnaireGraph:
    """Read-only, code-indexed view of a questionnaire definition."""

    def __init__(self, questionnaire: Questionnaire) -> None:
        self.questionnaire = questionnaire
        self._by_code: Dict[str, Question] = {}
        for question in questionnaire.questions:
            # First definition wins for duplicated codes
            self._by_code.setdefault(question.code, question)

        # Any acyclic walk visits each question at most once
        self.max_steps = max(len(self._by_code), 1)

        cycle = self.find_cycle()
        if cycle:
            logger.warning(
                "Questionnaire {} contains a cycle: {}",
                questionnaire.questionnaireId,
                " -> ".join(cycle),
            )

    # -- lookup -------------------------------------------------------------

    @property
    def questionnaire_id(self) -> Optional[str]:
        return self.questionnaire.questionnaireId

    @property
    def root(self) -> Optional[Question]:
        questions = self.questionnaire.questions
        return questions[0] if questions else None

    def __len__(self) -> int:
        return len(self._by_code)

    def __contains__(self, code: object) -> bool:
        return trim_code(code) in self._by_code

    def __iter__(self) -> Iterator[Question]:
        return iter(self._by_code.values())

    def find_by_code(self, code: Any) -> Optional[Question]:
        """Return the question registered under *code* (trimmed) or None."""
        key = trim_code(code)
        if key is None:
            return None
        return self._by_code.get(key)

    # -- edges --------------------------------------------------------------

    def child_codes(self, question: Question) -> List[str]:
        """Outgoing edges of *question*, in declared order.

        Branching questions fan out over every answer's child; linear
        questions have at most their single ``childQuestion``.
        """
        if question.is_branching:
            return [a.childQuestion.code for a in question.answers if a.childQuestion is not None]
        if question.childQuestion is None:
            return []
        return [question.childQuestion.code]

    def next_code(self, question: Question, value: Any) -> Optional[str]:
        """Branch rule: the code that follows *question* when answered with *value*."""
        if question.is_branching:
            key = value_key(value)
            if key is None:
                return None
            for answer in question.answers:
                if answer.code == key:
                    return answer.childQuestion.code if answer.childQuestion else None
            return None
        return question.childQuestion.code if question.childQuestion else None

    def next_code_for_answer(self, question_code: Any, value: Any) -> Optional[str]:
        """Branch rule by code; None when the code is unknown or the flow ends."""
        question = self.find_by_code(question_code)
        if question is None:
            return None
        return self.next_code(question, value)

    # -- walks --------------------------------------------------------------

    def collect_subtree(self, start_code: Any) -> List[str]:
        """Codes reachable from *start_code* (inclusive) in depth-first order.

        Unknown codes are not included; codes already visited are skipped.
        """
        result: List[str] = []
        start = trim_code(start_code)
        if start is None:
            return result

        seen: Set[str] = set()
        stack = [start]
        while stack:
            code = stack.pop()
            if code in seen:
                continue
            question = self._by_code.get(code)
            if question is None:
                continue
            seen.add(code)
            result.append(code)
            # reversed so the first declared child is explored first
            stack.extend(reversed(self.child_codes(question)))
        return result

    def subtree_contains_answered(self, code: Optional[str], answered: Set[str]) -> bool:
        """True if *code* or any question reachable from it is in *answered*."""
        if code is None:
            return False
        seen: Set[str] = set()
        stack = [code]
        while stack:
            current = stack.pop()
            if current in answered:
                return True
            if current in seen:
                continue
            seen.add(current)
            question = self._by_code.get(current)
            if question is not None:
                stack.extend(self.child_codes(question))
        return False

    def child_leading_to_answered(self, question: Question, answered: Set[str]) -> Optional[str]:
        """First direct child (declared order) whose subtree holds an answer."""
        for child in self.child_codes(question):
            if self.subtree_contains_answered(child, answered):
                return child
        return None

    def find_cycle(self) -> Optional[List[str]]:
        """Return one cycle as a list of codes (first == last), or None."""
        in_progress, done = 1, 2
        state: Dict[str, int] = {}

        for start, question in self._by_code.items():
            if start in state:
                continue
            state[start] = in_progress
            path = [start]
            stack = [(start, iter(self.child_codes(question)))]
            while stack:
                code, children = stack[-1]
                for child in children:
                    if child not in self._by_code:
                        continue
                    mark = state.get(child)
                    if mark == in_progress:
                        return path[path.index(child):] + [child]
                    if mark is None:
                        state[child] = in_progress
                        path.append(child)
                        stack.append((child, iter(self.child_codes(self._by_code[child]))))
                        break
                else:
                    state[code] = done
                    path.pop()
                    stack.pop()
        return None
