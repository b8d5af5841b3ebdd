"""Engine facade – public entry-point used by the REST API and tests."""

from __future__ import annotations

import os
from typing import Any, List, Mapping, Optional

from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .definition import load_graph
from .errors import SessionConflictError
from .graph import QuestionnaireGraph
from .logging import FLOW_EDITS_TOTAL, FLOW_PRUNED_ANSWERS, timed
from .merge import MergeResult, merge_session
from .models import (
    AnswerRecord,
    EndOfFlowResponse,
    EngineResponse,
    NextQuestionResponse,
    Question,
    SessionState,
    ValidationResult,
)
from .normalizer import normalize_answers
from .store import SessionStore, create_store
from .summary import end_of_flow
from .traversal import next_after_branch, resolve_branch
from .validation import validate_answers

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# "branch": next question always comes from the resolved branch.
# "lookahead": next question comes from the detected edit or the last incoming answer.
NEXT_QUESTION_MODE = os.getenv("NEXT_QUESTION_MODE", "branch")
MODES = ("branch", "lookahead")

SESSION_CAS_MAX_ATTEMPTS = int(os.getenv("SESSION_CAS_MAX_ATTEMPTS", "5"))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class FlowEngine:
    """Drives one questionnaire for many sessions over a session store."""

    def __init__(self, graph: QuestionnaireGraph, store: SessionStore, mode: Optional[str] = None) -> None:
        mode = (mode or NEXT_QUESTION_MODE).strip().lower()
        if mode not in MODES:
            raise ValueError(f"Unknown next-question mode {mode!r}; expected one of {MODES}")
        self.graph = graph
        self.store = store
        self.mode = mode

    # -- public operations --------------------------------------------------

    @timed("next_step")
    def next_step(self, session_id: str, block: Optional[Mapping[str, Any]] = None) -> EngineResponse:
        """Merge the block's answers into the session and return what comes next.

        Parameters
        ----------
        session_id : str
            Key of the session progress in the store.
        block : Mapping | None
            The request's ``questionnaire`` block, in the ``answers`` or the
            legacy ``comboQuestions`` shape. ``None`` resumes from saved progress.
        """

        incoming = normalize_answers(block)
        questionnaire_id = self._questionnaire_id(block)
        logger.info(
            "Engine invoked for session {} | incoming={}",
            session_id,
            None if incoming is None else [r.questionCode for r in incoming],
        )

        result = self._merge_and_persist(session_id, questionnaire_id, incoming)
        if result.change is not None:
            FLOW_EDITS_TOTAL.inc()
            FLOW_PRUNED_ANSWERS.inc(len(result.pruned))

        response = self._respond(incoming, result, questionnaire_id)

        if isinstance(response, NextQuestionResponse):
            logger.info("Engine response | session={} next={}", session_id, response.questions[0].code)
        else:
            logger.info(
                "Engine response | session={} end of flow | summary={}",
                session_id,
                [entry.question.code for entry in response.summary],
            )
        return response

    def get_progress(self, session_id: str) -> Optional[SessionState]:
        stored = self.store.get(session_id)
        return stored.state if stored else None

    def clear_progress(self, session_id: str) -> None:
        self.store.delete(session_id)
        logger.info("Progress cleared for session {}", session_id)

    def validate(self, block: Optional[Mapping[str, Any]]) -> List[ValidationResult]:
        return validate_answers(self.graph, normalize_answers(block) or [])

    # -- state --------------------------------------------------------------

    def _questionnaire_id(self, block: Optional[Mapping[str, Any]]) -> Optional[str]:
        if isinstance(block, Mapping) and block.get("questionnaireId") is not None:
            return str(block["questionnaireId"])
        return self.graph.questionnaire_id

    @retry(
        reraise=True,
        stop=stop_after_attempt(SESSION_CAS_MAX_ATTEMPTS),
        wait=wait_exponential_jitter(initial=0.01, max=0.25),
        retry=retry_if_exception_type(SessionConflictError),
    )
    def _merge_and_persist(
        self,
        session_id: str,
        questionnaire_id: Optional[str],
        incoming: Optional[List[AnswerRecord]],
    ) -> MergeResult:
        """One read-merge-write cycle; retried from the read on a version conflict."""

        stored = self.store.get(session_id)
        expected = stored.version if stored else 0
        result = merge_session(self.graph, stored.state.answers if stored else None, incoming)

        if result.merged:
            state = SessionState.from_answer_map(questionnaire_id, result.merged)
            self.store.set(session_id, state, expected_version=expected)
        elif stored is not None:
            self.store.delete(session_id, expected_version=expected)
        return result

    # -- next question ------------------------------------------------------

    def _respond(
        self,
        incoming: Optional[List[AnswerRecord]],
        result: MergeResult,
        questionnaire_id: Optional[str],
    ) -> EngineResponse:
        merged = result.merged

        if self.mode == "lookahead" and incoming:
            if result.change is not None:
                next_code = result.change.new_child
            else:
                last = incoming[-1]
                next_code = self.graph.next_code_for_answer(last.questionCode, last.value)
            return self._question_or_summary(next_code, merged, questionnaire_id)

        if not merged:
            return self._start(questionnaire_id)

        branch = resolve_branch(self.graph, merged)
        if not branch and self.mode == "branch":
            # Nothing saved lies on the flow; start over from the root
            return self._start(questionnaire_id)
        return self._question_or_summary(next_after_branch(self.graph, branch, merged), merged, questionnaire_id, branch)

    def _start(self, questionnaire_id: Optional[str]) -> EngineResponse:
        root = self.graph.root
        if root is None:
            logger.warning("Questionnaire {} has no questions", self.graph.questionnaire_id)
            return EndOfFlowResponse()
        return NextQuestionResponse(questionnaireId=questionnaire_id, questions=[root])

    def _question_or_summary(
        self,
        next_code: Optional[str],
        merged: Mapping[str, Any],
        questionnaire_id: Optional[str],
        branch: Optional[List[Question]] = None,
    ) -> EngineResponse:
        question = self.graph.find_by_code(next_code) if next_code is not None else None
        if question is not None and branch is not None and any(q.code == question.code for q in branch):
            logger.warning("Next question {} is already on the branch – cyclic definition", question.code)
            question = None
        if question is None:
            if next_code is not None:
                logger.info("Next question {} ends the flow", next_code)
            if branch is None:
                branch = resolve_branch(self.graph, merged)
            return end_of_flow(merged, branch)
        return NextQuestionResponse(questionnaireId=questionnaire_id, questions=[question])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_engine(
    path: Optional[str] = None,
    store: Optional[SessionStore] = None,
    mode: Optional[str] = None,
) -> FlowEngine:
    """Load the definition and wire the configured session store."""
    graph = load_graph(path)
    engine = FlowEngine(graph, store or create_store(), mode=mode)
    logger.info(
        "Engine ready | questionnaire={} questions={} store={} mode={}",
        graph.questionnaire_id,
        len(graph),
        type(engine.store).__name__,
        engine.mode,
    )
    return engine
