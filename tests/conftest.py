"""Shared fixtures: small questionnaire definitions built from plain dicts."""

from __future__ import annotations

from typing import Any, Dict, Optional

import pytest

from question_flow.engine import FlowEngine
from question_flow.graph import QuestionnaireGraph
from question_flow.models import Questionnaire
from question_flow.store import InMemorySessionStore


def _child(code: Optional[str]) -> Optional[Dict[str, str]]:
    return {"code": code} if code else None


def boolean(code: str, yes: Optional[str] = None, no: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    return {
        "code": code,
        "description": f"{code}?",
        "answerDataTypeDescription": "boolean",
        "answers": [
            {"code": "Y", "description": "Yes", "childQuestion": _child(yes)},
            {"code": "N", "description": "No", "childQuestion": _child(no)},
        ],
        **extra,
    }


def combo(code: str, options: Dict[str, Optional[str]], **extra: Any) -> Dict[str, Any]:
    return {
        "code": code,
        "description": f"{code}?",
        "answerDataTypeDescription": "combo",
        "answers": [
            {"code": option, "description": option.title(), "childQuestion": _child(child)}
            for option, child in options.items()
        ],
        **extra,
    }


def linear(code: str, data_type: str = "simple-text", child: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    return {
        "code": code,
        "description": f"{code}?",
        "answerDataTypeDescription": data_type,
        "childQuestion": _child(child),
        **extra,
    }


def build_graph(*questions: Dict[str, Any], questionnaire_id: str = "QN-TEST") -> QuestionnaireGraph:
    return QuestionnaireGraph(
        Questionnaire.model_validate({"questionnaireId": questionnaire_id, "questions": list(questions)})
    )


@pytest.fixture
def e2e_graph() -> QuestionnaireGraph:
    """Q1 (boolean: Y -> Q2, N -> end), Q2 (text, end)."""
    return build_graph(boolean("Q1", yes="Q2"), linear("Q2"))


@pytest.fixture
def flow_graph() -> QuestionnaireGraph:
    """Two branches under Q1.

    Q1 --Y--> A1 -> A2 --X--> A3 (date, end)
                       --Z--> end
       --N--> B1 (end)
    """
    return build_graph(
        boolean("Q1", yes="A1", no="B1"),
        linear("A1", child="A2"),
        combo("A2", {"X": "A3", "Z": None}),
        linear("A3", "date"),
        linear("B1"),
    )


@pytest.fixture
def make_engine():
    def _make(graph: QuestionnaireGraph, mode: str = "branch", store=None) -> FlowEngine:
        return FlowEngine(graph, store or InMemorySessionStore(), mode=mode)

    return _make
