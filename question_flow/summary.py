"""End-of-flow summary assembly."""
from __future__ import annotations

from typing import Any, List, Mapping

from .graph import trim_code
from .models import EndOfFlowResponse, Question, SummaryEntry


def build_summary(merged: Mapping[str, Any], branch: List[Question]) -> List[SummaryEntry]:
    """One ``{question, answer}`` entry per branch question; answer is None when absent."""
    return [SummaryEntry(question=q, answer=merged.get(trim_code(q.code))) for q in branch]


def end_of_flow(merged: Mapping[str, Any], branch: List[Question]) -> EndOfFlowResponse:
    return EndOfFlowResponse(summary=build_summary(merged, branch))
