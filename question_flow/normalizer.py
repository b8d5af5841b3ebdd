"""Answer payload normalisation.

Requests carry answers either in the preferred ``answers`` shape
(``[{questionCode, value}]``) or in the legacy ``comboQuestions`` shape
(``[{key, value}]``). Both are reduced to one canonical list of
:class:`~question_flow.models.AnswerRecord`.
"""
from __future__ import annotations

from typing import Any, List, Mapping, Optional

from loguru import logger

from .graph import trim_code
from .models import AnswerRecord


def normalize_answers(block: Optional[Mapping[str, Any]]) -> Optional[List[AnswerRecord]]:
    """Return the canonical answer list for a request's questionnaire block.

    ``None`` means no block was provided at all; an empty list means a block
    was provided but carried no usable answers. When ``answers`` is a list it
    wins and ``comboQuestions`` is ignored.
    """
    if block is None:
        return None
    if not isinstance(block, Mapping):
        logger.warning("Questionnaire block ignored, expected an object but got {}", type(block).__name__)
        return []

    raw_answers = block.get("answers")
    if isinstance(raw_answers, list):
        return [
            AnswerRecord(questionCode=trim_code(item.get("questionCode")), value=item.get("value"))
            for item in raw_answers
            if isinstance(item, Mapping)
        ]

    raw_combo = block.get("comboQuestions")
    if isinstance(raw_combo, list):
        logger.debug("Normalising {} legacy comboQuestions entries", len(raw_combo))
        return [
            AnswerRecord(questionCode=trim_code(item.get("key")), value=item.get("value"))
            for item in raw_combo
            if isinstance(item, Mapping)
        ]

    return []
