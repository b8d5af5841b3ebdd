"""Answer value validation against a question's data-type contract.

``parse_answer_value`` turns a raw JSON value into the closed
:data:`~question_flow.models.AnswerValue` union and raises
:class:`~question_flow.errors.InvalidAnswerError` when the value does not fit.
``is_valid`` is the boolean contract exposed to callers. The flow-resolution
path never calls into this module.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping

from .errors import InvalidAnswerError
from .graph import QuestionnaireGraph
from .models import (
    AmountValue,
    AnswerDataType,
    AnswerRecord,
    AnswerValue,
    ChoiceValue,
    DateTimeValue,
    DateValue,
    Question,
    TextValue,
    ValidationResult,
)

# ISO-8601 calendar date and local date-time (no offset, millis or micros)
_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)
_DATE_TIME_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.(\d{3}|\d{6}))?)?", re.ASCII)
_DECIMAL_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?", re.ASCII)

_TEXT_TYPES = {AnswerDataType.SIMPLE_TEXT.value, AnswerDataType.SIMPLE_TEXTAREA.value}
_CHOICE_TYPES = {AnswerDataType.BOOLEAN.value, AnswerDataType.COMBO.value}


def _require_text(question: Question, value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidAnswerError(
            f"Question {question.code} expects text but received {type(value).__name__}"
        )
    return value


def _parse_amount(question: Question, value: Any) -> AmountValue:
    if not isinstance(value, Mapping):
        raise InvalidAnswerError(f"Question {question.code} expects an amount object")
    raw_amount = value.get("amount")
    if raw_amount is None or isinstance(raw_amount, bool):
        raise InvalidAnswerError(f"Question {question.code} amount is missing or not numeric")
    if isinstance(raw_amount, str) and not _DECIMAL_RE.fullmatch(raw_amount):
        raise InvalidAnswerError(f"Question {question.code} amount {raw_amount!r} is not numeric")
    try:
        amount = Decimal(str(raw_amount))
    except InvalidOperation as exc:
        raise InvalidAnswerError(f"Question {question.code} amount {raw_amount!r} is not numeric") from exc
    if not amount.is_finite():
        raise InvalidAnswerError(f"Question {question.code} amount {raw_amount!r} is not finite")
    if "currency" not in value:
        raise InvalidAnswerError(f"Question {question.code} amount has no currency")
    return AmountValue(amount=amount, currency=value["currency"])


def parse_answer_value(question: Question, value: Any) -> AnswerValue:
    """Return the typed value for *value* under *question*'s data type."""

    data_type = question.answerDataTypeDescription

    if data_type in _TEXT_TYPES:
        return TextValue(text=_require_text(question, value))

    if data_type in _CHOICE_TYPES:
        code = _require_text(question, value)
        if not any(answer.code == code for answer in question.answers):
            raise InvalidAnswerError(f"Question {question.code} has no answer {code!r}")
        return ChoiceValue(code=code)

    if data_type == AnswerDataType.DATE.value:
        text = _require_text(question, value)
        try:
            if not _DATE_RE.fullmatch(text):
                raise ValueError(text)
            return DateValue(value=date.fromisoformat(text))
        except ValueError as exc:
            raise InvalidAnswerError(f"Question {question.code} expects an ISO date, got {text!r}") from exc

    if data_type == AnswerDataType.DATE_TIME.value:
        text = _require_text(question, value)
        try:
            if not _DATE_TIME_RE.fullmatch(text):
                raise ValueError(text)
            return DateTimeValue(value=datetime.fromisoformat(text))
        except ValueError as exc:
            raise InvalidAnswerError(f"Question {question.code} expects an ISO date-time, got {text!r}") from exc

    if data_type == AnswerDataType.AMOUNT.value:
        return _parse_amount(question, value)

    raise InvalidAnswerError(f"Question {question.code} has unsupported data type {data_type!r}")


def is_valid(question: Question, value: Any) -> bool:
    """True when *value* satisfies *question*'s data-type contract."""
    if value is None and question.mandatory:
        return False
    try:
        parse_answer_value(question, value)
    except InvalidAnswerError:
        return False
    return True


def validate_answers(graph: QuestionnaireGraph, records: Iterable[AnswerRecord]) -> List[ValidationResult]:
    """Validate each record against its question; unknown codes are invalid."""
    results: List[ValidationResult] = []
    for record in records:
        question = graph.find_by_code(record.questionCode)
        if question is None:
            results.append(ValidationResult(questionCode=record.questionCode, valid=False, reason="unknown question"))
            continue
        if record.value is None and question.mandatory:
            results.append(ValidationResult(questionCode=record.questionCode, valid=False, reason="mandatory answer missing"))
            continue
        try:
            parse_answer_value(question, record.value)
        except InvalidAnswerError as exc:
            results.append(ValidationResult(questionCode=record.questionCode, valid=False, reason=str(exc)))
        else:
            results.append(ValidationResult(questionCode=record.questionCode, valid=True))
    return results
