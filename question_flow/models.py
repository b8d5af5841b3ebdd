"""Pydantic contracts mirroring the questionnaire definition and engine payloads.

Definition models are frozen: the questionnaire is loaded once and shared
read-only by every session. Wire names are camelCase (``isMandatory`` and
friends are exposed through aliases) so definitions and responses round-trip
unchanged.
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

END_OF_FLOW_MESSAGE = "End of questionnaire"


# ---------------------------------------------------------------------------
# Answer data types
# ---------------------------------------------------------------------------


class AnswerDataType(str, Enum):
    SIMPLE_TEXT = "simple-text"
    SIMPLE_TEXTAREA = "simple-textarea"
    BOOLEAN = "boolean"
    DATE = "date"
    DATE_TIME = "dateTime"
    AMOUNT = "amount"
    COMBO = "combo"


# Types whose next step depends on the selected answer
BRANCHING_TYPES = frozenset({AnswerDataType.BOOLEAN.value, AnswerDataType.COMBO.value})


# ---------------------------------------------------------------------------
# Definition nodes
# ---------------------------------------------------------------------------


class DefinitionModel(BaseModel):
    """Immutable base for definition nodes."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class ChildQuestion(DefinitionModel):
    """Weak reference to another question, by code only."""

    code: str

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()


class Answer(DefinitionModel):
    code: str
    description: Optional[str] = None
    creditBooked: bool = Field(default=False, alias="isCreditBooked")
    nextActions: Optional[Tuple[Any, ...]] = None
    childQuestion: Optional[ChildQuestion] = None


class Question(DefinitionModel):
    questionId: Optional[str] = None
    code: str
    description: Optional[str] = None
    categoryCode: Optional[str] = None
    categoryDescription: Optional[str] = None
    mandatory: bool = Field(default=False, alias="isMandatory")
    creditBooked: bool = Field(default=False, alias="isCreditBooked")
    documentMandatory: bool = Field(default=False, alias="isDocumentMandatory")
    commentMandatory: bool = Field(default=False, alias="isCommentMandatory")
    answerDataTypeDescription: Optional[str] = None
    answers: Tuple[Answer, ...] = ()
    nextActions: Optional[Tuple[Any, ...]] = None
    guidance: Optional[Tuple[Any, ...]] = None
    childQuestion: Optional[ChildQuestion] = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()

    @field_validator("answers", mode="before")
    @classmethod
    def answers_default(cls, v: Any) -> Any:
        return () if v is None else v

    @property
    def is_branching(self) -> bool:
        return self.answerDataTypeDescription in BRANCHING_TYPES


class Questionnaire(DefinitionModel):
    questionnaireId: Optional[str] = None
    questions: Tuple[Question, ...] = ()

    @field_validator("questions", mode="before")
    @classmethod
    def questions_default(cls, v: Any) -> Any:
        return () if v is None else v


# ---------------------------------------------------------------------------
# Answer records & persisted session layout
# ---------------------------------------------------------------------------


class AnswerRecord(BaseModel):
    """A single ``(questionCode, value)`` pair, canonical wire shape."""

    questionCode: Optional[str] = None
    value: Any = None


class SessionQuestionnaire(BaseModel):
    questionnaireId: Optional[str] = None
    answers: List[AnswerRecord] = []


class SessionState(BaseModel):
    """Persisted per-session progress; ``answers`` order is insertion order."""

    questionnaire: SessionQuestionnaire = Field(default_factory=SessionQuestionnaire)

    @classmethod
    def from_answer_map(cls, questionnaire_id: Optional[str], merged: Dict[str, Any]) -> "SessionState":
        records = [AnswerRecord(questionCode=code, value=value) for code, value in merged.items()]
        return cls(questionnaire=SessionQuestionnaire(questionnaireId=questionnaire_id, answers=records))

    @property
    def answers(self) -> List[AnswerRecord]:
        return self.questionnaire.answers


# ---------------------------------------------------------------------------
# Typed answer values (closed union, one variant per data type family)
# ---------------------------------------------------------------------------


class TextValue(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class ChoiceValue(BaseModel):
    kind: Literal["choice"] = "choice"
    code: str


class DateValue(BaseModel):
    kind: Literal["date"] = "date"
    value: date


class DateTimeValue(BaseModel):
    kind: Literal["dateTime"] = "dateTime"
    value: datetime


class AmountValue(BaseModel):
    kind: Literal["amount"] = "amount"
    amount: Decimal
    currency: Any = None


AnswerValue = Annotated[
    Union[TextValue, ChoiceValue, DateValue, DateTimeValue, AmountValue],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Engine responses
# ---------------------------------------------------------------------------


class SummaryEntry(BaseModel):
    question: Question
    answer: Any = None


class NextQuestionResponse(BaseModel):
    questionnaireId: Optional[str] = None
    questions: List[Question]


class EndOfFlowResponse(BaseModel):
    message: str = END_OF_FLOW_MESSAGE
    summary: List[SummaryEntry] = []


EngineResponse = Union[NextQuestionResponse, EndOfFlowResponse]


class ValidationResult(BaseModel):
    questionCode: Optional[str] = None
    valid: bool
    reason: Optional[str] = None
