"""Structured output contracts for every generative task.

A contract pairs a pydantic payload model with the parsing rules applied to raw
service text: known wrappers (markdown code fences, chatter around the JSON) are
stripped before structural validation. Validation never raises; ``parse`` turns
a failed validation into a ``SchemaViolationError`` the caller can retry on.
"""

from __future__ import annotations

import json
import re
from typing import Any, Generic, List, Literal, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .errors import SchemaViolationError
from .validation import ValidationResult, summarize_errors, validation

P = TypeVar("P", bound=BaseModel)

_FENCE_OPEN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


class ContractModel(BaseModel):
    """Base for payload models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Question set


class QuestionPayload(ContractModel):
    question: str = Field(
        ...,
        validation_alias=AliasChoices("question", "prompt"),
        description="The multiple choice question text",
    )
    options: List[str] = Field(..., min_length=4, max_length=4, description="Four answer options (A, B, C, D)")
    correct_answer: str = Field(..., description="The correct answer (A, B, C, or D)")
    explanation: str = Field(..., description="Brief explanation of why the correct answer is right")


class QuestionSetPayload(ContractModel):
    questions: List[QuestionPayload] = Field(..., min_length=1, description="Array of multiple choice questions")

    @model_validator(mode="before")
    @classmethod
    def accept_bare_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"questions": data}
        return data


# ---------------------------------------------------------------------------
# Rubric grade


class RubricCriterionPayload(ContractModel):
    criterion: str = Field(..., description="Name of the rubric criterion")
    score: Optional[float] = Field(None, description="Points earned for this criterion")
    max_score: Optional[float] = Field(None, description="Maximum points for this criterion")
    explanation: str = Field("", description="How the student met or missed the criterion")


class GradePayload(ContractModel):
    overall_score: Optional[float] = Field(..., description="Total points earned by the student")
    max_score: Optional[float] = Field(..., description="Maximum possible points for the task")
    performance_level: str = Field(..., description="Performance band or rating (e.g., Exemplary, Proficient)")
    summary: str = Field(..., description="Short paragraph summarising the evaluation")
    strengths: List[str] = Field(default_factory=list, description="Bullet points describing what the student did well")
    improvements: List[str] = Field(default_factory=list, description="Bullet points describing how to improve")
    rubric_alignment: List[RubricCriterionPayload] = Field(
        default_factory=list,
        description="Detailed alignment to each rubric criterion considered",
    )


# ---------------------------------------------------------------------------
# Study plan


class StudySession(ContractModel):
    course_id: str
    course_name: str
    duration: float
    type: Literal["mcq", "frq", "mixed", "review", "concept", "practice"]
    focus: str
    difficulty: Literal["beginner", "intermediate", "advanced"]
    notes: str = ""
    priority: Literal["high", "medium", "low"]


class StudyDay(ContractModel):
    week: int
    day: str
    date: str
    sessions: List[StudySession] = Field(default_factory=list)


class StudyPlanBody(ContractModel):
    overview: str = Field(..., description="Brief overview of the study plan strategy")
    total_weeks: int = Field(..., ge=1, description="Total number of weeks in the study plan")
    weekly_goals: List[str] = Field(default_factory=list, description="Key goals for each week")
    daily_schedule: List[StudyDay] = Field(..., min_length=1)


class StudyPlanPayload(ContractModel):
    study_plan: StudyPlanBody
    recommendations: List[str] = Field(default_factory=list, description="General study recommendations")
    exam_strategy: str = Field("", description="Specific exam day strategy")


# ---------------------------------------------------------------------------


def strip_wrappers(text: str) -> str:
    """Remove fenced code-block markers and chatter around a JSON document."""

    if not text:
        return ""
    cleaned = _FENCE_OPEN.sub("", text.strip(), count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned).strip()
    if cleaned[:1] in ("{", "["):
        return cleaned
    # Bracketed chatter such as "[json]" precedes the payload; keep the first
    # span that decodes as a whole JSON value.
    decoder = json.JSONDecoder()
    for start, char in enumerate(cleaned):
        if char not in "{[":
            continue
        try:
            _, end = decoder.raw_decode(cleaned, start)
        except json.JSONDecodeError:
            continue
        return cleaned[start:end]
    return cleaned


class SchemaContract(Generic[P]):
    """Describe and enforce the structure a generative task must return."""

    def __init__(self, name: str, model: Type[P]):
        self.name = name
        self.model = model

    def __repr__(self) -> str:
        return f"SchemaContract({self.name!r})"

    def format_instructions(self) -> str:
        schema = json.dumps(self.model.model_json_schema(by_alias=True), indent=2)
        return (
            "The output should be formatted as a JSON instance that conforms to the JSON schema below.\n"
            "Respond with JSON only, without markdown fences or commentary.\n\n"
            f"```json\n{schema}\n```"
        )

    def validate(self, raw_text: Any) -> ValidationResult:
        if isinstance(raw_text, (dict, list)):
            payload: Any = raw_text
        else:
            cleaned = strip_wrappers(str(raw_text or ""))
            if not cleaned:
                return ValidationResult(valid=False, errors=[f"{self.name}: empty response"])
            try:
                payload = json.loads(cleaned)
            except json.JSONDecodeError as exc:
                return ValidationResult(valid=False, errors=[f"{self.name}: invalid JSON ({exc.msg} at char {exc.pos})"])
        return validation.validate_pydantic_model(payload, self.model)

    def parse(self, raw_text: Any) -> P:
        result = self.validate(raw_text)
        if not result.valid:
            raise SchemaViolationError(f"{self.name} contract violated: {summarize_errors(result.errors)}")
        return result.data


QUESTION_SET_CONTRACT: SchemaContract[QuestionSetPayload] = SchemaContract("question_set", QuestionSetPayload)
GRADE_CONTRACT: SchemaContract[GradePayload] = SchemaContract("rubric_grade", GradePayload)
STUDY_PLAN_CONTRACT: SchemaContract[StudyPlanPayload] = SchemaContract("study_plan", StudyPlanPayload)


__all__ = [
    "GRADE_CONTRACT",
    "GradePayload",
    "QUESTION_SET_CONTRACT",
    "QuestionPayload",
    "QuestionSetPayload",
    "RubricCriterionPayload",
    "STUDY_PLAN_CONTRACT",
    "SchemaContract",
    "StudyPlanPayload",
    "strip_wrappers",
]
