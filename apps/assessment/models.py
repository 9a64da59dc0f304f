"""Domain models for question sets, grades, performance summaries and exam reports.

All models are frozen. Python attributes are snake_case; ``model_dump(by_alias=True)``
produces the camelCase JSON shape consumed by the portal and CLI.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ANSWER_LABELS = ("A", "B", "C", "D")


class AssessmentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Questions


class Question(AssessmentModel):
    """One multiple-choice question with exactly four options."""

    id: str
    prompt: str = Field(
        ...,
        validation_alias=AliasChoices("question", "prompt"),
        serialization_alias="question",
    )
    options: List[str] = Field(..., min_length=4, max_length=4)
    correct_answer: Literal["A", "B", "C", "D"]
    explanation: str
    is_adaptive: bool = False

    @field_validator("correct_answer", mode="before")
    @classmethod
    def normalize_label(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class QuestionSet(AssessmentModel):
    """Ordered questions for one course unit plus how they were produced."""

    questions: List[Question]
    course: str
    unit: str
    mode: Literal["standard", "adaptive", "fallback"] = "standard"
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    attempts: int = 0

    @property
    def is_fallback(self) -> bool:
        return self.mode == "fallback"

    def __len__(self) -> int:
        return len(self.questions)


# ---------------------------------------------------------------------------
# Rubric grading


class RubricSegment(AssessmentModel):
    """An excerpt of an official scoring guide."""

    title: Optional[str] = None
    content: str
    question_types: List[str] = Field(default_factory=lambda: ["general"])
    chunk_indices: List[int] = Field(default_factory=list)


class RubricCriterion(AssessmentModel):
    criterion: str
    score: Optional[float] = None
    max_score: Optional[float] = None
    explanation: str = ""


class Grade(AssessmentModel):
    """Rubric-based evaluation of a free response."""

    overall_score: Optional[float] = 0
    max_score: Optional[float] = None
    performance_level: str = ""
    summary: str = ""
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    rubric_alignment: List[RubricCriterion] = Field(default_factory=list)
    graded: bool = False
    model: Optional[str] = None

    @property
    def score_ratio(self) -> Optional[float]:
        if not self.graded or self.overall_score is None or not self.max_score:
            return None
        return self.overall_score / self.max_score


class FrqSubmission(AssessmentModel):
    """A free response plus the context needed to grade it."""

    course: str = "AP Course"
    prompt: str = ""
    response_text: str = ""
    rubric_segments: List[RubricSegment] = Field(default_factory=list)
    question_type: str = "general"
    image_data: Optional[str] = None


# ---------------------------------------------------------------------------
# Performance


class AnswerRecord(AssessmentModel):
    is_correct: bool
    topic: Optional[str] = None
    timestamp: Optional[datetime] = None


class WeakTopic(AssessmentModel):
    topic: str
    incorrect_count: int


class PerformanceSummary(AssessmentModel):
    """Accuracy, weak topics and a recommendation tier derived from an answer log."""

    accuracy_percent: Optional[float] = None
    correct_count: int = 0
    total_count: int = 0
    weak_topics: List[WeakTopic] = Field(default_factory=list)
    tier: Optional[Literal["fundamentals", "application", "advanced"]] = None
    text: str = ""
    has_data: bool = False


# ---------------------------------------------------------------------------
# Exams


class FrqQuestion(AssessmentModel):
    id: str
    prompt: str
    question_type: str = "general"
    rubric_segments: List[RubricSegment] = Field(default_factory=list)


class ExamFormat(AssessmentModel):
    """Section counts and timings for a course's exam."""

    course_id: str
    mcq_count: int = 0
    frq_count: int = 0
    mcq_time_minutes: int = 0
    frq_time_minutes: int = 0
    question_types: List[str] = Field(default_factory=list)
    has_traditional_exam: bool = True
    frq_only: bool = False
    source: str = "default"

    @property
    def total_time_minutes(self) -> int:
        return self.mcq_time_minutes + self.frq_time_minutes

    @property
    def exam_type(self) -> str:
        if not self.has_traditional_exam:
            return "portfolio"
        return "frq-only" if self.frq_only else "traditional"


class McqResult(AssessmentModel):
    question_id: str
    selected: Optional[str] = None
    correct_answer: str
    is_correct: bool


class FrqResult(AssessmentModel):
    question_id: str
    response: str = ""
    passed: bool = False
    quality: str = ""
    feedback: str = ""
    grade: Optional[Grade] = None


class SectionScore(AssessmentModel):
    score: int = 0
    total: int = 0
    percentage: float = 0.0
    results: List[McqResult | FrqResult] = Field(default_factory=list)


class OverallScore(AssessmentModel):
    score: int = 0
    total: int = 0
    percentage: float = 0.0
    estimated_scale: int = Field(default=1, ge=1, le=5)


class ExamScoreReport(AssessmentModel):
    mcq: SectionScore
    frq: SectionScore
    overall: OverallScore
    time_used_seconds: int = 0


__all__ = [
    "ANSWER_LABELS",
    "AnswerRecord",
    "ExamFormat",
    "ExamScoreReport",
    "FrqQuestion",
    "FrqResult",
    "FrqSubmission",
    "Grade",
    "McqResult",
    "OverallScore",
    "PerformanceSummary",
    "Question",
    "QuestionSet",
    "RubricCriterion",
    "RubricSegment",
    "SectionScore",
    "WeakTopic",
]
